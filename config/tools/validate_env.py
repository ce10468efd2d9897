# config/tools/validate_env.py

import sys           # for exit codes
from pprint import pprint  # for structured printing

# make src discoverable if running as a script
from pathlib import Path
# __file__ is .../config/tools/validate_env.py
# parents[2] is the project root; append ROOT/src
PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.append(str(PROJECT_ROOT / "src"))

from env.loader import load_environment  # import our loader


def main() -> None:
    """Load and print the resolved environment, failing fast on errors."""
    profile = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        env = load_environment(profile=profile)  # try to resolve the active env profile
    except Exception as e:                       # surface any config problem
        print("Environment validation FAILED:", file=sys.stderr)
        print(repr(e), file=sys.stderr)
        sys.exit(1)                              # non-zero exit: CI will mark as failed

    print("Environment validation OK.")
    print("\nActive profile:", env.name)
    print("\nBot username:", env.bot_username)
    print("\nConnection:")
    pprint(env.connection)
    print("\nAgent options:")
    pprint(env.agent)
    print("\nModel:")
    pprint(env.model)
    if not Path(env.model.path).exists():
        print(f"\nWARNING: model file not found: {env.model.path}", file=sys.stderr)


if __name__ == "__main__":
    main()  # run main() only when script is executed directly
