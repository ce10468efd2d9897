# path: src/runtime/agent_runtime_main.py

"""
Unified runtime wiring the survival agent together.

This script shows:
- How config, the bridge client, the Actuator and its event pump fit together.
- How the Planner, ActionExecutor and ControlLoop are stacked.
- Where reflexes (hazard override) and chat commands hook in.
- Where monitoring events flow and how logs are produced.

Usage:
    python -m runtime.agent_runtime_main --profile local --tui
"""

from __future__ import annotations  # allow forward type references in type hints

import argparse                     # CLI flags
import logging
import threading                    # pump / loop / dashboard threads
from pathlib import Path            # for filesystem path handling
from typing import List, Optional, Tuple

from agent.chat_commands import ChatCommands
from agent.executor import ActionExecutor
from agent.hazard import HazardMonitor
from agent.logging_config import configure_logging
from agent.loop import ControlLoop
from bot_core.actuator import BotCoreError, PacketActuator
from bot_core.net import create_packet_client
from contracts import Planner
from env.loader import load_environment
from env.schema import EnvProfile
from llm_stack.backend_llamacpp import LlamaCppBackend
from llm_stack.planner import LLMPlanner
from llm_stack.presets import planner_preset
from monitoring.bus import EventBus
from monitoring.controller import LoopController
from monitoring.dashboard_tui import TuiDashboard
from monitoring.logger import JsonFileLogger

log = logging.getLogger(__name__)


def start_tui_in_background(bus: EventBus) -> Tuple[TuiDashboard, threading.Thread]:
    """
    Start the TuiDashboard in a separate daemon thread.

    The dashboard listens to MonitoringEvents on the given bus and renders
    a live HUD without blocking the control loop.
    """
    dashboard = TuiDashboard(bus)

    t = threading.Thread(
        target=dashboard.run,
        kwargs={"refresh_per_second": 4.0},
        name="TuiDashboardThread",
        daemon=True,
    )
    t.start()
    return dashboard, t


def build_monitoring_stack(log_path: Optional[Path] = None) -> Tuple[EventBus, JsonFileLogger]:
    """
    Construct the monitoring stack used by the runtime.

    Returns:
        (bus, logger) where logger appends every MonitoringEvent as JSONL.
    """
    bus = EventBus()

    # Default location: logs/monitoring/events.log (created if needed)
    if log_path is None:
        log_path = Path("logs") / "monitoring" / "events.log"

    logger = JsonFileLogger(path=log_path, bus=bus)
    return bus, logger


def build_planner(profile: EnvProfile, llm_log_dir: Optional[Path] = None) -> Planner:
    """LLMPlanner over the local llama.cpp model of the active profile."""
    backend = LlamaCppBackend(profile.model)
    return LLMPlanner(
        backend,
        preset=planner_preset(
            temperature=profile.model.temperature,
            max_tokens=profile.model.max_tokens,
        ),
        max_actions=profile.agent.max_actions_per_run,
        log_dir=llm_log_dir,
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Autonomous Minecraft survival agent")
    parser.add_argument("--config-dir", type=Path, default=None, help="directory holding env.yaml / models.yaml")
    parser.add_argument("--profile", default=None, help="environment profile (default: env.yaml 'profile')")
    parser.add_argument("--tui", action="store_true", help="show the rich dashboard")
    parser.add_argument("--max-cycles", type=int, default=None, help="stop after N cycles")
    parser.add_argument("--log-level", default="INFO", help="root logging level")
    parser.add_argument("--log-dir", type=Path, default=Path("logs"), help="where event and LLM logs go")
    return parser.parse_args(argv)


def run_agent_runtime(
    args: argparse.Namespace,
    *,
    planner: Optional[Planner] = None,
) -> int:
    """
    Main entrypoint.

    Runtime responsibilities:
    - Load the environment profile once and pass it down.
    - Connect the Actuator and start its event pump thread.
    - Build Planner, ActionExecutor and ControlLoop bound to one EventBus.
    - Attach the hazard reflex, chat commands and the control surface.
    - Run the loop until Ctrl-C or --max-cycles, then tear down in reverse.

    Returns the process exit code.
    """
    configure_logging(args.log_level)
    profile = load_environment(config_dir=args.config_dir, profile=args.profile)
    log.info("Profile %s: %s@%s:%d", profile.name, profile.bot_username,
             profile.connection.host, profile.connection.port)

    bus, event_logger = build_monitoring_stack(args.log_dir / "monitoring" / "events.log")

    actuator = PacketActuator(create_packet_client(profile.connection), config=profile.agent)
    try:
        actuator.connect(username=profile.bot_username)
    except BotCoreError as exc:
        log.error("Could not reach the game bridge: %s", exc)
        event_logger.close()
        return 1

    pump_stop = threading.Event()
    pump = threading.Thread(
        target=actuator.run_pump,
        args=(pump_stop,),
        name="ActuatorPump",
        daemon=True,
    )
    pump.start()

    if planner is None:
        planner = build_planner(profile, llm_log_dir=args.log_dir / "llm")

    executor = ActionExecutor(actuator, profile.agent, bus=bus)
    loop = ControlLoop(actuator, planner, executor, profile.agent, bus=bus)

    hazard = HazardMonitor(actuator, profile.agent, bus=bus)
    hazard.attach()
    chat = ChatCommands(loop, actuator, username=profile.bot_username, bus=bus)
    chat.attach()
    controller = LoopController(loop, bus)

    dashboard: Optional[TuiDashboard] = None
    if args.tui:
        dashboard, _ = start_tui_in_background(bus)

    try:
        loop.run_forever(max_cycles=args.max_cycles)
    except KeyboardInterrupt:
        log.info("Shutting down survival agent runtime...")
    finally:
        loop.shutdown(timeout=profile.agent.cancel_ack_timeout_s * 2)
        controller.close()
        chat.detach()
        hazard.detach()
        if dashboard is not None:
            dashboard.stop()
        pump_stop.set()
        pump.join(timeout=1.0)
        try:
            actuator.disconnect()
        except BotCoreError:
            log.exception("Disconnect failed")
        event_logger.close()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    return run_agent_runtime(parse_args(argv))


if __name__ == "__main__":
    raise SystemExit(main())
