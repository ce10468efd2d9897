# path: src/runtime/__init__.py

"""
Runtime wiring package for the survival agent.

Holds the entrypoint that stitches together:
- config, bridge client and PacketActuator (bot_core)
- ControlLoop, ActionExecutor, hazard reflex and chat commands (agent)
- LLM planner (llm_stack)
- event bus, JSONL log and dashboard (monitoring)

Usage:
    python -m runtime.agent_runtime_main
"""
