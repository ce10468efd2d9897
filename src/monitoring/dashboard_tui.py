# rich-based TUI dashboard
#src/monitoring/dashboard_tui.py
"""
TUI dashboard for the survival agent.

A lightweight terminal UI (using `rich`) that subscribes to the monitoring
EventBus and renders:

- Loop status:
    - Cycle number
    - Run state (idle / running / aborting / stopped)
    - Last status line (vitals + position)

- Current run:
    - Action in flight
    - Planned actions and what is still pending

- Failures and hazards:
    - Last failed action and reason
    - Last hazard override
    - Planner errors and rejected decisions

This runs entirely offline. No web server, no external services.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .bus import EventBus
from .events import EventType, MonitoringEvent


def _describe(action: Optional[Dict[str, Any]]) -> str:
    if not action:
        return "-"
    args = action.get("args") or {}
    arg_str = ", ".join(f"{k}={v}" for k, v in args.items())
    return f"{action.get('action', '?')}({arg_str})"


# ============================================================
# TUI Dashboard
# ============================================================

class TuiDashboard:
    """
    Live terminal dashboard bound to a monitoring.EventBus.

    It consumes MonitoringEvents and keeps a small in-memory state
    representation, which is rendered periodically via rich.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._console = Console()
        self._lock = threading.Lock()
        self._stop = threading.Event()

        # Internal state snapshot for display
        self._state: Dict[str, Any] = {
            "cycle": 0,
            "run_state": "idle",
            "status": "",
            "current_action": None,
            "planned": [],
            "completed": 0,
            "pending": [],
            "last_failure": None,
            "last_hazard": None,
            "planner_error": None,
            "rejected": 0,
            "control": None,
        }

        # Subscribe to events
        self._bus.subscribe(self._on_event)

    @property
    def state(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._state)

    # --------------------------------------------------------
    # Event handler
    # --------------------------------------------------------

    def _on_event(self, event: MonitoringEvent) -> None:
        """
        Update dashboard state based on a MonitoringEvent.
        This should be cheap and non-blocking.
        """
        et = event.event_type
        p = event.payload
        with self._lock:
            s = self._state
            if et == EventType.CYCLE_STARTED:
                s["cycle"] = p.get("cycle", s["cycle"])
                s["status"] = p.get("status", "")
                s["planner_error"] = None
                s["rejected"] = 0

            elif et == EventType.PLAN_CREATED:
                s["planned"] = list(p.get("actions") or [])
                s["pending"] = list(s["planned"])
                s["completed"] = 0

            elif et == EventType.PLANNER_FAILED:
                s["planner_error"] = p.get("error") or event.message

            elif et == EventType.DECISION_REJECTED:
                s["rejected"] += 1

            elif et == EventType.ACTION_STARTED:
                s["run_state"] = "running"
                s["current_action"] = p.get("action")
                if s["pending"]:
                    s["pending"] = s["pending"][1:]

            elif et == EventType.ACTION_SUCCEEDED:
                s["current_action"] = None
                s["completed"] += 1

            elif et == EventType.ACTION_FAILED:
                s["run_state"] = "aborting"
                s["current_action"] = None
                s["last_failure"] = {
                    "action": p.get("action"),
                    "error": p.get("error"),
                    "message": event.message,
                }

            elif et == EventType.RUN_ABORTED:
                if s["last_failure"] is not None:
                    s["last_failure"]["skipped"] = list(p.get("pending") or [])
                s["run_state"] = "idle"
                s["pending"] = []

            elif et in (EventType.RUN_COMPLETED, EventType.RUN_CANCELLED):
                s["run_state"] = "idle"
                s["current_action"] = None
                s["pending"] = []

            elif et == EventType.HAZARD_OVERRIDE:
                s["last_hazard"] = {
                    "hazards": p.get("hazards") or [],
                    "at": time.strftime("%H:%M:%S", time.localtime(event.ts)),
                }

            elif et == EventType.CONTROL_COMMAND:
                s["control"] = p.get("cmd") or p.get("command")
                if s["control"] in ("PAUSE", "SINGLE_STEP", "stop"):
                    s["run_state"] = "stopped"
                elif s["control"] in ("RESUME", "start"):
                    s["run_state"] = "idle"

    # --------------------------------------------------------
    # Rendering helpers
    # --------------------------------------------------------

    def _render_loop_panel(self) -> Panel:
        s = self._state
        txt = Text()
        txt.append("Cycle: ", style="bold")
        txt.append(f"{s['cycle']}    ")
        txt.append("Run: ", style="bold")
        txt.append(f"{s['run_state']}    ")
        txt.append("Last command: ", style="bold")
        txt.append(f"{s['control'] or '-'}\n")
        txt.append(s["status"] or "No status yet")
        return Panel(txt, title="Control Loop", border_style="cyan")

    def _render_run_panel(self) -> Panel:
        s = self._state
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#", justify="right", width=3)
        table.add_column("Action")
        table.add_column("State", width=10)

        planned: List[Dict[str, Any]] = s["planned"]
        done = s["completed"]
        current = s["current_action"]
        for i, action in enumerate(planned):
            if i < done:
                state = "[green]done[/green]"
            elif current is not None and i == done:
                state = "[yellow]running[/yellow]"
            else:
                state = "pending"
            table.add_row(str(i + 1), _describe(action), state)
        if not planned:
            table.add_row("-", "<no plan>", "-")

        return Panel(table, title="Current Run", border_style="magenta")

    def _render_failure_panel(self) -> Panel:
        s = self._state
        table = Table.grid()
        table.add_column(justify="left")

        failure = s["last_failure"]
        if failure:
            table.add_row("[bold red]Last failure:[/bold red]")
            table.add_row(f"[bold]Action:[/bold] {_describe(failure.get('action'))}")
            table.add_row(f"[bold]Error:[/bold] {failure.get('error') or 'unknown'}")
            skipped = failure.get("skipped") or []
            if skipped:
                table.add_row(
                    "[bold]Not started:[/bold] " + ", ".join(_describe(a) for a in skipped)
                )
        else:
            table.add_row("[bold green]No failures recorded.[/bold green]")

        hazard = s["last_hazard"]
        table.add_row("")
        if hazard:
            table.add_row(
                f"[bold red]Hazard:[/bold red] {', '.join(hazard['hazards'])} at {hazard['at']}"
            )
        else:
            table.add_row("[bold]Hazard:[/bold] none")

        if s["planner_error"]:
            table.add_row(f"[bold yellow]Planner:[/bold yellow] {s['planner_error']}")
        if s["rejected"]:
            table.add_row(f"[bold yellow]Rejected decisions:[/bold yellow] {s['rejected']}")

        return Panel(table, title="Failures & Hazards", border_style="yellow")

    def _build_layout(self) -> Layout:
        """
        Construct the overall layout for the dashboard.
        """
        layout = Layout()

        layout.split(
            Layout(name="top", size=5),
            Layout(name="middle", ratio=1),
        )

        with self._lock:
            layout["top"].update(self._render_loop_panel())
            layout["middle"].split_row(
                Layout(name="run", ratio=2),
                Layout(name="failures"),
            )
            layout["run"].update(self._render_run_panel())
            layout["failures"].update(self._render_failure_panel())

        return layout

    # --------------------------------------------------------
    # Main loop
    # --------------------------------------------------------

    def run(self, refresh_per_second: float = 4.0) -> None:
        """
        Run the TUI event loop until stop() is called.

        This blocks the current thread. Use a separate thread if needed.
        """
        refresh_delay = 1.0 / max(refresh_per_second, 0.1)
        with Live(self._build_layout(), console=self._console, refresh_per_second=refresh_per_second) as live:
            while not self._stop.is_set():
                live.update(self._build_layout())
                self._stop.wait(refresh_delay)

    def stop(self) -> None:
        self._stop.set()
        self._bus.unsubscribe(self._on_event)
