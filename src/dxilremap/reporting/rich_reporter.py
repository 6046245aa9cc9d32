from __future__ import annotations

from typing import Any, Dict

from rich.console import Console
from rich.markup import escape
from rich.status import Status

from .base import (
    Reporter,
    TaskStatus,
    TaskRecord,
    format_stats,
    get_verbosity,
)

_STATUS_STYLE = {
    TaskStatus.SUCCESS: "[green]✔[/]",
    TaskStatus.FAILED: "[bold red]✖[/]",
}


class RichReporter(Reporter):
    """Console reporter showing a spinner while a pipeline stage runs."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console(
            stderr=True, highlight=False, soft_wrap=False
        )
        self._tasks: Dict[str, TaskRecord] = {}
        self._spinner: Status | None = None

    def _refresh_spinner(self) -> None:
        running = [rec.name for rec in self._tasks.values()]
        if not running:
            if self._spinner is not None:
                self._spinner.stop()
                self._spinner = None
            return
        label = " / ".join(running)
        if self._spinner is None:
            self._spinner = self.console.status(label, spinner="dots")
            self._spinner.start()
        else:
            self._spinner.update(label)

    def start_task(self, task_id: str, name: str, **meta: Any) -> None:
        self._tasks[task_id] = TaskRecord(task_id, name, meta=meta)
        self._refresh_spinner()

    def end_task(
        self,
        task_id: str,
        status: TaskStatus = TaskStatus.SUCCESS,
        **final_meta: Any,
    ) -> None:
        rec = self._tasks.pop(task_id, None)
        if not rec:
            return
        rec.finish(status, final_meta)
        self._refresh_spinner()
        icon = _STATUS_STYLE.get(status, "")
        self.console.print(
            f"{icon} {escape(rec.name)} ({rec.duration:.2f}s)"
            + escape(format_stats(rec.meta))
        )

    def status(self, message: str, **fields: Any) -> None:
        self.console.print(f"[green]INFO[/]: {escape(message)}")

    def verbose(self, message: str, *, level: int = 1, **fields: Any) -> None:
        if get_verbosity() < level:
            return
        self.console.print(f"[cyan]VERB{level}[/]: {escape(message)}")

    def error(self, message: str, **fields: Any) -> None:
        self.console.print(f"[bold red]ERROR[/]: {escape(message)}")

    def warning(self, message: str, **fields: Any) -> None:
        self.console.print(f"[yellow]WARN[/]: {escape(message)}")

    def section(self, title: str) -> None:
        self.console.rule(escape(title))

    def flush(self) -> None:
        if self._spinner is not None:
            self._spinner.stop()
            self._spinner = None
