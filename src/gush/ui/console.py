"""Console output formatting for the gush CLI."""

from __future__ import annotations

from typing import List, Optional

import click

from gush.job import Job
from gush.workflow import Workflow


STATUS_COLORS = {
    "failed": "red",
    "finished": "green",
    "running": "yellow",
    "stopped": "magenta",
    "pending": "white",
}

# display order in job lists
JOB_ORDER = {"failed": 0, "finished": 1, "running": 2, "enqueued": 3, "pending": 4}

JOB_FILTERS = ("all", "failed", "finished", "running", "pending")


def job_state(job: Job) -> str:
    return "failed" if job.failed else job.phase


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def _status(self, status: str) -> str:
        return click.style(status, fg=STATUS_COLORS.get(status, "white"))

    def print_header(self, title: str) -> None:
        click.echo(f"\n{title}")
        click.echo("-" * len(title))

    def print_created(self, workflow_id: str) -> None:
        click.echo(f"Workflow created with id: {workflow_id}")
        click.echo(f"Start it with command: gush start {workflow_id}")

    def print_started(self, workflow_id: str, enqueued: List[str]) -> None:
        click.echo(f"Workflow {workflow_id} started")
        for name in enqueued:
            click.echo(f"  enqueued {name}")

    def print_overview(self, workflow: Workflow) -> None:
        jobs = workflow.jobs
        finished, total = workflow.progress()
        rows = [
            ("id", workflow.id),
            ("type", workflow.klass),
            ("jobs", str(total)),
            ("failed jobs", click.style(str(sum(1 for j in jobs if j.failed)), fg="red")),
            ("succeeded jobs", click.style(str(sum(1 for j in jobs if j.succeeded)), fg="green")),
            ("enqueued jobs", click.style(str(sum(1 for j in jobs if j.enqueued or j.running)), fg="yellow")),
            ("remaining jobs", str(sum(1 for j in jobs if j.pending))),
            ("status", self._status(workflow.status)),
        ]
        if workflow.failed:
            rows.append(("failed", ", ".join(j.name for j in jobs if j.failed)))
        elif workflow.running and total:
            rows.append(("progress", f"{finished}/{total} [{finished * 100 // total}%]"))

        self.print_header("Workflow")
        width = max(len(label) for label, _ in rows)
        for label, value in rows:
            click.echo(f"  {label.rjust(width)} | {value}")

    def print_jobs(self, workflow: Workflow, which: str = "all") -> None:
        jobs = sorted(workflow.jobs, key=lambda j: JOB_ORDER[job_state(j)])
        if which != "all":
            wanted = {"running": ("running", "enqueued")}.get(which, (which,))
            jobs = [j for j in jobs if job_state(j) in wanted]

        self.print_header("Jobs list")
        for job in jobs:
            state = job_state(job)
            if state == "failed":
                line = f"[✗] {click.style(job.name, fg='red')}"
            elif state == "finished":
                line = f"[✓] {click.style(job.name, fg='green')}"
            elif state in ("running", "enqueued"):
                line = f"[•] {click.style(job.name, fg='yellow')}"
            else:
                line = f"[ ] {job.name}"
            click.echo(line)

    def print_workflows(self, workflows: List[Workflow]) -> None:
        if not workflows:
            click.echo("No workflows registered.")
            return
        header = f"{'id':36}  {'type':24}  {'status':10}  progress"
        click.echo(header)
        click.echo("-" * len(header))
        for wf in workflows:
            finished, total = wf.progress()
            if wf.failed:
                progress = f"{next(j.name for j in wf.jobs if j.failed)} failed"
            elif wf.running:
                progress = f"{finished}/{total} [{finished * 100 // total}%]"
            else:
                progress = ""
            status = self._status(wf.status) + " " * (10 - len(wf.status))
            click.echo(f"{wf.id:36}  {wf.klass:24}  {status}  {progress}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        click.echo(f"\nERROR: {title}", err=True)
        click.echo(message, err=True)
        if details:
            for detail in details:
                click.echo(f"  {detail}", err=True)
        if suggestion:
            click.echo(f"\n{suggestion}", err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            click.echo(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        click.echo(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            click.echo(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
