# cli.py
from __future__ import annotations

import dataclasses
import runpy
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import click
import redis

from gush.client import Client
from gush.config import Configuration
from gush.errors import GushError, InvalidTransition, JobNotFound, UnknownWorkflowType, WorkflowNotFound
from gush.logs import setup_logging
from gush.registry import WorkflowRegistry
from gush.ui.console import JOB_FILTERS, Console, get_console, set_console


def load_gushfile(path: str | Path) -> WorkflowRegistry:
    """
    Load workflow definitions from a python file.

    The file must define `registry = WorkflowRegistry()` and register its
    workflow classes on it.
    """
    gushfile = Path(path).expanduser().resolve()
    if not gushfile.exists():
        raise FileNotFoundError(f"Gushfile not found: {gushfile}")
    if gushfile.suffix != ".py":
        raise ValueError(f"Gushfile must be a .py file, got: {gushfile.name}")

    globals_dict = runpy.run_path(str(gushfile), run_name=f"gushfile_{gushfile.stem}")
    registry = globals_dict.get("registry")
    if not isinstance(registry, WorkflowRegistry):
        raise TypeError(
            "Gushfile must define `registry = WorkflowRegistry()` and register workflows on it."
        )
    return registry


def get_client(ctx: click.Context) -> Client:
    """Client for this invocation, built on first use."""
    obj = ctx.find_root().obj
    if obj.get("client") is None:
        configuration: Configuration = obj["configuration"]
        try:
            registry = load_gushfile(configuration.gushfile)
        except (FileNotFoundError, ValueError, TypeError) as e:
            get_console().print_error(
                "Could not load Gushfile",
                str(e),
                suggestion="Create Gushfile.py in the current directory or pass --gushfile PATH.",
            )
            sys.exit(1)
        obj["client"] = Client(configuration, registry)
    return obj["client"]


@contextmanager
def handle_errors(ctx: click.Context) -> Iterator[None]:
    console = get_console()
    try:
        yield
    except WorkflowNotFound as e:
        console.print_error("Workflow not found", str(e))
        sys.exit(1)
    except JobNotFound as e:
        console.print_error("Job not found", str(e))
        sys.exit(1)
    except UnknownWorkflowType as e:
        console.print_error("Unknown workflow type", str(e), suggestion="List known types with:\n  gush types")
        sys.exit(1)
    except InvalidTransition as e:
        console.print_error("Invalid job transition", str(e))
        sys.exit(1)
    except GushError as e:
        console.print_error(type(e).__name__, str(e))
        sys.exit(1)
    except redis.RedisError as e:
        url = ctx.find_root().obj["configuration"].redis_url
        console.print_error(
            "Redis unavailable",
            str(e),
            suggestion=f"Check that Redis is reachable at {url} or pass --redis-url.",
        )
        sys.exit(1)


@click.group()
@click.option("--debug", is_flag=True, default=False, help="Enable debug mode (show stack traces and debug logs)")
@click.option("--json-logs", is_flag=True, default=False, help="Emit logs as JSON lines")
@click.option("--gushfile", default=None, help="Workflow definitions file (defaults to Gushfile.py)")
@click.option("--redis-url", default=None, help="Redis URL (defaults to GUSH_REDIS_URL or redis://localhost:6379)")
@click.option("--namespace", default=None, help="Key namespace (defaults to gush)")
@click.pass_context
def cli(ctx, debug, json_logs, gushfile, redis_url, namespace):
    """gush: dependency-graph job orchestrator."""
    set_console(Console(debug=debug))
    setup_logging(debug=debug, json_output=json_logs)

    configuration = Configuration.from_env()
    overrides = {"gushfile": gushfile, "redis_url": redis_url, "namespace": namespace}
    configuration = dataclasses.replace(
        configuration, **{k: v for k, v in overrides.items() if v is not None}
    )

    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj.setdefault("configuration", configuration)


@cli.command()
@click.argument("workflow_type")
@click.argument("arguments", nargs=-1)
@click.pass_context
def create(ctx, workflow_type, arguments):
    """Register a new workflow of WORKFLOW_TYPE."""
    client = get_client(ctx)
    with handle_errors(ctx):
        workflow_id = client.create_workflow(workflow_type, *arguments)
    get_console().print_created(workflow_id)
    return workflow_id


@cli.command()
@click.argument("workflow_id")
@click.argument("jobs", nargs=-1)
@click.pass_context
def start(ctx, workflow_id, jobs):
    """Start workflow WORKFLOW_ID, optionally only the named JOBS."""
    client = get_client(ctx)
    with handle_errors(ctx):
        enqueued = client.start_workflow(workflow_id, list(jobs))
    get_console().print_started(workflow_id, enqueued)


@cli.command("create-and-start")
@click.argument("workflow_type")
@click.argument("arguments", nargs=-1)
@click.pass_context
def create_and_start(ctx, workflow_type, arguments):
    """Create a workflow and start it immediately."""
    workflow_id = ctx.invoke(create, workflow_type=workflow_type, arguments=arguments)
    ctx.invoke(start, workflow_id=workflow_id, jobs=())


@cli.command()
@click.argument("workflow_id")
@click.pass_context
def stop(ctx, workflow_id):
    """Stop enqueueing new jobs for WORKFLOW_ID."""
    client = get_client(ctx)
    with handle_errors(ctx):
        client.stop_workflow(workflow_id)
    get_console().print_info(f"Workflow {workflow_id} stopped")


@cli.command()
@click.argument("workflow_id")
@click.option("--skip-overview", is_flag=True, default=False)
@click.option("--skip-jobs", is_flag=True, default=False)
@click.option("--jobs", "which", type=click.Choice(JOB_FILTERS), default="all", show_default=True)
@click.pass_context
def show(ctx, workflow_id, skip_overview, skip_jobs, which):
    """Show details about workflow WORKFLOW_ID."""
    client = get_client(ctx)
    console = get_console()
    with handle_errors(ctx):
        workflow = client.find_workflow(workflow_id)
    if not skip_overview:
        console.print_overview(workflow)
    if not skip_jobs:
        console.print_jobs(workflow, which)


@cli.command("list")
@click.pass_context
def list_workflows(ctx):
    """List all workflows with their statuses."""
    client = get_client(ctx)
    with handle_errors(ctx):
        workflows = client.all_workflows()
    get_console().print_workflows(workflows)


@cli.command()
@click.argument("workflow_id")
@click.pass_context
def destroy(ctx, workflow_id):
    """Delete WORKFLOW_ID and all of its jobs."""
    client = get_client(ctx)
    with handle_errors(ctx):
        client.destroy_workflow(workflow_id)
    get_console().print_info(f"Workflow {workflow_id} destroyed")


@cli.command()
@click.pass_context
def types(ctx):
    """List workflow types registered in the Gushfile."""
    client = get_client(ctx)
    for tag in client.registry.types():
        get_console().print_info(tag)


@cli.command()
@click.pass_context
def clear(ctx):
    """Drop every pending message from the queue."""
    client = get_client(ctx)
    with handle_errors(ctx):
        dropped = client.queue.clear()
    get_console().print_info(f"Cleared {dropped} message(s) from {client.queue.key}")


@cli.command()
@click.option("--concurrency", default=None, type=int, help="Number of worker threads (defaults to configured concurrency)")
@click.pass_context
def workers(ctx, concurrency):
    """Run worker threads until interrupted."""
    from gush.worker import run_workers

    root = ctx.find_root().obj
    if concurrency:
        root["configuration"] = dataclasses.replace(root["configuration"], concurrency=concurrency)
    client = get_client(ctx)
    console = get_console()
    console.print_info(
        f"Starting {client.configuration.concurrency} worker(s) on {client.queue.key}"
    )
    try:
        run_workers(client)
    except KeyboardInterrupt:
        console.print_info("\nWorkers stopped by user")
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, type=int, show_default=True)
@click.pass_context
def serve(ctx, host, port):
    """Serve the HTTP control plane."""
    import uvicorn
    from gush.api import create_app

    client = get_client(ctx)
    uvicorn.run(create_app(client), host=host, port=port)


if __name__ == "__main__":
    cli()
