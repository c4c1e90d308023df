"""ilab-e2e CLI."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ilabe2e import __version__
from ilabe2e._constants import DEFAULT_OUTPUT_DIR
from ilabe2e.config import (
    ConfigError,
    ConfigValidationError,
    MissingEnvironmentError,
    RunConfig,
    describe_config,
    parse_duration,
    resolve_run_config,
)
from ilabe2e.journal import DEFAULT_JOURNAL_DIR, Journal
from ilabe2e.k8s import K8sConnectionError, K8sError, get_k8s_client
from ilabe2e.orchestrator import RunResult, RunStatus, run_workflow
from ilabe2e.s3 import check_object_store

logger = logging.getLogger(__name__)

EXIT_CODES = {
    RunStatus.SUCCEEDED: 0,
    RunStatus.FAILED: 1,
    RunStatus.SKIPPED: 3,
    RunStatus.TIMEOUT: 4,
    RunStatus.CANCELLED: 130,
}

app = typer.Typer(
    name="ilab-e2e",
    help="End-to-end test of the InstructLab standalone workflow on OpenShift",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    epilog="[dim]Workflow: config -> validate -> run -> journal[/dim]",
)

console = Console()


# =============================================================================
# Helper Functions
# =============================================================================


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]OK[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]ERROR[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]WARN[/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]...[/blue] {message}")


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich when verbose output is requested."""
    if not verbose:
        return
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def load_run_config() -> RunConfig:
    """Resolve the run configuration, exiting with the matching code on error."""
    try:
        return resolve_run_config()
    except MissingEnvironmentError as e:
        print_warning(str(e))
        raise typer.Exit(EXIT_CODES[RunStatus.SKIPPED])  # noqa: B904
    except ConfigValidationError as e:
        print_error("Config validation failed:")
        for err in e.errors:
            loc = ".".join(str(x) for x in err["loc"])
            console.print(f"  [red]•[/red] {loc}: {err['msg']}")
        raise typer.Exit(1)  # noqa: B904
    except ConfigError as e:
        print_error(f"Config error: {e}")
        raise typer.Exit(1)  # noqa: B904


def _flatten(data: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    rows = []
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(_flatten(value, f"{name}."))
        else:
            rows.append((name, "" if value is None else str(value)))
    return rows


def _print_result(result: RunResult) -> None:
    resources = result.resources.all()
    if resources:
        table = Table(title="Resources")
        table.add_column("Kind", style="cyan")
        table.add_column("Name")
        table.add_column("Namespace", style="dim")
        table.add_column("Owned", justify="center")
        for ref in resources:
            table.add_row(ref.kind, ref.name, ref.namespace or "", "yes" if ref.owned else "no")
        console.print(table)

    for failure in result.cleanup_errors:
        print_warning(f"Cleanup of {failure.description} failed: {failure.error}")

    summary = f"{result.message} ({result.elapsed_seconds:.1f}s)"
    if result.status == RunStatus.SUCCEEDED:
        print_success(summary)
    elif result.status == RunStatus.SKIPPED:
        print_warning(f"Skipped: {summary}")
    elif result.status == RunStatus.CANCELLED:
        print_warning(f"Cancelled: {summary}")
    else:
        print_error(f"{result.status.value.capitalize()}: {summary}")


# =============================================================================
# Commands
# =============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"ilab-e2e version {__version__}")


@app.command()
def config() -> None:
    """Show the configuration resolved from the environment.

    Secrets are masked.
    """
    cfg = load_run_config()
    table = Table(title="Run configuration")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for name, value in _flatten(describe_config(cfg)):
        table.add_row(name, value)
    console.print(table)


@app.command()
def validate(
    skip_s3: Annotated[
        bool,
        typer.Option("--skip-s3", help="Skip the object-store checks"),
    ] = False,
    context: Annotated[
        str,
        typer.Option("--context", help="kubeconfig context (default: in-cluster, then current)"),
    ] = "",
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed validation output"),
    ] = False,
) -> None:
    """Validate configuration and test connectivity.

    This command performs the following checks:
    - Required environment variables are present and valid
    - The workflow script is readable
    - Kubernetes cluster is reachable
    - TEST_NAMESPACE exists (if set)
    - The SDG data object is readable from the bucket
    """
    configure_logging(verbose)
    console.print(Panel("Validating ilab-e2e environment", expand=False))

    checks_passed = 0
    checks_failed = 0

    console.print("\n[bold]Configuration[/bold]")
    cfg = load_run_config()
    print_success("Environment resolved")
    checks_passed += 1

    script = Path(cfg.script_path)
    if script.is_file():
        print_success(f"Workflow script found: {script}")
        checks_passed += 1
    else:
        print_error(f"Workflow script not found: {script}")
        checks_failed += 1

    console.print("\n[bold]Kubernetes[/bold]")
    try:
        k8s = get_k8s_client(context=context)
        ok, msg = k8s.test_connectivity()
        if ok:
            print_success(msg)
            checks_passed += 1
            if cfg.namespace:
                if k8s.namespace_exists(cfg.namespace):
                    print_success(f"Namespace {cfg.namespace} exists")
                else:
                    print_info(f"Namespace {cfg.namespace} will be created")
                checks_passed += 1
        else:
            print_error(msg)
            checks_failed += 1
    except K8sConnectionError as e:
        print_error(str(e))
        checks_failed += 1
    except K8sError as e:
        print_error(f"Kubernetes error: {e}")
        checks_failed += 1

    console.print("\n[bold]Object Store[/bold]")
    if skip_s3:
        print_warning("Skipping object-store checks")
    else:
        results = check_object_store(cfg.object_store)
        for passed_key, msg_key in (
            ("endpoint_reachable", "endpoint_message"),
            ("credentials_valid", "credentials_message"),
        ):
            if results[msg_key]:
                if results[passed_key]:
                    print_success(results[msg_key])
                else:
                    print_error(results[msg_key])
        if results["overall_success"]:
            print_success(results["message"])
            checks_passed += 1
        else:
            print_error(results["message"])
            checks_failed += 1

    console.print()
    if checks_failed:
        print_error(f"{checks_failed} check(s) failed, {checks_passed} passed")
        raise typer.Exit(1)
    print_success(f"All {checks_passed} checks passed")


@app.command()
def run(
    timeout: Annotated[
        str | None,
        typer.Option("--timeout", "-t", help="Override TEST_RUN_TIMEOUT (e.g. 10h, 90m)"),
    ] = None,
    no_fail_fast: Annotated[
        bool,
        typer.Option(
            "--no-fail-fast",
            help="Keep polling a Failed pod until the timeout instead of stopping",
        ),
    ] = False,
    context: Annotated[
        str,
        typer.Option("--context", help="kubeconfig context (default: in-cluster, then current)"),
    ] = "",
    journal_dir: Annotated[
        Path,
        typer.Option("--journal-dir", help="Journal directory"),
    ] = Path(DEFAULT_JOURNAL_DIR),
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show provisioning and polling logs"),
    ] = False,
) -> None:
    """Run the standalone workflow end to end.

    Provisions a disposable namespace, RBAC, secrets and a workbench pod,
    waits for the workflow to finish, then deletes what it created.

    Exit codes: 0 succeeded, 1 failed, 3 skipped, 4 timeout, 130 cancelled.
    """
    configure_logging(verbose)
    cfg = load_run_config()

    updates: dict[str, Any] = {}
    if timeout is not None:
        try:
            updates["timeout_seconds"] = parse_duration(timeout)
        except ConfigError as e:
            print_error(str(e))
            raise typer.Exit(1)  # noqa: B904
        if updates["timeout_seconds"] <= 0:
            print_error(f"Timeout must be positive: {timeout}")
            raise typer.Exit(1)
    if no_fail_fast:
        updates["fail_fast"] = False
    if updates:
        cfg = cfg.model_copy(update=updates)

    k8s = None
    if context:
        try:
            k8s = get_k8s_client(context=context)
        except K8sConnectionError as e:
            print_error(str(e))
            raise typer.Exit(EXIT_CODES[RunStatus.FAILED])  # noqa: B904

    print_info(
        f"Running workflow (timeout {int(cfg.timeout_seconds)}s, "
        f"fail-fast {'on' if cfg.fail_fast else 'off'})"
    )

    # Ctrl-C stops the wait; cleanup still runs before we exit
    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
    try:
        result = run_workflow(k8s=k8s, journal=Journal(journal_dir), cancel=cancel, config=cfg)
    finally:
        signal.signal(signal.SIGINT, previous)

    _print_result(result)
    code = EXIT_CODES[result.status]
    if code:
        raise typer.Exit(code)


@app.command()
def journal(
    session_id: Annotated[
        str | None,
        typer.Option("--session", "-s", help="Show events for a specific session"),
    ] = None,
    last: Annotated[
        int,
        typer.Option("--last", "-n", help="Show last N sessions"),
    ] = 10,
    journal_dir: Annotated[
        Path,
        typer.Option("--dir", help="Journal directory"),
    ] = Path(DEFAULT_OUTPUT_DIR) / "journal",
) -> None:
    """View the run provenance journal.

    Examples:

        ilab-e2e journal

        ilab-e2e journal --session 20261019-120000-a1b2c3
    """
    j = Journal(journal_dir)

    if session_id:
        events = j.load_session_events(session_id)
        if not events:
            print_warning(f"No events found for session {session_id}")
            return

        console.print(Panel(f"Session: [bold]{session_id}[/bold]", expand=False))
        table = Table()
        table.add_column("Time", style="dim", width=19)
        table.add_column("Event", style="cyan")
        table.add_column("Message")
        table.add_column("Status", justify="center")

        for event in events:
            success = event.get("success")
            status = ""
            if success is True:
                status = "[green]OK[/green]"
            elif success is False:
                status = "[red]FAIL[/red]"
            table.add_row(
                event.get("timestamp", "")[:19],
                event.get("event_type", ""),
                event.get("message", ""),
                status,
            )

        console.print(table)
        return

    sessions = j.list_sessions()
    if not sessions:
        print_warning(f"No journal sessions found in {journal_dir}")
        return

    console.print(Panel("ilab-e2e Journal Sessions", expand=False))
    table = Table()
    table.add_column("Session ID", style="cyan")
    table.add_column("Run")
    table.add_column("Started", style="dim")
    table.add_column("Events", justify="right")
    table.add_column("Result")

    for s in sessions[:last]:
        status = s.get("status")
        if status == RunStatus.SUCCEEDED.value:
            shown = f"[green]{status}[/green]"
        elif status is None:
            shown = "[yellow]incomplete[/yellow]"
        else:
            shown = f"[red]{status}[/red]"
        table.add_row(
            s["session_id"],
            s.get("run_name", ""),
            s.get("started", "")[:19],
            str(s.get("event_count", 0)),
            shown,
        )

    console.print(table)


if __name__ == "__main__":
    app()
