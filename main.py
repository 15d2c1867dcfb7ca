import logging
import os
import subprocess
import sys
import webbrowser
from typing import Optional

import typer
from rich.console import Console

from config import configure_logging, settings
from library import Library
from loan import LoanStatus
from utils.ui_helpers import print_loan_list, print_stats_result, set_output_mode

APP_NAME = "Library Loans CLI"

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(help=APP_NAME)


def get_library() -> Library:
    """Library bound to LIBRARY_DB_FILE, or to the current database file."""
    return Library()


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL for this run"),
):
    """Global options for the CLI (output mode, log level)."""
    configure_logging(log_level)
    if output:
        set_output_mode(output)


@app.command("refresh-overdue")
def cli_refresh_overdue():
    """Mark late loans OVERDUE and refresh their estimated fines."""
    updated = get_library().refresh_overdue_loans()
    print(f"Updated {updated} overdue loan(s).")


@app.command("overdue")
def cli_overdue():
    """List loans currently marked OVERDUE."""
    print_loan_list(get_library().list_overdue_loans(), empty_message="No overdue loans.")


@app.command("loans")
def cli_loans(
    status: Optional[str] = typer.Option(
        None, "--status", "-s", help="Only loans with this status: ACTIVE, RENEWED, OVERDUE or RETURNED"
    ),
):
    """List loans, newest first."""
    lib = get_library()
    if status is None:
        print_loan_list(lib.list_loans())
        return
    try:
        wanted = LoanStatus(status.strip().upper())
    except ValueError:
        print(f"Unknown status: {status}. Use ACTIVE, RENEWED, OVERDUE or RETURNED.")
        raise typer.Exit(code=2)
    print_loan_list(lib.loans_by_status(wanted))


@app.command("stats")
def cli_stats():
    """Show catalog, patron and loan statistics."""
    print_stats_result(get_library().get_statistics())


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (default: API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Restart the server when code changes"),
    open_browser: bool = typer.Option(False, "--open", help="Open the API docs in a browser"),
):
    """Start the REST API with Uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting {settings.app_name} on {url}")

    if open_browser:
        try:
            webbrowser.open(url)
        except webbrowser.Error:
            console.print("[yellow]Could not open a web browser automatically.[/]")

    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
        "--log-level", settings.log_level.lower(),
    ]
    if reload:
        args.append("--reload")
    logger.debug("Running %s", " ".join(args))
    try:
        completed = subprocess.run(args, env=os.environ.copy())
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not start `uvicorn`. Make sure it is installed.")
        raise typer.Exit(code=1)
    raise typer.Exit(code=completed.returncode)


if __name__ == "__main__":
    app()
