"""sleuth CLI - Gmail-style search over the local message store."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import ensure_dirs, get_config
from .models import ExitCode, Message, SearchOptions

app = typer.Typer(
    name="sleuth",
    help="Gmail-style structured search over a local message store.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


def output_json(data: dict | list) -> None:
    """Output data as JSON."""
    print(json.dumps(data, default=str, indent=2))


def exit_with_code(code: ExitCode, message: str | None = None) -> None:
    """Exit with a specific exit code and optional message."""
    if message:
        err_console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code.value)


def setup_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def resolve_user(user: str | None) -> str:
    try:
        return get_config().get_user(user)
    except ValueError as e:
        exit_with_code(ExitCode.INVALID_INPUT, str(e))


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Configure logging before any command runs."""
    setup_logging("DEBUG" if verbose else get_config().log_level)


# ============================================================================
# Search Commands
# ============================================================================


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query with operators")] = "",
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="User to search as")] = None,
    from_email: Annotated[Optional[str], typer.Option("--from", help="Sender contains")] = None,
    to_email: Annotated[Optional[str], typer.Option("--to", help="Recipient contains")] = None,
    subject: Annotated[Optional[str], typer.Option("--subject", help="Subject contains")] = None,
    date_from: Annotated[
        Optional[datetime], typer.Option("--after", help="Sent on or after", formats=["%Y-%m-%d"])
    ] = None,
    date_to: Annotated[
        Optional[datetime], typer.Option("--before", help="Sent on or before", formats=["%Y-%m-%d"])
    ] = None,
    has_attachments: Annotated[
        Optional[bool], typer.Option("--attachments/--no-attachments", help="Attachment presence")
    ] = None,
    is_read: Annotated[Optional[bool], typer.Option("--read/--unread", help="Read state")] = None,
    is_starred: Annotated[
        Optional[bool], typer.Option("--starred/--not-starred", help="Starred state")
    ] = None,
    account: Annotated[Optional[list[str]], typer.Option("--account", "-a", help="Account ID")] = None,
    label: Annotated[Optional[list[str]], typer.Option("--label", "-l", help="Label")] = None,
    limit: Annotated[Optional[int], typer.Option("--limit", "-n", help="Max results")] = None,
    offset: Annotated[int, typer.Option("--offset", help="Skip this many results")] = 0,
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Search messages with Gmail-style operators.

    Supports operators like:
    - from:alice, to:bob, cc:team, subject:"quarterly report"
    - has:attachment, filename:report.pdf, larger:10M, smaller:1M
    - is:unread, is:starred, is:important, in:inbox, label:work
    - after:2025-01-01, before:2025/12/31, newer_than:7d, older_than:1y
    - -from:spam, -subject:newsletter, -has:attachment, -is:read

    Examples:
        sleuth search "from:alice has:attachment larger:1M"
        sleuth search "-from:alice newer_than:2m" --json
    """
    ensure_dirs()
    from .api import SearchError, get_api

    user_id = resolve_user(user)

    fields = {
        "query": query or None,
        "from_email": from_email,
        "to_email": to_email,
        "subject": subject,
        "date_from": date_from,
        "date_to": date_to,
        "has_attachments": has_attachments,
        "is_read": is_read,
        "is_starred": is_starred,
        "account_ids": account or [],
        "labels": label or [],
        "offset": offset,
    }
    if limit is not None:
        fields["limit"] = limit

    try:
        options = SearchOptions(**fields)
    except ValidationError as e:
        exit_with_code(ExitCode.INVALID_INPUT, str(e))

    try:
        result = get_api().search_emails(user_id, options)
    except SearchError as e:
        exit_with_code(ExitCode.SEARCH_FAILED, f"{e}, try again.")

    if as_json:
        output_json(result.model_dump(mode="json", by_alias=True))
        return

    if result.parsed_query and result.parsed_query.unparsed:
        err_console.print(
            f"[yellow]Ignored:[/yellow] {' '.join(result.parsed_query.unparsed)}"
        )

    if not result.messages:
        console.print("[dim]No results found.[/dim]")
        if result.suggestions:
            console.print("[bold]Try:[/bold]")
            for suggestion in result.suggestions:
                console.print(f"  {suggestion}")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim", width=12)
    table.add_column("From", width=25)
    table.add_column("Subject", width=40)
    table.add_column("Date", width=12)
    table.add_column("Att", justify="right", width=3)

    for msg in result.messages:
        subject_str = msg.subject[:40]
        if not msg.is_read:
            subject_str = f"[bold]{subject_str}[/bold]"
        table.add_row(
            msg.message_id[:12],
            msg.from_.addr[:25],
            subject_str,
            msg.sent_at.strftime("%b %d"),
            str(msg.attachment_count) if msg.attachment_count else "",
        )

    console.print(table)
    shown_to = options.offset + len(result.messages)
    console.print(
        f"[dim]{options.offset + 1}-{shown_to} of {result.total_count}"
        f"{' (cached)' if result.from_cache else ''} in {result.search_time_ms:.0f}ms[/dim]"
    )


@app.command()
def operators(
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """List supported search operators."""
    from .operators import get_search_operator_help

    catalog = get_search_operator_help()

    if as_json:
        output_json([c.model_dump() for c in catalog])
        return

    for category in catalog:
        table = Table(title=category.category, show_header=True, header_style="bold")
        table.add_column("Operator", width=16)
        table.add_column("Description", width=44)
        table.add_column("Example", style="dim", width=28)
        for op in category.operators:
            table.add_row(op.operator, op.description, op.example)
        console.print(table)


@app.command()
def analytics(
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="User")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show top senders, monthly volume and read/unread counts."""
    ensure_dirs()
    from .api import SearchError, get_api

    user_id = resolve_user(user)

    try:
        stats = get_api().get_search_analytics(user_id)
    except SearchError as e:
        exit_with_code(ExitCode.SEARCH_FAILED, str(e))

    if as_json:
        output_json(stats.model_dump())
        return

    console.print(
        f"[bold]Read:[/bold] {stats.read_vs_unread.read}  "
        f"[bold]Unread:[/bold] {stats.read_vs_unread.unread}"
    )

    if stats.top_senders:
        table = Table(title="Top senders", show_header=True, header_style="bold")
        table.add_column("Sender", width=40)
        table.add_column("Count", justify="right", width=6)
        for sender in stats.top_senders:
            table.add_row(sender.email, str(sender.count))
        console.print(table)

    if stats.emails_by_month:
        table = Table(title="By month", show_header=True, header_style="bold")
        table.add_column("Month", width=8)
        table.add_column("Count", justify="right", width=6)
        for month in stats.emails_by_month:
            table.add_row(month.month, str(month.count))
        console.print(table)


@app.command()
def load(
    path: Annotated[Path, typer.Argument(help="JSON file holding a list of messages")],
    user: Annotated[
        Optional[str], typer.Option("--user", "-u", help="Owner to assign to every message")
    ] = None,
) -> None:
    """Load messages from a JSON export into the store."""
    ensure_dirs()
    from .api import get_api

    if not path.exists():
        exit_with_code(ExitCode.NOT_FOUND, f"File not found: {path}")

    try:
        raw = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        exit_with_code(ExitCode.INVALID_INPUT, f"Invalid JSON: {e}")

    if not isinstance(raw, list):
        exit_with_code(ExitCode.INVALID_INPUT, "Expected a JSON list of messages")

    try:
        messages = [
            Message.model_validate({**item, "owner_id": user} if user else item) for item in raw
        ]
    except ValidationError as e:
        exit_with_code(ExitCode.INVALID_INPUT, str(e))

    count = get_api().load_messages(messages)
    console.print(f"[green]Loaded {count} messages.[/green]")


# ============================================================================
# Cache Management
# ============================================================================

cache_app = typer.Typer(help="Result cache commands")
app.add_typer(cache_app, name="cache")


@cache_app.command(name="clear")
def cache_clear() -> None:
    """Clear cached search result pages."""
    ensure_dirs()
    from .api import get_api

    removed = get_api().clear_cache()
    console.print(f"[green]Cleared {removed} cached pages.[/green]")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"sleuth {__version__}")


@app.command(name="mcp-server")
def mcp_server() -> None:
    """Start the MCP (Model Context Protocol) server for LLM integration.

    Example Claude Desktop configuration:
    {
        "mcpServers": {
            "sleuth": {
                "command": "sleuth",
                "args": ["mcp-server"]
            }
        }
    }
    """
    from .mcp_server import run_server

    run_server()


if __name__ == "__main__":
    app()
