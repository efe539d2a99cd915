"""CLI application using Typer for the ACE citation extractor."""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..cases.checklist import QC_CHECKLIST
from ..cases.models import CaseStatus
from ..cases.session import Session
from ..cases.state import FinalizationBlocked
from ..config.settings import settings
from ..io.history import HistoryStore
from ..scheduler.progress import print_summary
from ..utils.logging import get_logger
from ..verification.engine import VerificationInputs, verify as run_verification

app = typer.Typer(
    name="ace",
    help="ACE - arXiv metadata extraction with cross-source verification",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

_STATUS_STYLE = {
    "SUCCESS": "green",
    "MATCH_BY_TITLE": "cyan",
    "VERSION_MISMATCHED": "yellow",
    "SUMMARY_MISMATCHED": "red",
    "AUTHOR_MISMATCH": "yellow",
    "CHECK_REQUIRED": "yellow",
}


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Hostname to bind the web server to."),
    port: int = typer.Option(8000, "--port", help="Port for the web server."),
    reload: bool = typer.Option(False, "--reload/--no-reload", help="Enable auto-reload (development only)."),
) -> None:
    """Start the JSON operator API."""
    from ..web.app import start_server

    console.print(f"[bold blue]Starting ACE console[/bold blue] at http://{host}:{port}")
    start_server(host=host, port=port, reload=reload)


@app.command()
def process(
    input_dir: Path = typer.Argument(..., exists=True, file_okay=False, help="Directory with PDF/HTML/scrape/API files"),
    output_dir: Path = typer.Option(settings.output_dir, "--output", "-o", help="Where XML files are written"),
    concurrency: int = typer.Option(settings.concurrency_limit, "--concurrency", "-c", min=1, max=5),
    manual_id: Optional[str] = typer.Option(None, "--manual-id", help="Identifier override (single case only)"),
) -> None:
    """Group files into cases, extract them all and export the verified records."""
    asyncio.run(_process(input_dir, output_dir, concurrency, manual_id))


async def _process(input_dir: Path, output_dir: Path, concurrency: int, manual_id: Optional[str]) -> None:
    session = Session(concurrency=concurrency)
    try:
        cases = session.import_directory(input_dir)
        if not cases:
            console.print("[yellow]No cases found[/yellow]")
            raise typer.Exit(code=1)
        console.print(f"[cyan]Found {len(cases)} case(s) in {input_dir}[/cyan]")

        if manual_id:
            if len(cases) != 1:
                console.print("[red]Error: --manual-id needs exactly one case[/red]")
                raise typer.Exit(code=2)
            session.process(cases[0].case_id, manual_id=manual_id)
        else:
            session.process_all()
        await session.wait()

        table = Table(title="Cases")
        table.add_column("Case", style="cyan")
        table.add_column("Status")
        table.add_column("Verification")
        table.add_column("Paper ID")
        table.add_column("Output / Error")

        for case in session.list_cases():
            if case.status != CaseStatus.SUCCESS:
                table.add_row(case.case_id, f"[red]{case.status.value}[/red]", "-", "-", case.error_message or "")
                continue
            status = case.verification_status.value
            style = _STATUS_STYLE.get(status, "white")
            try:
                path = str(session.export(case.case_id, output_dir))
            except FinalizationBlocked:
                path = "[yellow]held: override required[/yellow]"
            table.add_row(case.case_id, "[green]success[/green]", f"[{style}]{status}[/{style}]", case.extracted.paper_id, path)

        console.print(table)
        print_summary(session.stats(), console)
    finally:
        await session.invoker.close()
        session.history.close()


def _names(value: Optional[str]) -> List[str]:
    return [n.strip() for n in (value or "").split(";") if n.strip()]


@app.command()
def verify(
    pdf_id: Optional[str] = typer.Option(None, "--pdf-id"),
    pdf_version: Optional[str] = typer.Option(None, "--pdf-version"),
    html_id: Optional[str] = typer.Option(None, "--html-id"),
    html_version: Optional[str] = typer.Option(None, "--html-version"),
    scrape_id: Optional[str] = typer.Option(None, "--scrape-id"),
    scrape_version: Optional[str] = typer.Option(None, "--scrape-version"),
    api_id: Optional[str] = typer.Option(None, "--api-id"),
    api_version: Optional[str] = typer.Option(None, "--api-version"),
    pdf_title: Optional[str] = typer.Option(None, "--pdf-title"),
    html_title: Optional[str] = typer.Option(None, "--html-title"),
    pdf_authors: Optional[str] = typer.Option(None, "--pdf-authors", help="Semicolon-separated names"),
    api_authors: Optional[str] = typer.Option(None, "--api-authors", help="Semicolon-separated names"),
) -> None:
    """Run the verification engine on explicit per-source values."""
    result = run_verification(
        VerificationInputs(
            pdf_id=pdf_id,
            pdf_version=pdf_version,
            html_id=html_id,
            html_version=html_version,
            scrape_id=scrape_id,
            scrape_version=scrape_version,
            api_id=api_id,
            api_version=api_version,
            pdf_title=pdf_title,
            html_title=html_title,
            pdf_author_names=_names(pdf_authors),
            api_author_names=_names(api_authors),
        )
    )
    style = _STATUS_STYLE.get(result.status.value, "white")
    table = Table(title="Verification", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Status", f"[{style}]{result.status.value}[/{style}]")
    table.add_row("Message", result.message)
    table.add_row("Authoritative ID", result.authoritative_id or "-")
    table.add_row("Disagreeing", ", ".join(s.value for s in result.disagreeing_sources) or "-")
    table.add_row("Title match", str(result.title_comparison.match))
    table.add_row("Title source", result.title_comparison.authoritative_source.value)
    table.add_row("Authors", result.author_comparison.rationale)
    console.print(table)


@app.command()
def checklist() -> None:
    """Show the QC checklist; critical items must be ticked before finalizing a case."""
    table = Table(title="QC Checklist")
    table.add_column("Item", style="cyan")
    table.add_column("Check")
    table.add_column("Critical", justify="center")
    for entry in QC_CHECKLIST:
        table.add_row(entry.item.value, entry.label, "[red]yes[/red]" if entry.critical else "no")
    console.print(table)


@app.command()
def history(
    db: Path = typer.Option(settings.history_db, "--db", help="History database"),
    limit: int = typer.Option(10, "--limit", "-n", min=1),
) -> None:
    """List archived sessions, newest first."""
    store = HistoryStore(db)
    try:
        sessions = store.load_all()[:limit]
    finally:
        store.close()
    if not sessions:
        console.print("[yellow]No archived sessions[/yellow]")
        return

    table = Table(title="Session History")
    table.add_column("Session", style="cyan")
    table.add_column("Archived")
    table.add_column("Cases", justify="right")
    table.add_column("Completed", justify="right")
    table.add_column("Avg Extraction", justify="right")
    for entry in sessions:
        table.add_row(
            entry.session_id,
            entry.timestamp.strftime("%Y-%m-%d %H:%M"),
            str(entry.stats.total),
            str(entry.stats.completed),
            f"{entry.stats.avg_duration:.1f}s",
        )
    console.print(table)


if __name__ == "__main__":
    app()
