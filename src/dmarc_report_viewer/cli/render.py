"""Rich console rendering of a published snapshot."""

from __future__ import annotations

from datetime import UTC, datetime

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dmarc_report_viewer.models.report import Report
from dmarc_report_viewer.models.state import AppState, Summary

_ERROR_PREVIEW_CHARS = 120


def _fmt_ts(ts: int) -> str:
    """Format a unix timestamp for display."""
    if ts <= 0:
        return "never"
    return datetime.fromtimestamp(ts, tz=UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


def summary_table(summary: Summary) -> Table:
    """Build the summary table."""
    table = Table(title="Summary", show_header=False)
    table.add_column("Metric", style="dim")
    table.add_column("Value", justify="right")
    table.add_row("Mails", str(summary.mail_count))
    table.add_row("XML files", str(summary.xml_file_count))
    table.add_row("Reports", str(summary.report_count))
    table.add_row("XML errors", str(summary.xml_error_count))
    table.add_row("Passed records", f"[green]{summary.pass_count}[/green]")
    table.add_row("Failed records", f"[red]{summary.fail_count}[/red]")
    table.add_row("Last update", _fmt_ts(summary.last_update))
    return table


def reports_table(reports: tuple[Report, ...] | list[Report]) -> Table:
    """Build one row per report."""
    table = Table(title="Reports")
    table.add_column("Organization")
    table.add_column("Report ID", overflow="fold")
    table.add_column("Domain")
    table.add_column("Policy")
    table.add_column("Begin")
    table.add_column("End")
    table.add_column("Records", justify="right")
    table.add_column("Pass", justify="right")
    table.add_column("Fail", justify="right")
    for report in reports:
        passed = sum(1 for record in report.records if record.dmarc_passed)
        table.add_row(
            escape(report.metadata.org_name),
            escape(report.metadata.report_id),
            escape(report.policy_published.domain),
            f"{report.policy_published.p.value} ({report.policy_published.pct}%)",
            _fmt_ts(report.metadata.date_range.begin),
            _fmt_ts(report.metadata.date_range.end),
            str(len(report.records)),
            f"[green]{passed}[/green]",
            f"[red]{len(report.records) - passed}[/red]",
        )
    return table


def render_state(console: Console, state: AppState, *, show_errors: bool = True) -> None:
    """Print a snapshot to the console.

    Args:
        console: Target console.
        state: Snapshot to render.
        show_errors: Whether to list the documents that failed to parse.
    """
    console.print(summary_table(state.summary))
    if state.reports:
        console.print(reports_table(state.reports))
    if show_errors and state.xml_errors:
        console.print(f"[bold red]{len(state.xml_errors)} XML file(s) failed to parse[/bold red]")
        for idx, err in enumerate(state.xml_errors, start=1):
            preview = " ".join(err.original_text.split())[:_ERROR_PREVIEW_CHARS]
            console.print(f"  [red]{idx}.[/red] {escape(err.error_message)}", highlight=False)
            console.print(f"     [dim]{escape(preview)}[/dim]", highlight=False)
