"""Terminal rendering of collection, validation and rollout results."""

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from volshrink.constraint_collector import CollectionResult
from volshrink.input_parsing import format_size
from volshrink.rollout_executor import RolloutReport
from volshrink.shrink_validator import ValidationResult


class ReportRenderer:
    """Render session phases as rich tables."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def show_constraints(self, result: CollectionResult) -> None:
        table = Table(title="Partition Constraints", show_header=True)
        table.add_column("Target", style="cyan", no_wrap=True)
        table.add_column("Status", style="white")
        table.add_column("Current Size", style="green", justify="right")
        table.add_column("Minimum Size", style="yellow", justify="right")
        table.add_column("Reclaimable", style="blue", justify="right")

        for outcome in result.outcomes:
            name = escape(outcome.target.name)
            if outcome.constraint is not None:
                c = outcome.constraint
                table.add_row(
                    name,
                    "[green]ok[/green]",
                    format_size(c.current_size),
                    format_size(c.minimum_size),
                    format_size(c.reclaimable),
                )
            else:
                kind = outcome.error_kind.label if outcome.error_kind else "error"
                table.add_row(name, f"[red]{escape(kind)}[/red]", "-", "-", "-")

        self.console.print(table)

        if result.successes:
            self.console.print(
                f"Fleet floor (largest minimum size): [bold]{format_size(result.aggregate_floor)}[/bold]"
            )
        self.show_collection_errors(result)

    def show_collection_errors(self, result: CollectionResult) -> None:
        for outcome in result.errors:
            kind = outcome.error_kind.label if outcome.error_kind else "error"
            self.console.print(
                f"[red]✗ {escape(outcome.target.name)}: {escape(kind)}: {escape(outcome.error or '')}[/red]"
            )

    def show_validation(self, validation: ValidationResult) -> None:
        for advisory in validation.advisories:
            self.console.print(f"[yellow]Warning: {escape(advisory)}[/yellow]")

        table = Table(title="Planned Resize", show_header=True)
        table.add_column("Target", style="cyan", no_wrap=True)
        table.add_column("Current Size", style="white", justify="right")
        table.add_column("New Size", style="green", justify="right")
        table.add_column("Verdict", style="white")

        rejected = set(validation.rejected_targets)
        for plan in validation.plans:
            verdict = "[red]rejected[/red]" if plan.target in rejected else "[green]ok[/green]"
            table.add_row(
                escape(plan.target),
                format_size(plan.current_size),
                format_size(plan.target_size),
                verdict,
            )
        self.console.print(table)

        for rejection in validation.rejections:
            self.console.print(
                f"[red]✗ {escape(rejection.target)}: {escape(rejection.message)}[/red]"
            )

    def show_rollout(self, report: RolloutReport) -> None:
        table = Table(title="Rollout Results", show_header=True)
        table.add_column("Target", style="cyan", no_wrap=True)
        table.add_column("Result", style="white")
        table.add_column("Size", style="green", justify="right")
        table.add_column("Details", style="white")
        table.add_column("Duration", style="white", justify="right")

        for r in report.results:
            status = "[green]success[/green]" if r.success else "[red]failed[/red]"
            size = format_size(r.resulting_size) if r.resulting_size is not None else "-"
            details = r.message if r.success else f"{r.error_kind.label if r.error_kind else 'error'}: {r.message}"
            table.add_row(escape(r.target), status, size, escape(details), f"{r.duration:.1f}s")

        self.console.print(table)
        self.console.print(report.format_summary())


__all__ = ["ReportRenderer"]
