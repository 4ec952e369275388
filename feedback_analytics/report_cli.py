#!/usr/bin/env python3
"""Interactive terminal report for churn risk and feedback segments.

This allows users to:
1. Pick a tenant and a lookback window
2. See the tenant's churn risk score, factors and predictions
3. Browse feedback segments by segment type
"""
import asyncio
import sys
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box
from rich.prompt import Prompt

from database import DatabaseWindowProvider, init_db
from errors import FeedbackAnalyticsError
from schemas import RiskAssessment, RiskOptions, SegmentOptions, SegmentationResult, TimeRange
from segmentation import summarize_insights
from service import FeedbackAnalyticsService


console = Console()

RISK_COLORS = {
    "low": "green",
    "medium": "yellow",
    "high": "dark_orange",
    "critical": "bold red",
}


class FeedbackReport:
    """Interactive churn risk and segmentation report."""

    def __init__(self, service: FeedbackAnalyticsService = None):
        self.service = service or FeedbackAnalyticsService(DatabaseWindowProvider())

    def display_risk(self, assessment: RiskAssessment):
        """Display a churn risk assessment."""
        level = assessment.risk_level.value
        color = RISK_COLORS.get(level, "white")

        summary = f"""
[bold]Risk Score:[/bold] [{color}]{assessment.risk_score:.1f} ({level})[/{color}]
[bold]Retention Probability:[/bold] {assessment.retention_probability:.1f}%
[bold]Feedback Analyzed:[/bold] {assessment.metadata.total_feedback}
        """
        console.print(Panel(summary, title="📉 Churn Risk", border_style=color, box=box.ROUNDED))

        if assessment.churn_factors:
            table = Table(title="Churn Factors", box=box.ROUNDED, header_style="bold magenta")
            table.add_column("Factor", style="cyan")
            table.add_column("Severity")
            table.add_column("Description", style="green")
            for factor in assessment.churn_factors:
                table.add_row(factor.type.value, factor.severity.value, factor.description)
            console.print(table)
        else:
            console.print("[green]No churn factors detected[/green]")

        for prediction in assessment.predictions:
            line = f"→ {prediction.prediction}"
            if prediction.actions:
                line += f" [dim]({', '.join(prediction.actions)})[/dim]"
            console.print(line)

    def display_segments(self, result: SegmentationResult):
        """Display segments of one type with their headline insights."""
        if not result.segments:
            console.print(f"[yellow]No {result.segment_type.value} segments matched any feedback[/yellow]")
            return

        table = Table(
            title=f"📊 {result.segment_type.value.title()} Segments",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold magenta"
        )
        table.add_column("Segment", style="cyan")
        table.add_column("Count", justify="right")
        table.add_column("Share", justify="right")
        table.add_column("Avg Sentiment", justify="right")
        table.add_column("Top Categories", style="green")

        for segment in result.segments:
            stats = segment.stats
            table.add_row(
                segment.name,
                str(stats.count),
                f"{stats.percentage:.1f}%",
                f"{stats.avg_sentiment:+.2f}",
                ", ".join(entry.category for entry in stats.top_categories)
            )
        console.print(table)

        for insight in summarize_insights(result.segments, result.segment_type):
            console.print(f"[bold]{insight.title}:[/bold] {insight.description}")

    def display_welcome(self):
        """Display welcome message."""
        welcome = """
[bold cyan]Customer Feedback Analytics[/bold cyan]
[dim]Interactive Report Mode[/dim]

Views:
  • risk - churn risk score, factors and predictions
  • persona, lifecycle, plan, behavior, geographic, temporal - feedback segments
        """
        console.print(Panel(welcome, border_style="bold blue", box=box.DOUBLE, padding=(1, 2)))
        console.print()

    async def run_interactive(self):
        """Run the interactive report loop."""
        self.display_welcome()

        tenant_id = Prompt.ask("Tenant ID")
        time_range = TimeRange(Prompt.ask(
            "Time range",
            choices=[t.value for t in TimeRange],
            default=TimeRange.THIRTY_DAYS.value
        ))
        views = ["risk"] + [t.value for t in self.service.classifier.segment_types()]

        while True:
            console.print()
            view = Prompt.ask("View (or 'quit' to exit)", default="risk")

            if view.lower() in ['quit', 'exit', 'q']:
                console.print("\n[cyan]Goodbye![/cyan]\n")
                break

            if view not in views:
                console.print(f"[red]⚠️  Unknown view, choose one of: {', '.join(views)}[/red]")
                continue

            try:
                if view == "risk":
                    assessment = await self.service.compute_churn_risk(
                        tenant_id, RiskOptions(time_range=time_range, include_details=False)
                    )
                    self.display_risk(assessment)
                else:
                    result = await self.service.classify_segments(
                        tenant_id, view, SegmentOptions(time_range=time_range)
                    )
                    self.display_segments(result)
            except FeedbackAnalyticsError as e:
                console.print(f"\n[yellow]⚠️  Could not build report: {e}[/yellow]")

            stats = self.service.cache.get_stats()
            console.print(
                f"\n[dim]Cache: {stats['hits']} hits, "
                f"{stats['misses']} misses, "
                f"{stats['size']} entries[/dim]"
            )


async def main():
    """Main entry point."""
    console.print("[cyan]Initializing database...[/cyan]")
    await init_db()

    report = FeedbackReport()

    try:
        await report.run_interactive()
    except KeyboardInterrupt:
        console.print("\n\n[cyan] Goodbye![/cyan]\n")
        sys.exit(0)


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
