"""
Live dashboard for monitoring crawling progress using Rich.
"""

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from crawler import CrawlReport, WebCrawler


def format_duration(seconds: float) -> str:
    """Format seconds as HH:MM:SS."""
    return str(timedelta(seconds=int(seconds)))


class LiveDashboard:
    """Real-time terminal dashboard for monitoring crawler progress."""

    def __init__(self, crawler: "WebCrawler", console: Console = None):
        self.crawler = crawler
        self.console = console or Console()
        self._running = False

    def _make_header(self) -> Panel:
        header_text = Text()
        header_text.append("🕷  ", style="bold")
        header_text.append("Polite Web Crawler", style="bold cyan")
        header_text.append(f"  {self.crawler.settings.user_agent}", style="dim")
        return Panel(header_text, style="bold white on dark_blue")

    def _make_domains_table(self) -> Table:
        """Per-domain politeness state."""
        table = Table(title="🌍 Domains", expand=True, title_style="bold magenta")

        table.add_column("Domain", style="cyan", justify="left")
        table.add_column("robots.txt", justify="left")
        table.add_column("Crawl-delay", style="yellow", justify="right")
        table.add_column("Last response", style="green", justify="right")

        for domain, rules in list(self.crawler.rules.items()):
            group = rules.robots_group
            if group is None:
                robots = Text("none (allow all)", style="dim")
                delay = "-"
            else:
                robots = Text(f"{len(group.rules)} rules for {group.agent}")
                delay = f"{group.crawl_delay:.2f}s"
            table.add_row(domain, robots, delay, f"{rules.last_delay:.2f}s")

        return table

    def _make_status_panel(self) -> Panel:
        stats = self.crawler.stats
        settings = self.crawler.settings

        status_table = Table.grid(padding=(0, 2))
        status_table.add_column(justify="right", style="bold")
        status_table.add_column(justify="left")

        status_table.add_row("⏱️  Session:", format_duration(stats.elapsed_time))

        idle = stats.idle_seconds
        idle_style = "red" if idle > settings.crawl_timeout * 0.75 else "green"
        status_table.add_row(
            "💤 Idle:",
            Text(f"{idle:.1f}s / {settings.crawl_timeout:.0f}s", style=idle_style),
        )
        status_table.add_row("⚡ Speed:", f"{stats.urls_per_minute:.1f} pages/min")
        status_table.add_row("📝 Queue:", f"{stats.queue_size:,} URLs")
        status_table.add_row("👷 Workers:", f"{stats.active_workers} active")

        if stats.draining:
            status_table.add_row("🚦 State:", Text("draining", style="bold yellow"))
        else:
            status_table.add_row("🚦 State:", Text("running", style="bold green"))

        return Panel(status_table, title="🔧 Status", border_style="blue")

    def _make_counts_panel(self) -> Panel:
        stats = self.crawler.stats

        counts = Table.grid(padding=(0, 2))
        counts.add_column(justify="right", style="bold")
        counts.add_column(justify="left")

        counts.add_row("✅ Parsed:", f"{stats.pages_parsed:,}")
        counts.add_row("🔗 Links:", f"{stats.links_found:,}")
        counts.add_row("🚫 Skipped:", f"{stats.denied_urls:,}")
        counts.add_row("❌ Failed:", f"{stats.failed_urls:,}")
        counts.add_row("⌛ Timeouts:", f"{stats.timeouts:,}")

        return Panel(counts, title="📊 Counts", border_style="yellow")

    def _make_activity_panel(self) -> Panel:
        stats = self.crawler.stats

        if stats.current_urls:
            activity_text = Text()
            for i, url in enumerate(stats.current_urls[-5:]):
                if i > 0:
                    activity_text.append("\n")
                activity_text.append("→ ", style="green")
                activity_text.append(url[-100:], style="dim")
        else:
            activity_text = Text("Waiting for tasks...", style="dim italic")

        return Panel(activity_text, title="🌐 Current Activity", border_style="green")

    def _make_config_panel(self) -> Panel:
        settings = self.crawler.settings

        config_table = Table.grid(padding=(0, 2))
        config_table.add_column(justify="right", style="dim")
        config_table.add_column(justify="left")

        config_table.add_row("Max Depth:", f"{settings.max_depth or 'unlimited'}")
        config_table.add_row("Workers:", f"{settings.concurrency or 'unbounded'}")
        config_table.add_row("Delay:", f"{settings.politeness_delay:.2f}s")

        return Panel(config_table, title="⚙️  Config", border_style="dim")

    def generate_layout(self) -> Layout:
        """Generate the full dashboard layout."""
        layout = Layout()

        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="body"),
            Layout(name="footer", size=8)
        )

        layout["body"].split_row(
            Layout(name="main", ratio=2),
            Layout(name="sidebar", ratio=1)
        )

        layout["sidebar"].split_column(
            Layout(name="status"),
            Layout(name="counts"),
            Layout(name="config", size=6)
        )

        layout["header"].update(self._make_header())
        layout["main"].update(self._make_domains_table())
        layout["status"].update(self._make_status_panel())
        layout["counts"].update(self._make_counts_panel())
        layout["config"].update(self._make_config_panel())
        layout["footer"].update(self._make_activity_panel())

        return layout

    async def run(self, refresh_rate: float = 0.5):
        """Run the live dashboard."""
        self._running = True

        with Live(self.generate_layout(), console=self.console,
                  refresh_per_second=int(1/refresh_rate), screen=True) as live:
            while self._running:
                live.update(self.generate_layout())
                await asyncio.sleep(refresh_rate)

    def stop(self):
        self._running = False


def print_final_summary(crawler: "WebCrawler", report: "CrawlReport", console: Console = None):
    """Print final summary after crawling completes."""
    if console is None:
        console = Console()

    stats = crawler.stats

    console.print("\n")
    console.print(Panel.fit(
        "[bold green]✅ Crawling Complete![/bold green]",
        border_style="green"
    ))

    table = Table(title="📊 Final Results", expand=False)
    table.add_column("Outcome", style="cyan")
    table.add_column("URLs", style="green", justify="right")

    table.add_row("Parsed", f"{len(report.results):,}")
    table.add_row("Failed", f"{len(report.failures):,}")
    table.add_row("Skipped (visited / robots / scope)", f"{report.denied:,}")
    table.add_section()
    table.add_row("[bold]Links discovered[/bold]", f"[bold]{stats.links_found:,}[/bold]")

    console.print(table)

    if report.failures:
        console.print("\n[yellow]❌ Failures:[/yellow]")
        for failure in report.failures[:10]:
            tag = "timeout" if failure.timeout else "error"
            console.print(f"   ({tag}) {escape(failure.error)}")
        if len(report.failures) > 10:
            console.print(f"   ... and {len(report.failures) - 10} more")

    console.print(f"\n⏱️  Session runtime: {format_duration(stats.elapsed_time)}")
    console.print(f"⚡ Average speed: {stats.urls_per_minute:.1f} pages/minute")
