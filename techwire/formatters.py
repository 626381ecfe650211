"""Output formatters for the CLI."""
import io
import json
from typing import Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from techwire.models import AggregatedPost, CacheStats
from techwire.utils import human_size, relative_time


class ConsoleFormatter:
    """Rich console output with relative timestamps."""

    def __init__(self, width: int = 120):
        self.width = width

    def _console(self) -> Console:
        # Recorded output is returned, not echoed
        return Console(record=True, width=self.width, file=io.StringIO())

    def posts(self, posts: List[AggregatedPost]) -> str:
        console = self._console()
        console.print(Panel(f"[bold cyan]techwire[/] top stories: {len(posts)}", expand=False))
        for i, p in enumerate(posts, 1):
            if p.created_at:
                ts = f"{p.created_at.strftime('%Y-%m-%d %H:%M')} ({relative_time(p.created_at)})"
            else:
                ts = "unknown"
            console.print(f"\n[bold white]{i}. {p.title}[/]")
            console.print(
                f"   [dim]{p.source_tag} | {p.score} points | {p.comment_count} comments | "
                f"by {p.author or 'unknown'} | {ts}[/]"
            )
            console.print(f"   [blue underline]{p.url}[/]")
            if p.discussion_url and p.discussion_url != p.url:
                console.print(f"   [dim]discuss: {p.discussion_url}[/]")
        return console.export_text()

    def source_stats(self, stats: Dict[str, dict]) -> str:
        console = self._console()
        table = Table(title="Sources")
        for col in ("Source", "Status", "Posts", "Provider", "Error"):
            table.add_column(col)
        for name, s in stats.items():
            table.add_row(
                name,
                "[green]ok[/]" if s["success"] else "[red]failed[/]",
                str(s["count"]),
                s.get("provider") or "",
                s.get("error") or "",
            )
        console.print(table)
        return console.export_text()

    def cache_stats(self, stats: Dict[str, CacheStats]) -> str:
        console = self._console()
        table = Table(title="Cache")
        for col in ("Tier", "Entries", "Expired", "Size"):
            table.add_column(col)
        for tier, s in stats.items():
            table.add_row(tier, str(s.count), str(s.expired_count), human_size(s.total_approx_size))
        console.print(table)
        return console.export_text()

    def providers(self, report: Dict[str, dict]) -> str:
        console = self._console()
        table = Table(title="Provider cascades")
        for col in ("Cascade", "Order", "Configured"):
            table.add_column(col)
        for name, info in report.items():
            configured = info.get("configured") or {}
            table.add_row(
                name,
                " -> ".join(info["order"] + ["fallback"]),
                ", ".join(f"{p}: {'yes' if ok else 'no'}" for p, ok in configured.items()) or "n/a",
            )
        console.print(table)
        return console.export_text()


class JSONFormatter:
    def __init__(self, indent: Optional[int] = 2):
        self.indent = indent

    def format(self, data) -> str:
        return json.dumps(data, indent=self.indent, ensure_ascii=False, default=str)
