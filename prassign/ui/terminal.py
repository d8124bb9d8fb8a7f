"""Rich rendering for the prassign command line."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from prassign.models.schemas import PullRequestShort, Team, UserReviewStat


class TerminalUI:
    """Rich-based terminal output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ── Status lines ─────────────────────────────────────────────────────

    def show_success(self, message: str) -> None:
        self.console.print(f"[bold green]✓[/] {message}")

    def show_error(self, message: str) -> None:
        self.console.print(f"[bold red]✗[/] {message}")

    # ── Tables ───────────────────────────────────────────────────────────

    def display_team(self, team: Team) -> None:
        table = Table(title=f"Team {team.team_name}")
        table.add_column("User ID", style="bold")
        table.add_column("Username")
        table.add_column("Active")
        for member in sorted(team.members, key=lambda m: m.user_id):
            table.add_row(
                member.user_id,
                member.username,
                "[green]yes[/]" if member.is_active else "[red]no[/]",
            )
        self.console.print(table)

    def display_stats(self, stats: list[UserReviewStat]) -> None:
        if not stats:
            self.console.print("[dim]No users yet.[/]")
            return

        table = Table(title="Review Assignments")
        table.add_column("User ID", style="bold")
        table.add_column("Username")
        table.add_column("Active")
        table.add_column("Reviews", justify="right")
        for stat in stats:
            table.add_row(
                stat.user_id,
                stat.username,
                "yes" if stat.is_active else "no",
                str(stat.review_count),
            )
        self.console.print(table)

    def display_reviews(self, user_id: str, prs: list[PullRequestShort]) -> None:
        if not prs:
            self.console.print(f"[dim]{user_id} has no pull requests to review.[/]")
            return

        table = Table(title=f"Reviews for {user_id}")
        table.add_column("Pull Request", style="bold")
        table.add_column("Title")
        table.add_column("Author")
        table.add_column("Status")
        for pr in prs:
            status_style = "green" if pr.status.value == "OPEN" else "magenta"
            table.add_row(
                pr.pull_request_id,
                pr.pull_request_name,
                pr.author_id,
                f"[{status_style}]{pr.status.value}[/]",
            )
        self.console.print(table)
