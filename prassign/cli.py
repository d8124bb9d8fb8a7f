"""prassign CLI entry point."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console

from prassign.config import AssignmentConfig
from prassign.errors import AssignmentError, StorageError

app = typer.Typer(
    name="prassign",
    help="Assign and reassign pull-request reviewers within a team",
    no_args_is_help=True,
)
console = Console()

T = TypeVar("T")

DatabaseOption = typer.Option(
    None, "--database-url", "-d", help="Database URL (or memory://)"
)
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging")


def _setup_logging(verbose: bool, level: str = "INFO") -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))


def _run(config: AssignmentConfig, command: Callable[..., Awaitable[T]]) -> T:
    """Open storage, run one engine command, and close storage again."""
    from prassign.assignment.engine import AssignmentEngine
    from prassign.ui.terminal import TerminalUI

    async def runner() -> T:
        storage = config.create_storage()
        try:
            await storage.init_schema()
            engine = AssignmentEngine.from_storage(storage, config=config)
            return await asyncio.wait_for(command(engine), config.command_timeout)
        finally:
            await storage.close()

    try:
        return asyncio.run(runner())
    except StorageError as exc:
        logging.getLogger(__name__).debug("Storage failure", exc_info=exc)
        TerminalUI(console).show_error("storage is unavailable")
        raise typer.Exit(code=1)
    except AssignmentError as exc:
        TerminalUI(console).show_error(exc.message)
        raise typer.Exit(code=1)
    except asyncio.TimeoutError:
        TerminalUI(console).show_error("command timed out")
        raise typer.Exit(code=1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    database_url: Optional[str] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Start the HTTP API."""
    import uvicorn

    from prassign.api.app import create_app

    config = AssignmentConfig.from_env(
        host=host, port=port, database_url=database_url
    )
    _setup_logging(verbose, config.log_level)
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level="debug" if verbose else config.log_level.lower(),
    )


@app.command("init-db")
def init_db(
    database_url: Optional[str] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Create the database schema if it does not exist."""
    from prassign.ui.terminal import TerminalUI

    config = AssignmentConfig.from_env(database_url=database_url)
    _setup_logging(verbose, config.log_level)

    async def noop(engine) -> None:
        return None

    _run(config, noop)
    TerminalUI(console).show_success("Database schema is ready.")


@app.command()
def stats(
    database_url: Optional[str] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show how many pull requests each user is reviewing."""
    from prassign.ui.terminal import TerminalUI

    config = AssignmentConfig.from_env(database_url=database_url)
    _setup_logging(verbose, config.log_level)

    result = _run(config, lambda engine: engine.get_review_stats())
    TerminalUI(console).display_stats(result)


@app.command()
def team(
    team_name: str = typer.Argument(..., help="Team name"),
    database_url: Optional[str] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show a team and its members."""
    from prassign.ui.terminal import TerminalUI

    config = AssignmentConfig.from_env(database_url=database_url)
    _setup_logging(verbose, config.log_level)

    result = _run(config, lambda engine: engine.get_team(team_name))
    TerminalUI(console).display_team(result)


@app.command()
def reviews(
    user_id: str = typer.Argument(..., help="Reviewer user id"),
    database_url: Optional[str] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """List the pull requests a user is assigned to review."""
    from prassign.ui.terminal import TerminalUI

    config = AssignmentConfig.from_env(database_url=database_url)
    _setup_logging(verbose, config.log_level)

    result = _run(config, lambda engine: engine.get_reviews_for_user(user_id))
    TerminalUI(console).display_reviews(user_id, result)


if __name__ == "__main__":
    app()
