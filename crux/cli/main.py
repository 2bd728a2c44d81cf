"""Main entry point for the crux command line interface."""

from __future__ import annotations

import typer

from crux.core.logging import configure_logging

from .cache import register as register_cache_commands
from .formatters import create_formatter
from .market import register as register_market_commands


def create_app() -> typer.Typer:
    """Create a Typer application instance for crux."""

    app = typer.Typer(add_completion=False, help="crux command line interface")

    @app.callback()
    def main(
        ctx: typer.Context,
        format: str = typer.Option("table", "--format", "-f", help="Output format (table or jsonl).", show_default=True),
        log_level: str = typer.Option("WARNING", "--log-level", help="Logging level.", show_default=True),
        no_color: bool = typer.Option(False, "--no-color", help="Disable colorized table output."),
    ) -> None:
        ctx.ensure_object(dict)
        normalized_format = format.strip().lower()
        try:
            create_formatter(normalized_format, no_color=no_color)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--format") from exc

        ctx.obj.update({"format": normalized_format, "no_color": no_color})
        configure_logging(level=log_level.upper())

    @app.command("serve")
    def serve_command(
        host: str | None = typer.Option(None, "--host", help="Bind address."),
        port: int | None = typer.Option(None, "--port", help="Bind port."),
        reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
    ) -> None:
        """Run the HTTP service with uvicorn."""
        import uvicorn

        from crux.core.config import ConfigManager

        config = ConfigManager().get_config()
        configure_logging(level=config.logging.level, file_output=bool(config.logging.file), file_path=config.logging.file)
        uvicorn.run(
            "crux.web.app:create_app",
            factory=True,
            host=host or config.server.host,
            port=port or config.server.port,
            reload=reload,
            log_level="info",
        )

    register_cache_commands(app)
    register_market_commands(app)
    return app


app = create_app()
