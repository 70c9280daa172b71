"""Main Typer CLI application for the GeoTIFF overlay."""

import logging

import typer

app = typer.Typer(
    help="Overlay georeferenced rasters on web-mercator map viewports",
    no_args_is_help=True,
)


def configure_logging(level: str) -> None:
    """Configure root logging for CLI runs."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s: %(message)s",
    )


def _register_commands() -> None:
    """
    Import command modules to register commands with the app.

    Commands use the @app.command() decorator, which registers them when the
    module is imported.
    """
    from geotiff_overlay.cli import commands

    # Avoid "imported but unused" warnings by explicitly using the module
    _ = commands


_register_commands()


if __name__ == "__main__":
    app()
