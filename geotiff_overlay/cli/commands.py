"""Overlay CLI commands."""

import json
from enum import Enum
from pathlib import Path
from typing import Optional

import typer

from geotiff_overlay.cli.main import app, configure_logging
from geotiff_overlay.drivers import initialize_drivers
from geotiff_overlay.errors import OverlayError
from geotiff_overlay.footprint import compute_footprint
from geotiff_overlay.overlay_config import OverlayConfig, load_config
from geotiff_overlay.overlay_engine import OverlayEngine, OverlayStatus
from geotiff_overlay.raster_source import RasterSource
from geotiff_overlay.recomposition import InlineScheduler, ResamplingMethod
from geotiff_overlay.render_surface import ImageFileSurface
from geotiff_overlay.reprojector import GeoReprojector
from geotiff_overlay.viewport import WebMercatorViewport


class OutputFormat(str, Enum):
    """Output format options."""

    HUMAN = "human"
    JSON = "json"


@app.command("render")
def render_command(
    raster: Path = typer.Argument(..., help="GeoTIFF to overlay"),
    lat: float = typer.Option(..., help="Viewport center latitude"),
    lon: float = typer.Option(..., help="Viewport center longitude"),
    zoom: float = typer.Option(16.0, help="Web-mercator zoom level"),
    width: int = typer.Option(1280, help="Viewport width in pixels"),
    height: int = typer.Option(720, help="Viewport height in pixels"),
    output: Path = typer.Option(Path("overlay.png"), "--output", "-o", help="Output PNG path"),
    config: Optional[Path] = typer.Option(None, help="Overlay configuration YAML"),
    resampling: Optional[ResamplingMethod] = typer.Option(
        None, help="Override the configured resampling method"
    ),
    log_level: Optional[str] = typer.Option(None, help="Override the configured log level"),
) -> None:
    """
    Render a GeoTIFF overlay over a web-mercator viewport into a PNG.

    The PNG is the viewport-sized, transparent overlay layer: it can be
    stacked on top of a basemap screenshot of the same view.

    Example:
        geotiff-overlay render ortho.tif --lat 39.6405 --lon -0.2302 --zoom 18
        geotiff-overlay render ortho.tif --lat 39.6405 --lon -0.2302 -o out/overlay.png
    """
    try:
        overlay_config = load_config(str(config) if config else None)
        if log_level is not None:
            overlay_config = OverlayConfig.from_dict({**overlay_config.to_dict(), 'log_level': log_level})
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if resampling is not None:
        overlay_config.resampling = resampling

    configure_logging(overlay_config.log_level)
    initialize_drivers(overlay_config.gdal_options)

    try:
        viewport = WebMercatorViewport(lat, lon, zoom, width, height)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    surface = ImageFileSurface(str(output), (width, height))
    with OverlayEngine(surface, overlay_config, scheduler=InlineScheduler()) as engine:
        engine.attach_viewport(viewport)
        engine.set_source(str(raster))

        if engine.status is OverlayStatus.ERROR:
            typer.echo(f"Error: {engine.status_message}", err=True)
            raise typer.Exit(1)

        rect = engine.screen_rect
        if engine.publication is None:
            surface.request_redraw()
            typer.echo("Overlay is outside the viewport; wrote an empty layer")
        elif rect is not None:
            typer.echo(
                f"Overlay drawn at x={rect.x:.1f} y={rect.y:.1f} "
                f"size={rect.width:.1f}x{rect.height:.1f}"
            )
    typer.echo(f"Wrote {output}")


@app.command("footprint")
def footprint_command(
    raster: Path = typer.Argument(..., help="GeoTIFF to inspect"),
    display_crs: str = typer.Option("EPSG:4326", help="CRS to reproject the footprint into"),
    output_format: OutputFormat = typer.Option(
        OutputFormat.HUMAN,
        "--format",
        "-f",
        help="Output format",
    ),
) -> None:
    """
    Print the footprint of a GeoTIFF in the display CRS.

    Example:
        geotiff-overlay footprint ortho.tif
        geotiff-overlay footprint ortho.tif --format json
    """
    try:
        with RasterSource.open(str(raster), require_geotransform=True) as source:
            reprojector = GeoReprojector.build(source.crs(), display_crs)
            footprint = compute_footprint(source.geotransform(), source.width, source.height, reprojector)
    except OverlayError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if output_format == OutputFormat.JSON:
        data = {
            "raster": str(raster),
            "display_crs": display_crs if footprint.projected else None,
            "projected": footprint.projected,
            "skewed": footprint.skewed,
            "corners": [list(c) for c in footprint.corners],
            "bounds": {
                "min_x": footprint.min_x,
                "min_y": footprint.min_y,
                "max_x": footprint.max_x,
                "max_y": footprint.max_y,
            },
        }
        typer.echo(json.dumps(data, indent=2))
        return

    typer.echo(f"Raster: {raster}")
    typer.echo(f"CRS: {display_crs if footprint.projected else 'source (unprojected)'}")
    typer.echo(f"  min x: {footprint.min_x:.6f}")
    typer.echo(f"  min y: {footprint.min_y:.6f}")
    typer.echo(f"  max x: {footprint.max_x:.6f}")
    typer.echo(f"  max y: {footprint.max_y:.6f}")
    if footprint.skewed:
        typer.echo("  note: rotated geotransform, bounds are an axis-aligned approximation")
