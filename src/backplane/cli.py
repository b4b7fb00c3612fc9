"""Click command-line entry point for backplane."""

from __future__ import annotations

import logging
import sys

import click

from backplane import __version__
from backplane.endpoints.errors import (
    DescriptorParseError,
    OpenError,
    ReadError,
    SettingsError,
)
from backplane.formatting import print_error, print_route, print_stats
from backplane.router import DEFAULT_CHUNK_SIZE, Router
from backplane.settings import RouteConfig, load_config, save_config

logger = logging.getLogger(__name__)


def _resolve_config(
    config_path: str | None,
    input_text: str | None,
    output_texts: tuple[str, ...],
    chunk_size: int | None,
) -> RouteConfig:
    """Merge a saved config with command-line overrides."""
    base = load_config(config_path) if config_path else None
    if input_text is None and base is None:
        msg = "an input endpoint is required (--input or --config)"
        raise click.UsageError(msg)
    if not output_texts and base is None:
        msg = "at least one output endpoint is required (--output or --config)"
        raise click.UsageError(msg)

    if base is None:
        return RouteConfig.from_strings(
            input_text,  # type: ignore[arg-type]
            output_texts,
            chunk_size=chunk_size or DEFAULT_CHUNK_SIZE,
        )
    return RouteConfig.from_strings(
        input_text or str(base.input),
        output_texts or tuple(str(o) for o in base.outputs),
        chunk_size=chunk_size or base.chunk_size,
    )


@click.command()
@click.version_option(version=__version__, prog_name="backplane")
@click.option(
    "-i",
    "--input",
    "input_text",
    metavar="DESCRIPTOR",
    help="Input endpoint, e.g. file:data.bin or tcp_server:0.0.0.0:8000.",
)
@click.option(
    "-o",
    "--output",
    "output_texts",
    metavar="DESCRIPTOR",
    multiple=True,
    help="Output endpoint; repeat for fan-out.",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Load the route from a JSON config file.",
)
@click.option(
    "--chunk-size",
    type=click.IntRange(min=1),
    default=None,
    help=f"Bytes read from the input per step (default {DEFAULT_CHUNK_SIZE}).",
)
@click.option(
    "--save-config",
    "save_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the resolved route to a JSON config file.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Print the resolved route and exit without opening endpoints.",
)
@click.option(
    "--json",
    "use_json",
    is_flag=True,
    default=False,
    help="Output JSON instead of text.",
)
@click.option(
    "--verbose",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
def cli(
    input_text: str | None,
    output_texts: tuple[str, ...],
    config_path: str | None,
    chunk_size: int | None,
    save_path: str | None,
    dry_run: bool,
    use_json: bool,
    verbose: bool,
) -> None:
    """Route bytes from one input endpoint to one or more outputs.

    Endpoints are file:PATH, tcp_client:HOST:PORT, tcp_server:HOST:PORT
    or udp:HOST:PORT.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    try:
        config = _resolve_config(config_path, input_text, output_texts, chunk_size)
    except (DescriptorParseError, SettingsError) as e:
        print_error(str(e), use_json)
        sys.exit(1)

    if dry_run or not use_json:
        print_route(config, use_json)

    if save_path is not None:
        try:
            save_config(config, save_path)
        except SettingsError as e:
            print_error(str(e), use_json)
            sys.exit(1)

    if dry_run:
        return

    try:
        router = Router.from_descriptors(
            config.input, config.outputs, chunk_size=config.chunk_size
        )
    except OpenError as e:
        print_error(str(e), use_json)
        sys.exit(1)

    try:
        stats = router.run()
    except ReadError as e:
        print_error(f"input failed: {e}", use_json)
        sys.exit(1)

    print_stats(stats, config, use_json)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
