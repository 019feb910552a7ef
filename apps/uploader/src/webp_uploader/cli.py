"""CLI for converting local images into a directory-backed store."""

from __future__ import annotations

import dataclasses
import json
import logging
import sys
from pathlib import Path

import click

from webp_converter import DerivativePipeline, PipelineError
from webp_shared.policy import Policy, PolicyError, parse_sizes

from .config import UploaderConfig
from .sources import source_from_path

logger = logging.getLogger(__name__)


def _build_policy(
    quality: int | None,
    keep_original: bool | None,
    sizes: tuple[str, ...],
) -> Policy:
    overrides: dict[str, object] = {}
    if quality is not None:
        overrides["quality"] = quality
    if keep_original is not None:
        overrides["keep_original"] = keep_original
    if sizes:
        overrides["sizes"] = parse_sizes(",".join(sizes))
    return dataclasses.replace(Policy.load(), **overrides)


@click.command()
@click.argument(
    "files", nargs=-1, required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option("--store", "store_root", default=None,
              type=click.Path(file_okay=False, path_type=Path), help="Store root directory")
@click.option("-d", "--directory", default=None, help="Key prefix for converted images")
@click.option("-q", "--quality", default=None, type=click.IntRange(0, 100), help="WebP quality")
@click.option("--keep-original/--no-keep-original", default=None, help="Also store the source file")
@click.option("-s", "--size", "sizes", multiple=True, help="Extra width as name=width (repeatable)")
@click.option("-w", "--workers", default=None, type=click.IntRange(min=1), help="Render threads")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def cli(files: tuple[Path, ...], store_root: Path | None, directory: str | None,
        quality: int | None, keep_original: bool | None, sizes: tuple[str, ...],
        workers: int | None, verbose: bool) -> None:
    """Convert images to WebP derivatives and print one manifest per file."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    config = UploaderConfig.load()
    try:
        policy = _build_policy(quality, keep_original, sizes)
    except PolicyError as e:
        raise click.BadParameter(str(e)) from e

    if store_root is not None:
        config = dataclasses.replace(config, store_root=store_root)
    store = config.open_store()
    pipeline = DerivativePipeline(store, max_workers=workers or config.max_workers)
    target_dir = directory if directory is not None else config.directory

    failures = 0
    for path in files:
        source = source_from_path(path)
        try:
            manifest = pipeline.convert(source, target_dir, source.stem, policy)
        except PipelineError as e:
            failures += 1
            logger.error("Failed to convert %s: %s", path, e)
            continue
        click.echo(json.dumps({"file": str(path), **manifest.to_dict()}))

    if failures:
        logger.error("%d of %d file(s) failed", failures, len(files))
        raise SystemExit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
