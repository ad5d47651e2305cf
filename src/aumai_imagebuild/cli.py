"""CLI entry point for aumai-imagebuild."""

from __future__ import annotations

import logging
import sys

import click

from .core import build_image_from_layers, build_image_tarball_from_layer
from .errors import ImageBuildError
from .image import empty_image
from .layer import TarballLayer, sha256_bytes
from .models import Architecture
from .options import BuildOptions, epoch_to_datetime, load_image_configuration
from .reference import Tag
from .tarball import image_from_path, repo_tags, write_to_file


@click.group()
@click.version_option(package_name="aumai-imagebuild")
def main() -> None:
    """AumAI ImageBuild — reproducible OCI images from filesystem layers."""


@main.command("build")
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML or JSON image configuration.",
)
@click.option(
    "--layer",
    "layer_paths",
    required=True,
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Layer tarball (plain or gzip). Repeat for several layers.",
)
@click.option(
    "--base",
    "base_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Base image tarball. Defaults to an empty image.",
)
@click.option("--tag", "image_ref", required=True, help="Image reference to tag the result with.")
@click.option(
    "--output",
    "output_path",
    required=True,
    type=click.Path(dir_okay=False),
    help="Path of the image tarball to write.",
)
@click.option(
    "--arch",
    default=None,
    help="Target platform, e.g. amd64 or arm/v7. [env: AUMAI_IMAGEBUILD_ARCH]",
)
@click.option(
    "--source-date-epoch",
    default=None,
    type=int,
    help="Creation time in seconds since the epoch. [env: SOURCE_DATE_EPOCH]",
)
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
)
def build_command(
    config_path: str,
    layer_paths: tuple[str, ...],
    base_path: str | None,
    image_ref: str,
    output_path: str,
    arch: str | None,
    source_date_epoch: int | None,
    log_level: str,
) -> None:
    """Build an image from layers and write it as a tarball."""
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    try:
        opts = BuildOptions.from_env()
        overrides: dict[str, object] = {}
        if arch is not None:
            overrides["arch"] = Architecture.parse(arch)
        if source_date_epoch is not None:
            overrides["source_date_epoch"] = epoch_to_datetime(source_date_epoch)
        if overrides:
            opts = opts.model_copy(update=overrides)

        ic = load_image_configuration(config_path)
        layers = [TarballLayer.from_file(path) for path in layer_paths]

        if base_path is None and len(layers) == 1:
            build_image_tarball_from_layer(image_ref, layers[0], output_path, ic, opts)
        else:
            base = image_from_path(base_path) if base_path else empty_image()
            image = build_image_from_layers(
                base, layers, ic, opts.source_date_epoch, opts.arch
            )
            write_to_file(output_path, Tag.parse(image_ref), image)
    except (ImageBuildError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Built image: {output_path}")
    click.echo(f"  Tag     : {Tag.parse(image_ref)}")
    click.echo(f"  Platform: linux/{opts.arch}")
    click.echo(f"  Layers  : {len(layers)}")


@main.command("inspect")
@click.option(
    "--archive",
    "archive_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to the image tarball.",
)
def inspect_command(archive_path: str) -> None:
    """Inspect an image tarball without extracting it."""
    try:
        image = image_from_path(archive_path)
        cfg = image.config_file()
        tags = repo_tags(archive_path)
    except ImageBuildError as exc:
        click.echo(f"Error inspecting archive: {exc}", err=True)
        sys.exit(1)

    platform = cfg.platform()
    for tag in tags:
        click.echo(f"Tag       : {tag}")
    click.echo(f"Manifest  : {image.media_type()}")
    click.echo(f"Config    : {image.config_name()} ({image.config_media_type()})")
    click.echo(f"Platform  : {platform.os}/{platform.architecture}"
               + (f"/{platform.variant}" if platform.variant else ""))
    if cfg.created is not None:
        click.echo(f"Created   : {cfg.created.isoformat()}")
    if cfg.config.entrypoint:
        click.echo(f"Entrypoint: {cfg.config.entrypoint}")
    if cfg.config.cmd:
        click.echo(f"Cmd       : {cfg.config.cmd}")
    if cfg.config.user:
        click.echo(f"User      : {cfg.config.user}")
    for entry in cfg.config.env or []:
        click.echo(f"Env       : {entry}")

    layers = image.layers()
    diff_ids = cfg.rootfs.diff_ids
    click.echo(f"\nLayers ({len(layers)}):")
    all_valid = len(layers) == len(diff_ids)
    for layer, diff_id in zip(layers, diff_ids):
        try:
            valid = sha256_bytes(layer.uncompressed()) == diff_id
        except (OSError, EOFError) as exc:
            click.echo(f"Error inspecting archive: layer {layer.digest()}: {exc}", err=True)
            sys.exit(1)
        all_valid = all_valid and valid
        status = "OK" if valid else "FAIL"
        size_kb = layer.size() / 1024
        click.echo(
            f"  {status}  {layer.digest()[:30]}...  {size_kb:6.1f} KB  {layer.media_type()}"
        )

    if all_valid:
        click.echo("All layers verified.")
    else:
        click.echo("WARNING: some layers failed verification!", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
