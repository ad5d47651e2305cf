"""Core logic for aumai-imagebuild."""

from __future__ import annotations

import logging
import shlex
from datetime import datetime
from typing import Sequence

from .errors import (
    CmdParseError,
    EntrypointParseError,
    LayerDiffIDError,
    LayerDigestError,
    NilImageError,
)
from .image import (
    Addendum,
    Image,
    append,
    empty_image,
    with_annotations,
    with_config_file,
    with_config_media_type,
    with_media_type,
)
from .layer import Layer
from .models import (
    OCI_CONFIG_JSON,
    OCI_MANIFEST_SCHEMA1,
    Architecture,
    History,
    ImageConfiguration,
    format_rfc3339,
)
from .options import BuildOptions
from .reference import Tag
from .tarball import write_to_file

__all__ = [
    "TOOL_NAME",
    "TOOL_AUTHOR",
    "SINGLE_LAYER_COMMENT",
    "DEFAULT_ENVIRONMENT",
    "ANNOTATION_SOURCE",
    "ANNOTATION_REVISION",
    "ANNOTATION_CREATED",
    "merge_configuration",
    "layer_descriptor",
    "build_addenda",
    "build_annotations",
    "build_environment",
    "build_image_from_layer",
    "build_image_from_layers",
    "build_image_tarball_from_layer",
]

logger = logging.getLogger(__name__)

TOOL_NAME = "aumai-imagebuild"
TOOL_AUTHOR = "github.com/aumai/aumai-imagebuild"
SINGLE_LAYER_COMMENT = "This is an aumai-imagebuild single-layer image"
TARGET_OS = "linux"

ANNOTATION_SOURCE = "org.opencontainers.image.source"
ANNOTATION_REVISION = "org.opencontainers.image.revision"
ANNOTATION_CREATED = "org.opencontainers.image.created"

# Only applied when the configuration does not set the key.
DEFAULT_ENVIRONMENT: dict[str, str] = {
    "PATH": "/usr/local/sbin:/usr/local/bin:/usr/bin:/usr/sbin:/sbin:/bin",
    "SSL_CERT_FILE": "/etc/ssl/certs/ca-certificates.crt",
}


def merge_configuration(ic: ImageConfiguration) -> ImageConfiguration:
    """Return an independent, validated copy of *ic*."""
    return ic.merge_into(ImageConfiguration())


def layer_descriptor(layer: Layer) -> tuple[str, str]:
    """Return ``(digest, diff_id)`` for *layer*."""
    try:
        digest = layer.digest()
    except Exception as exc:
        raise LayerDigestError(f"could not calculate layer digest: {exc}") from exc
    try:
        diff_id = layer.diff_id()
    except Exception as exc:
        raise LayerDiffIDError(f"could not calculate layer diff id: {exc}") from exc
    return digest, diff_id


def build_addenda(layers: Sequence[Layer], created: datetime) -> list[Addendum]:
    """
    Pair each layer with its history entry, preserving order.

    Every entry is stamped with *created*. The descriptive comment is only
    set for single-layer builds.
    """
    # TODO: carry a per-layer comment once callers can describe their layers.
    comment = SINGLE_LAYER_COMMENT if len(layers) == 1 else ""

    adds: list[Addendum] = []
    for layer in layers:
        digest, diff_id = layer_descriptor(layer)
        logger.info("layer digest: %s", digest)
        logger.info("layer diffID: %s", diff_id)
        adds.append(
            Addendum(
                layer=layer,
                history=History(
                    author=TOOL_NAME,
                    comment=comment,
                    created_by=TOOL_NAME,
                    created=created,
                ),
            )
        )
    return adds


def build_annotations(ic: ImageConfiguration, created: datetime) -> dict[str, str]:
    """Configured annotations plus source, revision and creation provenance."""
    annotations = dict(ic.annotations or {})
    if ic.vcs_url:
        url, sep, revision = ic.vcs_url.rpartition("@")
        if sep:
            annotations[ANNOTATION_SOURCE] = url
            annotations[ANNOTATION_REVISION] = revision
    annotations[ANNOTATION_CREATED] = format_rfc3339(created)
    return dict(sorted(annotations.items()))


def build_environment(environment: dict[str, str] | None) -> list[str]:
    """Sorted ``KEY=VALUE`` list; configured values win over the defaults."""
    env = dict(environment or {})
    for key, value in DEFAULT_ENVIRONMENT.items():
        env.setdefault(key, value)
    return sorted(f"{key}={value}" for key, value in env.items())


def _split_command(command: str, error: type[Exception], what: str) -> list[str]:
    try:
        return shlex.split(command)
    except ValueError as exc:
        raise error(f"unable to parse {what}: {exc}") from exc


def build_image_from_layer(
    base_image: Image,
    layer: Layer,
    ic: ImageConfiguration,
    created: datetime,
    arch: Architecture,
) -> Image:
    return build_image_from_layers(base_image, [layer], ic, created, arch)


def build_image_from_layers(
    base_image: Image,
    layers: Sequence[Layer],
    ic: ImageConfiguration,
    created: datetime,
    arch: Architecture,
) -> Image:
    """
    Append *layers* to *base_image* and write the OCI config described by *ic*.

    The result always uses OCI manifest and config media types. Neither
    *ic* nor *base_image* is modified, and identical inputs always produce
    an image with the same digest.
    """
    ic = merge_configuration(ic)
    adds = build_addenda(layers, created)

    # Appending OCI layers implies an OCI manifest and config.
    image = with_media_type(base_image, OCI_MANIFEST_SCHEMA1)
    image = with_config_media_type(image, OCI_CONFIG_JSON)
    image = append(image, *adds)

    annotations = build_annotations(ic, created)
    image = with_annotations(image, annotations)

    cfg = image.config_file().deep_copy()
    cfg.author = TOOL_AUTHOR
    platform = arch.to_oci_platform()
    cfg.architecture = platform.architecture
    cfg.variant = platform.variant
    cfg.os = TARGET_OS
    cfg.created = created
    cfg.config.labels = dict(annotations)

    # An empty entrypoint is left empty; runtimes supply their own default.
    if ic.entrypoint.shell_fragment:
        cfg.config.entrypoint = ["/bin/sh", "-c", ic.entrypoint.shell_fragment]
    elif ic.entrypoint.command:
        cfg.config.entrypoint = _split_command(
            ic.entrypoint.command, EntrypointParseError, "entrypoint command"
        )

    if ic.cmd:
        cfg.config.cmd = _split_command(ic.cmd, CmdParseError, "cmd")

    if ic.work_dir:
        cfg.config.working_dir = ic.work_dir

    if ic.volumes is not None:
        cfg.config.volumes = {volume: {} for volume in sorted(set(ic.volumes))}

    cfg.config.env = build_environment(ic.environment)

    if ic.accounts.run_as:
        cfg.config.user = ic.accounts.run_as

    if ic.stop_signal:
        cfg.config.stop_signal = ic.stop_signal

    image = with_config_file(image, cfg)
    logger.debug("built image %s for %s", image.digest(), arch)
    return image


def build_image_tarball_from_layer(
    image_ref: str,
    layer: Layer,
    output_path: str,
    ic: ImageConfiguration,
    opts: BuildOptions,
) -> None:
    """Build a single-layer image on an empty base and write it to *output_path*."""
    image = build_image_from_layer(
        empty_image(), layer, ic, opts.source_date_epoch, opts.arch
    )
    if image is None:
        raise NilImageError("image build from layer returned nil")

    tag = Tag.parse(image_ref)
    write_to_file(output_path, tag, image)
    logger.info("output image file to %s", output_path)
