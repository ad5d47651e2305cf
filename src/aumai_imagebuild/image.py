"""In-memory image values and the operations that derive new images from them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from pydantic import ValidationError

from .errors import ConfigCommitError, ConfigFileError, LayerAppendError
from .layer import Layer, sha256_bytes
from .models import (
    DOCKER_CONFIG_JSON,
    DOCKER_MANIFEST_SCHEMA2,
    ConfigFile,
    Descriptor,
    History,
    Manifest,
    canonical_json,
)

__all__ = [
    "Addendum",
    "Image",
    "empty_image",
    "with_media_type",
    "with_config_media_type",
    "append",
    "with_annotations",
    "with_config_file",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Addendum:
    """A layer waiting to be appended, together with its history entry."""

    layer: Layer
    history: History


class Image:
    """
    An immutable image: raw config blob, ordered layers and manifest metadata.

    The manifest is derived on demand, so its config descriptor always
    matches the stored config bytes. Use the module-level functions to
    obtain modified copies.
    """

    def __init__(
        self,
        raw_config: bytes,
        layers: Sequence[Layer] = (),
        media_type: str = DOCKER_MANIFEST_SCHEMA2,
        config_media_type: str = DOCKER_CONFIG_JSON,
        annotations: dict[str, str] | None = None,
    ) -> None:
        self._raw_config = raw_config
        self._layers = tuple(layers)
        self._media_type = media_type
        self._config_media_type = config_media_type
        self._annotations = dict(sorted(annotations.items())) if annotations else None

    def __repr__(self) -> str:
        return f"Image(layers={len(self._layers)}, media_type={self._media_type!r})"

    def _replace(self, **changes: object) -> Image:
        fields: dict[str, object] = {
            "raw_config": self._raw_config,
            "layers": self._layers,
            "media_type": self._media_type,
            "config_media_type": self._config_media_type,
            "annotations": self._annotations,
        }
        fields.update(changes)
        return Image(**fields)  # type: ignore[arg-type]

    def media_type(self) -> str:
        return self._media_type

    def config_media_type(self) -> str:
        return self._config_media_type

    def layers(self) -> list[Layer]:
        return list(self._layers)

    def annotations(self) -> dict[str, str]:
        return dict(self._annotations or {})

    def raw_config_file(self) -> bytes:
        return self._raw_config

    def config_file(self) -> ConfigFile:
        """Parse the config blob. Every call returns a new object."""
        try:
            return ConfigFile.model_validate_json(self._raw_config)
        except ValidationError as exc:
            raise ConfigFileError(f"invalid image config: {exc}") from exc

    def config_name(self) -> str:
        """Digest of the config blob."""
        return sha256_bytes(self._raw_config)

    def manifest(self) -> Manifest:
        return Manifest(
            media_type=self._media_type,
            config=Descriptor(
                media_type=self._config_media_type,
                size=len(self._raw_config),
                digest=self.config_name(),
            ),
            layers=[
                Descriptor(
                    media_type=layer.media_type(),
                    size=layer.size(),
                    digest=layer.digest(),
                )
                for layer in self._layers
            ],
            annotations=self._annotations,
        )

    def raw_manifest(self) -> bytes:
        return canonical_json(self.manifest())

    def digest(self) -> str:
        """Digest of the manifest, which identifies the image."""
        return sha256_bytes(self.raw_manifest())


def empty_image() -> Image:
    """An image with no layers and an empty config, using Docker media types."""
    return Image(raw_config=canonical_json(ConfigFile()))


def with_media_type(image: Image, media_type: str) -> Image:
    return image._replace(media_type=media_type)


def with_config_media_type(image: Image, media_type: str) -> Image:
    return image._replace(config_media_type=media_type)


def with_annotations(image: Image, annotations: dict[str, str]) -> Image:
    """Return *image* with *annotations* added to its manifest, overwriting existing keys."""
    merged = image.annotations()
    merged.update(annotations)
    return image._replace(annotations=merged)


def append(base: Image, *addenda: Addendum) -> Image:
    """
    Append layers to *base*, extending the rootfs and history in order.

    Raises ``LayerAppendError`` if the base config cannot be read, if its
    diff ids disagree with its layers, or if a layer cannot be hashed.
    """
    try:
        cfg = base.config_file()
    except ConfigFileError as exc:
        raise LayerAppendError(f"unable to read base image config: {exc}") from exc

    base_layers = base.layers()
    if len(cfg.rootfs.diff_ids) != len(base_layers):
        raise LayerAppendError(
            f"base image has {len(cfg.rootfs.diff_ids)} diff ids "
            f"but {len(base_layers)} layers"
        )

    for add in addenda:
        try:
            diff_id = add.layer.diff_id()
        except Exception as exc:
            raise LayerAppendError(f"unable to compute diff id of {add.layer!r}: {exc}") from exc
        cfg.rootfs.diff_ids.append(diff_id)
        cfg.history.append(add.history.model_copy())
        logger.debug("appended layer %s", diff_id)

    return base._replace(
        raw_config=canonical_json(cfg),
        layers=base_layers + [add.layer for add in addenda],
    )


def with_config_file(image: Image, cfg: ConfigFile) -> Image:
    """
    Replace the config of *image* with *cfg*.

    Raises ``ConfigCommitError`` if *cfg* does not describe the image's
    layers or cannot be serialized.
    """
    if len(cfg.rootfs.diff_ids) != len(image.layers()):
        raise ConfigCommitError(
            f"config lists {len(cfg.rootfs.diff_ids)} diff ids "
            f"but the image has {len(image.layers())} layers"
        )
    try:
        raw = canonical_json(cfg)
    except ValueError as exc:
        raise ConfigCommitError(f"unable to serialize config: {exc}") from exc
    return image._replace(raw_config=raw)
