"""Build options and configuration loading."""

from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigMergeError
from .models import Architecture, ImageConfiguration

__all__ = [
    "BuildOptions",
    "epoch_to_datetime",
    "load_image_configuration",
]

_DEFAULT_ARCH = "amd64"


def epoch_to_datetime(seconds: int) -> datetime:
    """Convert a ``SOURCE_DATE_EPOCH`` value to an aware UTC datetime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class BuildOptions(BaseModel):
    """Per-build inputs that do not come from the image configuration."""

    model_config = ConfigDict(frozen=True)

    source_date_epoch: datetime = Field(default_factory=lambda: epoch_to_datetime(0))
    arch: Architecture = Field(default_factory=lambda: Architecture.parse(_DEFAULT_ARCH))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BuildOptions:
        """
        Read ``SOURCE_DATE_EPOCH`` and ``AUMAI_IMAGEBUILD_ARCH``.

        Unset or empty variables fall back to the epoch and ``amd64``.
        """
        env = os.environ if environ is None else environ
        raw_epoch = env.get("SOURCE_DATE_EPOCH", "").strip()
        try:
            epoch = int(raw_epoch) if raw_epoch else 0
        except ValueError as exc:
            raise ValueError(f"SOURCE_DATE_EPOCH must be an integer, got {raw_epoch!r}") from exc
        arch = env.get("AUMAI_IMAGEBUILD_ARCH", "").strip() or _DEFAULT_ARCH
        return cls(source_date_epoch=epoch_to_datetime(epoch), arch=Architecture.parse(arch))


def load_image_configuration(path: str) -> ImageConfiguration:
    """Load an ``ImageConfiguration`` from a YAML (or JSON) document."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigMergeError(f"Invalid YAML in {path}: {exc}") from exc

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ConfigMergeError(f"Config file must contain a YAML mapping: {Path(path).name}")
    try:
        return ImageConfiguration.model_validate(dict(payload))
    except ValidationError as exc:
        raise ConfigMergeError(f"Invalid image configuration in {path}: {exc}") from exc
