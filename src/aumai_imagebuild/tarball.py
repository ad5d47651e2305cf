"""Reading and writing images as ``docker save`` style tarballs."""

from __future__ import annotations

import io
import json
import logging
import os
import tarfile
import tempfile
from pathlib import Path
from typing import Any

from .errors import ImageLoadError, TarballWriteError
from .image import Image
from .layer import TarballLayer
from .models import DOCKER_LAYER
from .reference import Tag

__all__ = [
    "MANIFEST_FILENAME",
    "write_to_file",
    "image_from_path",
    "repo_tags",
]

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"


def _layer_filename(digest: str) -> str:
    return f"{digest.split(':', 1)[1]}.tar.gz"


def _add_member(tar: tarfile.TarFile, name: str, data: bytes) -> None:
    """Add *data* as *name* with normalized ownership, mode and mtime."""
    info = tarfile.TarInfo(name=name)
    info.size = len(data)
    info.mode = 0o644
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    tar.addfile(info, io.BytesIO(data))


def write_to_file(path: str, tag: Tag, image: Image) -> None:
    """
    Write *image* to *path*, tagged as *tag*.

    Archive layout::

        sha256:<hex>        # config blob
        <hex>.tar.gz        # one file per distinct layer blob
        manifest.json       # [{"Config", "RepoTags", "Layers"}]

    The archive is written to a temporary file and moved into place, so a
    failed write never leaves a partial tarball at *path*.
    """
    target = Path(path)
    config_name = image.config_name()
    layer_names: list[str] = []

    tmp_name: str | None = None
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp")
        with os.fdopen(fd, "wb") as fh, tarfile.open(fileobj=fh, mode="w") as tar:
            _add_member(tar, config_name, image.raw_config_file())

            written: set[str] = set()
            for layer in image.layers():
                name = _layer_filename(layer.digest())
                layer_names.append(name)
                if name in written:
                    continue
                _add_member(tar, name, layer.compressed())
                written.add(name)

            manifest: list[dict[str, Any]] = [
                {"Config": config_name, "RepoTags": [tag.name], "Layers": layer_names}
            ]
            _add_member(
                tar,
                MANIFEST_FILENAME,
                json.dumps(manifest, separators=(",", ":")).encode("utf-8"),
            )
        # mkstemp creates 0600; give the archive the mode open() would.
        umask = os.umask(0)
        os.umask(umask)
        os.chmod(tmp_name, 0o666 & ~umask)
        os.replace(tmp_name, target)
        tmp_name = None
    except (OSError, tarfile.TarError) as exc:
        raise TarballWriteError(f"unable to write image to {path}: {exc}") from exc
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)

    logger.debug("wrote %d layers for %s to %s", len(layer_names), tag, path)


def _read_member(tar: tarfile.TarFile, name: str) -> bytes:
    fh = tar.extractfile(name)
    if fh is None:
        raise ImageLoadError(f"{name!r} is not a regular file")
    return fh.read()


def image_from_path(path: str, tag: Tag | None = None) -> Image:
    """
    Load an image written by :func:`write_to_file` (or ``docker save``).

    When the archive holds several images, *tag* selects one of them.
    """
    try:
        with tarfile.open(path, "r") as tar:
            entries = json.loads(_read_member(tar, MANIFEST_FILENAME))
            if tag is not None:
                matches = [e for e in entries if tag.name in (e.get("RepoTags") or [])]
            else:
                matches = list(entries)
            if len(matches) != 1:
                wanted = f"tag {tag}" if tag is not None else "a single image"
                raise ImageLoadError(
                    f"expected {wanted} in {path}, found {len(matches)} matching entries"
                )
            entry = matches[0]
            raw_config = _read_member(tar, entry["Config"])
            layers = [
                TarballLayer.from_bytes(_read_member(tar, name), media_type=DOCKER_LAYER)
                for name in entry.get("Layers") or []
            ]
    except (OSError, tarfile.TarError, KeyError, ValueError) as exc:
        raise ImageLoadError(f"unable to load image from {path}: {exc}") from exc

    logger.info("loaded image with %d layers from %s", len(layers), path)
    return Image(raw_config=raw_config, layers=layers)


def repo_tags(path: str) -> list[str]:
    """Return every tag recorded in the ``manifest.json`` of *path*."""
    try:
        with tarfile.open(path, "r") as tar:
            entries = json.loads(_read_member(tar, MANIFEST_FILENAME))
    except (OSError, tarfile.TarError, KeyError, ValueError) as exc:
        raise ImageLoadError(f"unable to read tags from {path}: {exc}") from exc
    return [t for entry in entries for t in entry.get("RepoTags") or []]
