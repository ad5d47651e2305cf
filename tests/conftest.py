"""Shared test fixtures for aumai-imagebuild."""

from __future__ import annotations

import io
import tarfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from aumai_imagebuild.layer import TarballLayer
from aumai_imagebuild.models import (
    Architecture,
    ImageAccounts,
    ImageConfiguration,
    ImageEntrypoint,
)
from aumai_imagebuild.options import BuildOptions


def make_tar(files: dict[str, bytes]) -> bytes:
    """Build an uncompressed tar archive with normalized headers."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for name, data in sorted(files.items()):
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            info.mtime = 0
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Build inputs
# ---------------------------------------------------------------------------


@pytest.fixture()
def created() -> datetime:
    return datetime(2023, 6, 1, 12, 30, 0, tzinfo=timezone.utc)


@pytest.fixture()
def arch() -> Architecture:
    return Architecture(name="arm64", variant="v8")


@pytest.fixture()
def build_options(created: datetime, arch: Architecture) -> BuildOptions:
    return BuildOptions(source_date_epoch=created, arch=arch)


@pytest.fixture()
def sample_config() -> ImageConfiguration:
    return ImageConfiguration(
        annotations={"org.example.team": "platform"},
        vcs_url="https://example.com/repo@abcdef",
        entrypoint=ImageEntrypoint(command="/usr/bin/server --port 8080"),
        cmd="--verbose 'hello world'",
        work_dir="/srv",
        volumes=["/data", "/cache", "/data"],
        environment={"LANG": "C.UTF-8"},
        accounts=ImageAccounts(run_as="65532"),
        stop_signal="SIGTERM",
    )


@pytest.fixture()
def minimal_config() -> ImageConfiguration:
    return ImageConfiguration()


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------


@pytest.fixture()
def tar_bytes():
    """Factory building a tar archive from a name -> content mapping."""
    return make_tar


@pytest.fixture()
def layer() -> TarballLayer:
    return TarballLayer.from_bytes(make_tar({"etc/os-release": b"ID=test\n"}))


@pytest.fixture()
def second_layer() -> TarballLayer:
    return TarballLayer.from_bytes(make_tar({"usr/bin/server": b"#!/bin/sh\necho hi\n"}))


@pytest.fixture()
def layer_file(tmp_path: Path) -> Path:
    """A plain tar layer on disk."""
    f = tmp_path / "layer.tar"
    f.write_bytes(make_tar({"app/main.txt": b"hello\n"}))
    return f


@pytest.fixture()
def config_file(tmp_path: Path) -> Path:
    """A YAML image configuration on disk."""
    f = tmp_path / "image.yaml"
    f.write_text(
        "\n".join(
            [
                "vcs-url: https://example.com/repo@abcdef",
                "entrypoint:",
                "  command: /usr/bin/server --port 8080",
                "cmd: --verbose",
                "work-dir: /srv",
                "environment:",
                "  LANG: C.UTF-8",
                "accounts:",
                "  run-as: '65532'",
                "  users:",
                "    - username: nonroot",
                "      uid: 65532",
                "stop-signal: SIGTERM",
                "",
            ]
        ),
        encoding="utf-8",
    )
    return f
