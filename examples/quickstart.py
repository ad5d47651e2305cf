"""
aumai-imagebuild quickstart — working demo of build, export, reload and rebuild.

Run directly:

    python examples/quickstart.py

All demos use a temporary directory and clean up after themselves.
"""

from __future__ import annotations

import io
import pathlib
import tarfile
import tempfile


def _make_layer_tar(files: dict[str, bytes]) -> bytes:
    """Build a small uncompressed tar archive to use as a layer."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for name, data in sorted(files.items()):
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            info.mtime = 0
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Demo 1: Build an image in memory
# ---------------------------------------------------------------------------

def demo_build_in_memory() -> None:
    """Assemble an image from two layers and print its config."""
    print("\n=== Demo 1: Build an image in memory ===")

    from aumai_imagebuild.core import build_image_from_layers
    from aumai_imagebuild.image import empty_image
    from aumai_imagebuild.layer import TarballLayer
    from aumai_imagebuild.models import ImageConfiguration, ImageEntrypoint
    from aumai_imagebuild.options import BuildOptions

    opts = BuildOptions.from_env({"SOURCE_DATE_EPOCH": "1700000000"})
    ic = ImageConfiguration(
        vcs_url="https://github.com/example/app@0123abcd",
        entrypoint=ImageEntrypoint(command="/usr/bin/app --listen :8080"),
        environment={"APP_MODE": "production"},
        volumes=["/var/lib/app"],
    )
    layers = [
        TarballLayer.from_bytes(_make_layer_tar({"etc/os-release": b"ID=demo\n"})),
        TarballLayer.from_bytes(_make_layer_tar({"usr/bin/app": b"#!/bin/sh\necho app\n"})),
    ]

    image = build_image_from_layers(
        empty_image(), layers, ic, opts.source_date_epoch, opts.arch
    )
    cfg = image.config_file()
    print(f"  Digest     : {image.digest()}")
    print(f"  Media type : {image.media_type()}")
    print(f"  Platform   : {cfg.os}/{cfg.architecture}")
    print(f"  Entrypoint : {cfg.config.entrypoint}")
    for entry in cfg.config.env or []:
        print(f"  Env        : {entry}")
    for key, value in image.annotations().items():
        print(f"  Annotation : {key}={value}")


# ---------------------------------------------------------------------------
# Demo 2: Export a single-layer image and build on top of it
# ---------------------------------------------------------------------------

def demo_export_and_rebuild() -> None:
    """Write a single-layer image tarball, then reuse it as a base."""
    print("\n=== Demo 2: Export and rebuild ===")

    from aumai_imagebuild.core import build_image_from_layer, build_image_tarball_from_layer
    from aumai_imagebuild.layer import TarballLayer
    from aumai_imagebuild.models import ImageConfiguration
    from aumai_imagebuild.options import BuildOptions
    from aumai_imagebuild.tarball import image_from_path

    opts = BuildOptions()
    with tempfile.TemporaryDirectory() as tmp:
        base_path = pathlib.Path(tmp) / "base.tar"
        base_layer = TarballLayer.from_bytes(_make_layer_tar({"etc/motd": b"hello\n"}))
        build_image_tarball_from_layer(
            "example.com/demo/base:1", base_layer, str(base_path), ImageConfiguration(), opts
        )
        print(f"  Wrote base : {base_path.name} ({base_path.stat().st_size} bytes)")

        base = image_from_path(str(base_path))
        app_layer = TarballLayer.from_bytes(_make_layer_tar({"srv/index.html": b"<h1>hi</h1>\n"}))
        image = build_image_from_layer(
            base, app_layer, ImageConfiguration(cmd="python -m http.server"), opts.source_date_epoch, opts.arch
        )
        cfg = image.config_file()
        print(f"  Layers     : {len(image.layers())}")
        print(f"  Cmd        : {cfg.config.cmd}")
        for entry in cfg.history:
            print(f"  History    : {entry.created_by} {entry.comment!r}")


if __name__ == "__main__":
    demo_build_in_memory()
    demo_export_and_rebuild()
    print("\nAll demos completed successfully.")
