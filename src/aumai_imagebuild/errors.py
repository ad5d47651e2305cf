"""Exception hierarchy for aumai-imagebuild."""

from __future__ import annotations

__all__ = [
    "ImageBuildError",
    "ConfigMergeError",
    "LayerDigestError",
    "LayerDiffIDError",
    "LayerAppendError",
    "ConfigFileError",
    "ConfigCommitError",
    "EntrypointParseError",
    "CmdParseError",
    "NilImageError",
    "InvalidTagError",
    "TarballWriteError",
    "ImageLoadError",
]


class ImageBuildError(Exception):
    """Base class for every error raised while assembling an image."""


# Input validation


class ConfigMergeError(ImageBuildError):
    """The image configuration could not be copied or validated."""


class InvalidTagError(ImageBuildError):
    """An image reference is not a well-formed tag."""


class EntrypointParseError(ImageBuildError):
    """The entrypoint command string has malformed shell quoting."""


class CmdParseError(ImageBuildError):
    """The cmd string has malformed shell quoting."""


# Layer computation


class LayerDigestError(ImageBuildError):
    """The compressed digest of a layer could not be computed."""


class LayerDiffIDError(ImageBuildError):
    """The uncompressed diff id of a layer could not be computed."""


# Composition


class LayerAppendError(ImageBuildError):
    """Layers could not be appended to the base image."""


class ConfigFileError(ImageBuildError):
    """The config file of an image could not be retrieved."""


class ConfigCommitError(ImageBuildError):
    """An updated config file could not be committed into an image."""


# I/O


class TarballWriteError(ImageBuildError):
    """The image could not be written to a tarball."""


class ImageLoadError(ImageBuildError):
    """An image tarball could not be read."""


# Internal invariants


class NilImageError(ImageBuildError):
    """An image build unexpectedly produced no image."""
