"""
Image reference parsing.

Only tag references (``[registry/]repository[:tag]``) are supported; digest
references are rejected.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .errors import InvalidTagError

__all__ = [
    "DEFAULT_REGISTRY",
    "DEFAULT_TAG",
    "Tag",
]

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "index.docker.io"
DEFAULT_TAG = "latest"

_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_REPO_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_REGISTRY_RE = re.compile(r"^[a-zA-Z0-9.-]+(?::[0-9]+)?$")
_MAX_REPOSITORY_LENGTH = 255


def _looks_like_registry(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


@dataclass(frozen=True)
class Tag:
    """A validated tag reference."""

    registry: str
    repository: str
    tag: str

    @classmethod
    def parse(cls, ref: str) -> Tag:
        """
        Validate *ref* and fill in defaults.

        ``alpine`` becomes ``index.docker.io/library/alpine:latest``.
        Raises ``InvalidTagError`` for anything that is not a tag reference.
        """
        if not ref:
            raise InvalidTagError("image reference must not be empty")
        if "@" in ref:
            raise InvalidTagError(f"{ref!r} is a digest reference, not a tag")

        name, tag = ref, DEFAULT_TAG
        last_colon = ref.rfind(":")
        if last_colon > ref.rfind("/"):
            name, tag = ref[:last_colon], ref[last_colon + 1:]
            if not _TAG_RE.fullmatch(tag):
                raise InvalidTagError(f"invalid tag {tag!r} in {ref!r}")

        registry, repository = DEFAULT_REGISTRY, name
        first, sep, rest = name.partition("/")
        if sep and _looks_like_registry(first):
            registry, repository = first, rest
            if not _REGISTRY_RE.fullmatch(registry):
                raise InvalidTagError(f"invalid registry {registry!r} in {ref!r}")
        if registry in (DEFAULT_REGISTRY, "docker.io"):
            registry = DEFAULT_REGISTRY
            if "/" not in repository:
                repository = f"library/{repository}"

        if not repository or len(repository) > _MAX_REPOSITORY_LENGTH:
            raise InvalidTagError(f"invalid repository length in {ref!r}")
        for component in repository.split("/"):
            if not _REPO_COMPONENT_RE.fullmatch(component):
                raise InvalidTagError(
                    f"invalid repository component {component!r} in {ref!r}"
                )

        logger.debug("parsed tag reference %s", ref)
        return cls(registry=registry, repository=repository, tag=tag)

    @property
    def name(self) -> str:
        return f"{self.registry}/{self.repository}:{self.tag}"

    def __str__(self) -> str:
        return self.name
