"""Pydantic models for aumai-imagebuild."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from .errors import ConfigMergeError

__all__ = [
    "OCI_MANIFEST_SCHEMA1",
    "OCI_CONFIG_JSON",
    "OCI_LAYER",
    "DOCKER_MANIFEST_SCHEMA2",
    "DOCKER_CONFIG_JSON",
    "DOCKER_LAYER",
    "User",
    "Group",
    "ImageAccounts",
    "ImageEntrypoint",
    "ImageConfiguration",
    "Architecture",
    "Platform",
    "History",
    "RootFS",
    "ContainerConfig",
    "ConfigFile",
    "Descriptor",
    "Manifest",
    "canonical_json",
    "format_rfc3339",
]

OCI_MANIFEST_SCHEMA1 = "application/vnd.oci.image.manifest.v1+json"
OCI_CONFIG_JSON = "application/vnd.oci.image.config.v1+json"
OCI_LAYER = "application/vnd.oci.image.layer.v1.tar+gzip"
DOCKER_MANIFEST_SCHEMA2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_CONFIG_JSON = "application/vnd.docker.container.image.v1+json"
DOCKER_LAYER = "application/vnd.docker.image.rootfs.diff.tar.gzip"


def format_rfc3339(value: datetime) -> str:
    """Format *value* as an RFC 3339 timestamp with second precision.

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    if value.utcoffset() == timedelta(0):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return value.isoformat(timespec="seconds")


def canonical_json(model: BaseModel) -> bytes:
    """Serialize *model* with sorted keys and compact separators."""
    data = model.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")


# ---------------------------------------------------------------------------
# Declarative image configuration
# ---------------------------------------------------------------------------


class User(BaseModel):
    """An account created in the image."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    username: str
    uid: int | None = None
    gid: int | None = None
    shell: str = ""
    homedir: str = ""


class Group(BaseModel):
    """A group created in the image."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    groupname: str
    gid: int | None = None
    members: list[str] = Field(default_factory=list)


class ImageAccounts(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    run_as: str = Field("", alias="run-as")
    users: list[User] = Field(default_factory=list)
    groups: list[Group] = Field(default_factory=list)


class ImageEntrypoint(BaseModel):
    """Entrypoint given either as a shell fragment or as a command string."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    type: str = ""
    command: str = ""
    shell_fragment: str = Field("", alias="shell-fragment")

    def is_empty(self) -> bool:
        return not (self.type or self.command or self.shell_fragment)


class ImageConfiguration(BaseModel):
    """
    User-authored description of the runtime defaults of an image.

    Instances are caller-owned; the builder only ever works on a merged copy
    produced by :meth:`merge_into`.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    annotations: dict[str, str] | None = None
    vcs_url: str = Field("", alias="vcs-url")
    entrypoint: ImageEntrypoint = Field(default_factory=ImageEntrypoint)
    cmd: str = ""
    work_dir: str = Field("", alias="work-dir")
    volumes: list[str] | None = None
    environment: dict[str, str] | None = None
    accounts: ImageAccounts = Field(default_factory=ImageAccounts)
    stop_signal: str = Field("", alias="stop-signal")

    def validate_for_merge(self) -> None:
        """Raise ``ConfigMergeError`` if any field is structurally invalid."""
        for key in self.environment or {}:
            if not key or "=" in key:
                raise ConfigMergeError(f"invalid environment variable name: {key!r}")
        for key in self.annotations or {}:
            if not key:
                raise ConfigMergeError("annotation keys must not be empty")
        for volume in self.volumes or []:
            if not volume:
                raise ConfigMergeError("volume paths must not be empty")

    def merge_into(self, target: ImageConfiguration) -> ImageConfiguration:
        """
        Merge this configuration into *target* and return *target*.

        Values already set on *target* take precedence. Mappings gain the
        keys *target* lacks, lists are unioned in order, and users and
        groups are appended by name. Nothing reachable from ``self`` is
        shared with *target* afterwards.
        """
        self.validate_for_merge()

        if self.annotations is not None:
            merged = dict(self.annotations)
            merged.update(target.annotations or {})
            target.annotations = merged
        if self.environment is not None:
            merged = dict(self.environment)
            merged.update(target.environment or {})
            target.environment = merged
        if self.volumes is not None:
            existing = set(target.volumes or [])
            target.volumes = list(target.volumes or []) + [
                v for v in self.volumes if v not in existing
            ]

        for name in ("vcs_url", "cmd", "work_dir", "stop_signal"):
            if not getattr(target, name):
                setattr(target, name, getattr(self, name))

        if target.entrypoint.is_empty():
            target.entrypoint = self.entrypoint.model_copy()

        accounts = target.accounts
        if not accounts.run_as:
            accounts.run_as = self.accounts.run_as
        usernames = {u.username for u in accounts.users}
        for user in self.accounts.users:
            if user.username not in usernames:
                accounts.users.append(user.model_copy(deep=True))
        groupnames = {g.groupname for g in accounts.groups}
        for group in self.accounts.groups:
            if group.groupname not in groupnames:
                accounts.groups.append(group.model_copy(deep=True))

        target.validate_for_merge()
        return target


# ---------------------------------------------------------------------------
# Target platform
# ---------------------------------------------------------------------------


class Platform(BaseModel):
    architecture: str
    os: str
    variant: str | None = None


class Architecture(BaseModel):
    """Target architecture of a build, e.g. ``amd64`` or ``arm/v7``."""

    model_config = ConfigDict(frozen=True)

    name: str
    variant: str = ""

    @classmethod
    def parse(cls, value: str) -> Architecture:
        """Parse an OCI platform string of the form ``<arch>[/<variant>]``."""
        name, _, variant = value.strip().partition("/")
        if not name or "/" in variant:
            raise ValueError(f"invalid architecture: {value!r}")
        return cls(name=name, variant=variant)

    def to_oci_platform(self) -> Platform:
        return Platform(architecture=self.name, os="linux", variant=self.variant or None)

    def __str__(self) -> str:
        return f"{self.name}/{self.variant}" if self.variant else self.name


# ---------------------------------------------------------------------------
# OCI image config
# ---------------------------------------------------------------------------


class History(BaseModel):
    """One entry of the image history, normally one per layer."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    author: str | None = None
    created: datetime | None = None
    created_by: str | None = None
    comment: str | None = None
    empty_layer: bool | None = None

    @field_serializer("created")
    def serialize_created(self, value: datetime | None) -> str | None:
        return format_rfc3339(value) if value is not None else None


class RootFS(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "layers"
    diff_ids: list[str] = Field(default_factory=list)


class ContainerConfig(BaseModel):
    """Runtime defaults (the ``config`` object of an OCI image config).

    Keys not declared here (ExposedPorts, Healthcheck, Shell, ...) are kept
    as extra fields so they survive a round trip.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    user: str | None = Field(None, alias="User")
    env: list[str] | None = Field(None, alias="Env")
    entrypoint: list[str] | None = Field(None, alias="Entrypoint")
    cmd: list[str] | None = Field(None, alias="Cmd")
    volumes: dict[str, dict[str, Any]] | None = Field(None, alias="Volumes")
    working_dir: str | None = Field(None, alias="WorkingDir")
    labels: dict[str, str] | None = Field(None, alias="Labels")
    stop_signal: str | None = Field(None, alias="StopSignal")


class ConfigFile(BaseModel):
    """
    OCI image configuration document.

    Follows the OCI Image Configuration Specification
    https://github.com/opencontainers/image-spec/blob/main/config.md
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    architecture: str = ""
    variant: str | None = None
    os: str = ""
    author: str | None = None
    created: datetime | None = None
    history: list[History] = Field(default_factory=list)
    rootfs: RootFS = Field(default_factory=RootFS)
    config: ContainerConfig = Field(default_factory=ContainerConfig)

    @field_serializer("created")
    def serialize_created(self, value: datetime | None) -> str | None:
        return format_rfc3339(value) if value is not None else None

    def deep_copy(self) -> ConfigFile:
        """Return an independent copy safe to mutate."""
        return self.model_copy(deep=True)

    def platform(self) -> Platform:
        return Platform(
            architecture=self.architecture, os=self.os, variant=self.variant
        )


# ---------------------------------------------------------------------------
# OCI manifest
# ---------------------------------------------------------------------------


class Descriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    media_type: str = Field(alias="mediaType")
    size: int
    digest: str                # sha256:<hex>
    annotations: dict[str, str] | None = None
    platform: Platform | None = None


class Manifest(BaseModel):
    """
    OCI Image Manifest (schema version 2).

    Follows the OCI Image Manifest Specification
    https://github.com/opencontainers/image-spec/blob/main/manifest.md
    """

    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(2, alias="schemaVersion")
    media_type: str = Field(OCI_MANIFEST_SCHEMA1, alias="mediaType")
    config: Descriptor
    layers: list[Descriptor] = Field(default_factory=list)
    annotations: dict[str, str] | None = None
