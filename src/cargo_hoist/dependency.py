"""
Data structures describing dependency declarations and their sources.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

# Keys that say where a dependency comes from. Everything else on an entry
# (features, optional, default-features, package, ...) is an extra attribute.
GIT_REF_KEYS = ("branch", "tag", "rev")
SOURCE_KEYS = ("version", "git", "path") + GIT_REF_KEYS
WORKSPACE_KEY = "workspace"


class TableKind(Enum):
    """The dependency tables a Cargo manifest can declare."""

    DEPENDENCIES = "dependencies"
    DEV_DEPENDENCIES = "dev-dependencies"
    BUILD_DEPENDENCIES = "build-dependencies"


@dataclass(frozen=True)
class TableKey:
    """A dependency table, optionally scoped to a `[target.<cfg>]` section."""

    kind: TableKind = TableKind.DEPENDENCIES
    target: Optional[str] = None

    @property
    def path(self) -> Tuple[str, ...]:
        if self.target is None:
            return (self.kind.value,)
        return ("target", self.target, self.kind.value)

    def __str__(self) -> str:
        return ".".join(self.path)


@dataclass(frozen=True)
class GroupKey:
    """Grouping key across the workspace: the same name in two tables is two groups."""

    table: TableKey
    name: str

    def __str__(self) -> str:
        return f"{self.table}.{self.name}"


class GitRefKind(Enum):
    BRANCH = "branch"
    TAG = "tag"
    REV = "rev"
    NONE = "none"


@dataclass(frozen=True)
class VersionSource:
    """A registry dependency, e.g. `"0.8.3"` or `{ version = "0.8.3" }`."""

    requirement: str

    def to_toml(self) -> Dict[str, str]:
        return {"version": self.requirement}

    def describe(self) -> str:
        return f"version: {self.requirement}"


@dataclass(frozen=True)
class GitSource:
    """A git dependency with at most one of branch, tag or rev."""

    url: str
    ref_kind: GitRefKind = GitRefKind.NONE
    ref_value: Optional[str] = None

    def to_toml(self) -> Dict[str, str]:
        fields = {"git": self.url}
        if self.ref_kind is not GitRefKind.NONE and self.ref_value is not None:
            fields[self.ref_kind.value] = self.ref_value
        return fields

    def describe(self) -> str:
        if self.ref_kind is GitRefKind.NONE:
            return f"git: {self.url}"
        return f"git: {self.url}, {self.ref_kind.value}: {self.ref_value}"


@dataclass(frozen=True)
class PathSource:
    """A local path dependency, stored relative to the workspace root."""

    path: str

    def to_toml(self) -> Dict[str, str]:
        return {"path": self.path}

    def describe(self) -> str:
        return f"path: {self.path}"


SourceDescriptor = Union[VersionSource, GitSource, PathSource]


@dataclass(frozen=True)
class DependencyEntry:
    """One dependency declaration in one member manifest."""

    member_id: str
    table: TableKey
    name: str
    source: Optional[SourceDescriptor]
    extra_attributes: Dict[str, Any] = field(default_factory=dict, hash=False)
    already_hoisted: bool = False

    @property
    def key(self) -> GroupKey:
        return GroupKey(self.table, self.name)

    @property
    def is_hoistable(self) -> bool:
        return self.source is not None and not self.already_hoisted
