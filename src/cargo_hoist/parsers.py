"""
Normalization of Cargo dependency entries into comparable source descriptors.

Cargo manifests declare dependencies in several shapes:
- `serde = "1.0"` - shorthand version requirement
- `serde = { version = "1.0", features = ["derive"] }` - inline table
- `[dependencies.serde]` - full sub-table
- `foo = { git = "...", branch = "main" }` - git dependency
- `bar = { path = "../bar" }` - local path dependency
- `baz = { workspace = true }` - already inherited from the workspace root
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Any, Dict, List, Optional, Tuple

from .dependency import (
    GIT_REF_KEYS,
    SOURCE_KEYS,
    WORKSPACE_KEY,
    DependencyEntry,
    GitRefKind,
    GitSource,
    PathSource,
    SourceDescriptor,
    TableKey,
    VersionSource,
)
from .error_handling import (
    ErrorCategory,
    MalformedManifestError,
    PathResolutionError,
    log_manifest_error,
    log_path_error,
)
from .manifest import Manifest
from .structured_logging import log_dependency_considered, log_entry_skipped


@dataclass(frozen=True)
class EntryIssue:
    """A dependency entry that was excluded from hoisting because of an error."""

    member_id: str
    table: str
    name: str
    category: ErrorCategory
    message: str


def plain_value(value: Any) -> Any:
    """Convert a tomlkit item into the equivalent plain Python value."""
    unwrap = getattr(value, "unwrap", None)
    if callable(unwrap):
        return unwrap()
    return value


def relativize_path(declared: str, member_root: Path, workspace_root: Path) -> str:
    """
    Re-express a member-relative path as a path relative to the workspace root.

    The declared path is resolved against the member directory, lexically
    normalized, and then made relative to the workspace root. The result uses
    forward slashes so it is stable across platforms.

    Raises:
        PathResolutionError: If no relative path exists between the two
    """
    member_dir = os.path.abspath(str(member_root))
    absolute = os.path.normpath(os.path.join(member_dir, declared))
    try:
        relative = os.path.relpath(absolute, os.path.abspath(str(workspace_root)))
    except ValueError as e:
        raise PathResolutionError(
            f"cannot express {absolute} relative to {workspace_root}: {e}"
        ) from e
    return PurePath(relative).as_posix()


def _require_string(raw_entry: Mapping, key: str) -> str:
    value = raw_entry[key]
    if not isinstance(value, str):
        raise MalformedManifestError(
            f"`{key}` must be a string, got {type(plain_value(value)).__name__}"
        )
    return str(value)


def normalize(
    raw_entry: Any, member_root: Path, workspace_root: Path
) -> Optional[SourceDescriptor]:
    """
    Compute the source of a raw dependency entry.

    Args:
        raw_entry: The value of the dependency key (string or table)
        member_root: Directory of the manifest declaring the entry
        workspace_root: Directory of the workspace root manifest

    Returns:
        The source descriptor, or None if the entry inherits from the
        workspace or declares no version, git or path

    Raises:
        MalformedManifestError: If the entry mixes source keys or has bad types
        PathResolutionError: If a path dependency cannot be relativized
    """
    if isinstance(raw_entry, str):
        return VersionSource(str(raw_entry))

    if not isinstance(raw_entry, Mapping):
        raise MalformedManifestError(
            f"unsupported dependency value of type {type(plain_value(raw_entry)).__name__}"
        )

    present = [key for key in SOURCE_KEYS if key in raw_entry]

    if WORKSPACE_KEY in raw_entry:
        if not isinstance(raw_entry[WORKSPACE_KEY], bool):
            raise MalformedManifestError("`workspace` must be a boolean")
        if present:
            raise MalformedManifestError(
                f"`workspace` cannot be combined with {', '.join(present)}"
            )
        return None

    kinds = [key for key in ("version", "git", "path") if key in raw_entry]
    if len(kinds) > 1:
        raise MalformedManifestError(f"mixes source keys {' and '.join(kinds)}")

    refs = [key for key in GIT_REF_KEYS if key in raw_entry]
    if refs and "git" not in raw_entry:
        raise MalformedManifestError(f"{', '.join(refs)} given without `git`")
    if len(refs) > 1:
        raise MalformedManifestError(f"multiple git references: {', '.join(refs)}")

    if not kinds:
        return None

    if kinds[0] == "version":
        return VersionSource(_require_string(raw_entry, "version"))

    if kinds[0] == "git":
        url = _require_string(raw_entry, "git")
        if not refs:
            return GitSource(url)
        return GitSource(url, GitRefKind(refs[0]), _require_string(raw_entry, refs[0]))

    declared = _require_string(raw_entry, "path")
    return PathSource(relativize_path(declared, member_root, workspace_root))


def extra_attributes(raw_entry: Any) -> Dict[str, Any]:
    """Return every non-source key of an entry, in declaration order."""
    if not isinstance(raw_entry, Mapping):
        return {}
    return {
        str(key): plain_value(value)
        for key, value in raw_entry.items()
        if key not in SOURCE_KEYS and key != WORKSPACE_KEY
    }


def is_workspace_reference(raw_entry: Any) -> bool:
    return isinstance(raw_entry, Mapping) and raw_entry.get(WORKSPACE_KEY) is True


def parse_member_entries(
    manifest: Manifest,
    member_id: str,
    workspace_root: Path,
    include_dev: bool = True,
    include_build: bool = True,
    include_target: bool = True,
) -> Tuple[List[DependencyEntry], List[EntryIssue]]:
    """
    Parse every dependency table of a member manifest.

    Entries that are malformed or whose path cannot be resolved are reported
    and excluded; the remaining entries of the manifest are still returned.
    """
    entries: List[DependencyEntry] = []
    issues: List[EntryIssue] = []

    tables = manifest.dependency_tables(include_dev, include_build, include_target)
    for table_key, table in tables:
        for name, raw_entry in table.items():
            name = str(name)
            try:
                source = normalize(raw_entry, manifest.directory, workspace_root)
            except MalformedManifestError as e:
                e.member, e.dependency = member_id, name
                log_manifest_error(
                    str(e),
                    "parse_member_entries",
                    member=member_id,
                    dependency=name,
                    table=str(table_key),
                    exception=e,
                )
                issues.append(
                    EntryIssue(member_id, str(table_key), name, ErrorCategory.PARSING, str(e))
                )
                continue
            except PathResolutionError as e:
                log_path_error(
                    str(e),
                    member_id,
                    name,
                    declared_path=str(raw_entry.get("path")),
                    exception=e,
                )
                issues.append(
                    EntryIssue(
                        member_id,
                        str(table_key),
                        name,
                        ErrorCategory.PATH_RESOLUTION,
                        str(e),
                    )
                )
                continue

            hoisted = is_workspace_reference(raw_entry)
            if source is None:
                log_entry_skipped(
                    member_id,
                    str(table_key),
                    name,
                    "already_hoisted" if hoisted else "no_source",
                )
            else:
                log_dependency_considered(
                    member_id, str(table_key), name, source.describe()
                )

            entries.append(
                DependencyEntry(
                    member_id=member_id,
                    table=table_key,
                    name=name,
                    source=source,
                    extra_attributes=extra_attributes(raw_entry),
                    already_hoisted=hoisted,
                )
            )

    return entries, issues


def parse_workspace_dependencies(
    root_manifest: Manifest, workspace_root: Path
) -> Tuple[Dict[str, SourceDescriptor], List[EntryIssue]]:
    """
    Read the sources already declared in `[workspace.dependencies]`.

    Paths in the root table are already relative to the workspace root.
    """
    sources: Dict[str, SourceDescriptor] = {}
    issues: List[EntryIssue] = []

    table = root_manifest.workspace_dependencies()
    if table is None:
        return sources, issues

    for name, raw_entry in table.items():
        name = str(name)
        try:
            source = normalize(raw_entry, workspace_root, workspace_root)
        except (MalformedManifestError, PathResolutionError) as e:
            log_manifest_error(
                str(e),
                "parse_workspace_dependencies",
                member="<workspace>",
                dependency=name,
                table="workspace.dependencies",
                exception=e,
            )
            issues.append(
                EntryIssue(
                    "<workspace>",
                    "workspace.dependencies",
                    name,
                    ErrorCategory.PARSING,
                    str(e),
                )
            )
            continue
        if source is not None:
            sources[name] = source

    return sources, issues
