"""
Workspace discovery and manifest persistence.

Locates the workspace root, expands `[workspace].members` into member
manifests, reads manifest text with size limits and writes modified
manifests back to disk.
"""

import glob
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .cli_config import get_config
from .error_handling import (
    ErrorCategory,
    MalformedManifestError,
    PersistenceError,
    WorkspaceError,
    get_error_handler,
)
from .manifest import MANIFEST_NAME, Manifest
from .structured_logging import log_manifest_written

ROOT_MEMBER_ID = "."


@dataclass
class Workspace:
    """A workspace root manifest and its member manifests, keyed by member id."""

    root: Path
    root_manifest: Manifest
    members: Dict[str, Manifest] = field(default_factory=dict)
    load_errors: List[str] = field(default_factory=list)

    def manifests(self) -> List[Manifest]:
        """Every distinct manifest object, members first and root last."""
        seen: List[Manifest] = []
        for manifest in self.members.values():
            if manifest is self.root_manifest:
                continue
            if not any(manifest is other for other in seen):
                seen.append(manifest)
        seen.append(self.root_manifest)
        return seen


def _validate_manifest_path(path: Path, max_bytes: int) -> Path:
    """
    Validate a manifest path before reading it.

    Raises:
        WorkspaceError: If the path is missing, not a file, or too large
    """
    try:
        resolved = path.resolve()
    except (OSError, RuntimeError) as e:
        raise WorkspaceError(f"Invalid manifest path {path}: {e}") from e

    if not resolved.is_file():
        raise WorkspaceError(f"Manifest does not exist: {resolved}")

    try:
        size = resolved.stat().st_size
    except OSError as e:
        raise WorkspaceError(f"Cannot access manifest {resolved}: {e}") from e
    if size > max_bytes:
        raise WorkspaceError(f"Manifest too large: {size} bytes (max: {max_bytes})")

    return resolved


def read_manifest_text(path: Path, max_bytes: Optional[int] = None) -> str:
    """Read a manifest as UTF-8 text."""
    if max_bytes is None:
        max_bytes = get_config().security.max_file_size_bytes
    validated = _validate_manifest_path(path, max_bytes)

    try:
        with open(validated, encoding="utf-8") as f:
            return f.read()
    except UnicodeDecodeError as e:
        raise WorkspaceError(f"{validated} contains invalid UTF-8") from e
    except OSError as e:
        raise WorkspaceError(f"Error reading {validated}: {e}") from e


def load_manifest(path: Path, max_bytes: Optional[int] = None) -> Manifest:
    return Manifest.from_text(read_manifest_text(path, max_bytes), path)


def find_workspace_root(start: Path) -> Path:
    """
    Walk up from `start` to the nearest directory whose Cargo.toml has [workspace].

    Raises:
        WorkspaceError: If no workspace manifest is found
    """
    current = start.resolve()
    if current.is_file():
        current = current.parent

    for directory in [current, *current.parents]:
        candidate = directory / MANIFEST_NAME
        if not candidate.is_file():
            continue
        try:
            manifest = load_manifest(candidate)
        except MalformedManifestError:
            continue
        if manifest.is_workspace_root:
            return directory

    raise WorkspaceError(f"No Cargo workspace found at or above {start}")


def _expand_pattern(root: Path, pattern: str) -> List[Path]:
    if any(char in pattern for char in "*?["):
        matches = sorted(glob.glob(os.path.join(str(root), pattern)))
        return [Path(match) for match in matches]
    return [root / pattern]


def expand_members(root: Path, members: List[str], exclude: List[str]) -> List[Path]:
    """
    Expand member patterns into member directories.

    Globs are expanded relative to the root; only directories holding a
    Cargo.toml are kept. Order follows the member list, duplicates dropped.
    """
    excluded = set()
    for pattern in exclude:
        for path in _expand_pattern(root, pattern):
            excluded.add(os.path.normpath(os.path.abspath(str(path))))

    directories: List[Path] = []
    seen = set()
    for pattern in members:
        expanded = _expand_pattern(root, pattern)
        for path in expanded:
            normalized = os.path.normpath(os.path.abspath(str(path)))
            if normalized in excluded or normalized in seen:
                continue
            if not (Path(normalized) / MANIFEST_NAME).is_file():
                if not any(char in pattern for char in "*?["):
                    get_error_handler().warning(
                        ErrorCategory.WORKSPACE,
                        f"Workspace member `{pattern}` has no {MANIFEST_NAME}",
                        "workspace",
                        "expand_members",
                        details={"member": pattern},
                    )
                continue
            seen.add(normalized)
            directories.append(Path(normalized))

    return directories


def member_id_for(root: Path, directory: Path) -> str:
    relative = os.path.relpath(str(directory), str(root))
    return Path(relative).as_posix()


def load_workspace(root: Path, max_bytes: Optional[int] = None) -> Workspace:
    """
    Load the root manifest and every member manifest.

    A member that cannot be read or parsed is reported and left out; a broken
    root manifest is fatal.

    Raises:
        WorkspaceError: If the root manifest is missing or has no [workspace]
        MalformedManifestError: If the root manifest is not valid TOML
    """
    root = Path(root).resolve()
    root_manifest = load_manifest(root / MANIFEST_NAME, max_bytes)
    if not root_manifest.is_workspace_root:
        raise WorkspaceError(f"No [workspace] table found in {root / MANIFEST_NAME}")

    workspace = Workspace(root=root, root_manifest=root_manifest)

    if root_manifest.is_package:
        workspace.members[ROOT_MEMBER_ID] = root_manifest

    directories = expand_members(
        root, root_manifest.workspace_members, root_manifest.workspace_exclude
    )
    for directory in directories:
        member_id = member_id_for(root, directory)
        if member_id == ROOT_MEMBER_ID:
            workspace.members[ROOT_MEMBER_ID] = root_manifest
            continue
        if member_id in workspace.members:
            continue
        try:
            workspace.members[member_id] = load_manifest(
                directory / MANIFEST_NAME, max_bytes
            )
        except (WorkspaceError, MalformedManifestError) as e:
            get_error_handler().warning(
                ErrorCategory.WORKSPACE,
                f"Skipping member {member_id}: {e}",
                "workspace",
                "load_workspace",
                details={"member": member_id},
                exception=e,
            )
            workspace.load_errors.append(f"{member_id}: {e}")

    return workspace


def write_manifest(manifest: Manifest) -> None:
    """
    Write a manifest back to its path.

    Raises:
        PersistenceError: If the file cannot be written
    """
    try:
        with open(manifest.path, "w", encoding="utf-8", newline="") as f:
            f.write(manifest.dumps())
    except OSError as e:
        raise PersistenceError(f"Failed to write {manifest.path}: {e}") from e
    log_manifest_written(str(manifest.path))


def persist_workspace(workspace: Workspace) -> List[Path]:
    """
    Write every modified manifest, members first and the root last.

    A failure stops the sequence; files written before it are not rolled back.

    Returns:
        Paths of the written manifests
    """
    written: List[Path] = []
    for manifest in workspace.manifests():
        if not manifest.modified:
            continue
        write_manifest(manifest)
        manifest.modified = False
        written.append(manifest.path)
    return written
