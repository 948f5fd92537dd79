"""
In-memory model of a Cargo manifest.

The document is kept as a tomlkit tree so that targeted edits leave comments,
key order and unrelated tables exactly as they were on disk.
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import tomlkit
from tomlkit.exceptions import ParseError
from tomlkit.toml_document import TOMLDocument

from .dependency import TableKey, TableKind
from .error_handling import MalformedManifestError

MANIFEST_NAME = "Cargo.toml"


class Manifest:
    """A parsed Cargo.toml with accessors for its dependency tables."""

    def __init__(self, path: Path, document: TOMLDocument):
        self.path = Path(path)
        self.document = document
        self.modified = False

    @classmethod
    def from_text(cls, text: str, path: Path) -> "Manifest":
        """
        Parse manifest text.

        Raises:
            MalformedManifestError: If the text is not valid TOML
        """
        try:
            document = tomlkit.parse(text)
        except ParseError as e:
            raise MalformedManifestError(f"invalid TOML: {e}", member=str(path)) from e
        return cls(path, document)

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def is_workspace_root(self) -> bool:
        return isinstance(self.document.get("workspace"), Mapping)

    @property
    def is_package(self) -> bool:
        return isinstance(self.document.get("package"), Mapping)

    def _workspace_list(self, key: str) -> List[str]:
        workspace = self.document.get("workspace")
        if not isinstance(workspace, Mapping):
            return []
        values = workspace.get(key, [])
        if not isinstance(values, list):
            raise MalformedManifestError(
                f"workspace.{key} must be an array", member=str(self.path)
            )
        return [str(value) for value in values if isinstance(value, str)]

    @property
    def workspace_members(self) -> List[str]:
        return self._workspace_list("members")

    @property
    def workspace_exclude(self) -> List[str]:
        return self._workspace_list("exclude")

    def get_table(self, key: TableKey) -> Optional[Mapping]:
        """Return the dependency table for `key`, or None if the manifest has none."""
        node = self.document
        for part in key.path:
            if not isinstance(node, Mapping):
                return None
            node = node.get(part)
        return node if isinstance(node, Mapping) else None

    def dependency_tables(
        self,
        include_dev: bool = True,
        include_build: bool = True,
        include_target: bool = True,
    ) -> Iterator[Tuple[TableKey, Mapping]]:
        """Yield every dependency table in document order, top-level tables first."""
        kinds = [TableKind.DEPENDENCIES]
        if include_dev:
            kinds.append(TableKind.DEV_DEPENDENCIES)
        if include_build:
            kinds.append(TableKind.BUILD_DEPENDENCIES)

        for kind in kinds:
            key = TableKey(kind)
            table = self.get_table(key)
            if table is not None:
                yield key, table

        if not include_target:
            return

        targets = self.document.get("target")
        if not isinstance(targets, Mapping):
            return
        for cfg in targets.keys():
            for kind in kinds:
                key = TableKey(kind, str(cfg))
                table = self.get_table(key)
                if table is not None:
                    yield key, table

    def workspace_dependencies(self) -> Optional[Mapping]:
        """Return `[workspace.dependencies]` if present."""
        workspace = self.document.get("workspace")
        if not isinstance(workspace, Mapping):
            return None
        table = workspace.get("dependencies")
        return table if isinstance(table, Mapping) else None

    def ensure_workspace_dependencies(self) -> Mapping:
        """Return `[workspace.dependencies]`, creating the tables when missing."""
        if "workspace" not in self.document:
            self.document["workspace"] = tomlkit.table()
        workspace = self.document["workspace"]
        if not isinstance(workspace, Mapping):
            raise MalformedManifestError("workspace must be a table", member=str(self.path))

        if "dependencies" not in workspace:
            workspace["dependencies"] = tomlkit.table()
        table = workspace["dependencies"]
        if not isinstance(table, Mapping):
            raise MalformedManifestError(
                "workspace.dependencies must be a table", member=str(self.path)
            )
        return table

    def dumps(self) -> str:
        return tomlkit.dumps(self.document)

    def __repr__(self) -> str:
        return f"Manifest({str(self.path)!r}, modified={self.modified})"
