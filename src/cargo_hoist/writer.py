"""
Applies rewrite plans to in-memory manifests.

Only the keys named by a patch are touched; tomlkit keeps comments, key
order and formatting of everything else.
"""

from collections.abc import Mapping

import tomlkit
from tomlkit.items import InlineTable, Table

from .dependency import SOURCE_KEYS, WORKSPACE_KEY, SourceDescriptor
from .error_handling import MalformedManifestError
from .manifest import Manifest
from .planner import MemberPatch, RootPatch
from .structured_logging import log_patch_applied


def source_to_inline(source: SourceDescriptor) -> InlineTable:
    """Render a source as an inline table holding only source keys."""
    table = tomlkit.inline_table()
    for key, value in source.to_toml().items():
        table[key] = value
    return table


def workspace_reference(original) -> object:
    """
    Build the `{ workspace = true, ... }` replacement for a member entry.

    Inline tables are rebuilt with `workspace` first and every non-source key
    copied in its original order. Full `[dependencies.<name>]` tables are
    edited in place so they keep their layout.
    """
    if isinstance(original, Table):
        for key in SOURCE_KEYS:
            if key in original:
                del original[key]
        original[WORKSPACE_KEY] = True
        return original

    replacement = tomlkit.inline_table()
    replacement[WORKSPACE_KEY] = True
    if isinstance(original, Mapping):
        for key, value in original.items():
            if key in SOURCE_KEYS or key == WORKSPACE_KEY:
                continue
            replacement[key] = value
    return replacement


class ManifestWriter:
    """Applies root and member patches to Manifest models."""

    def apply_root_patch(self, patch: RootPatch, manifest: Manifest) -> Manifest:
        if patch.is_empty:
            return manifest

        table = manifest.ensure_workspace_dependencies()
        for name, source in patch.entries.items():
            existing = table.get(name)
            if isinstance(existing, Mapping):
                # Keep attributes the root entry already carries (e.g. features).
                for key in SOURCE_KEYS:
                    if key in existing:
                        del existing[key]
                for key, value in source.to_toml().items():
                    existing[key] = value
            else:
                table[name] = source_to_inline(source)
            log_patch_applied("workspace", name)

        manifest.modified = True
        return manifest

    def apply_member_patch(self, patch: MemberPatch, manifest: Manifest) -> Manifest:
        for rewrite in patch.rewrites:
            table = manifest.get_table(rewrite.table)
            if table is None or rewrite.name not in table:
                raise MalformedManifestError(
                    f"{rewrite.table} no longer declares `{rewrite.name}`",
                    member=patch.member_id,
                    dependency=rewrite.name,
                )
            original = table[rewrite.name]
            replacement = workspace_reference(original)
            if replacement is not original:
                table[rewrite.name] = replacement
            manifest.modified = True
            log_patch_applied(patch.member_id, rewrite.name, str(rewrite.table))

        return manifest
