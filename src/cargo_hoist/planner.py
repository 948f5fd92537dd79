"""
Rewrite planning: from hoist decisions to root and member patches.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .aggregator import DependencyGroup
from .dependency import DependencyEntry, GroupKey, SourceDescriptor, TableKey
from .resolver import HoistDecision
from .structured_logging import log_patch_computed


@dataclass
class RootPatch:
    """Entries to insert or update in `[workspace.dependencies]`."""

    entries: Dict[str, SourceDescriptor] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class MemberRewrite:
    """Rewrite one member entry into `{ workspace = true, <extras> }`."""

    table: TableKey
    name: str
    extra_attributes: Dict[str, Any] = field(default_factory=dict, hash=False)


@dataclass
class MemberPatch:
    member_id: str
    rewrites: List[MemberRewrite] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.rewrites

    def __len__(self) -> int:
        return len(self.rewrites)


@dataclass
class RewritePlan:
    root_patch: RootPatch = field(default_factory=RootPatch)
    member_patches: Dict[str, MemberPatch] = field(default_factory=dict)
    below_threshold: List[GroupKey] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.root_patch.is_empty and all(
            patch.is_empty for patch in self.member_patches.values()
        )

    @property
    def rewrite_count(self) -> int:
        return sum(len(patch) for patch in self.member_patches.values())


class RewritePlanner:
    """
    Computes the edits that hoist each decided dependency.

    Args:
        min_members: Minimum number of distinct members that must declare a
            dependency before it is hoisted. 1 hoists every dependency.
    """

    def __init__(self, min_members: int = 1):
        if min_members < 1:
            raise ValueError("min_members must be at least 1")
        self.min_members = min_members

    def is_eligible(self, group: DependencyGroup) -> bool:
        return group.member_count >= self.min_members

    def filter_groups(
        self, groups: Mapping[GroupKey, DependencyGroup]
    ) -> Dict[GroupKey, DependencyGroup]:
        """Drop groups below the member threshold before anyone is asked about them."""
        return {key: group for key, group in groups.items() if self.is_eligible(group)}

    def plan(
        self,
        decisions: Mapping[GroupKey, HoistDecision],
        entries: Iterable[DependencyEntry],
        existing_root: Optional[Mapping[str, SourceDescriptor]] = None,
    ) -> RewritePlan:
        """
        Args:
            decisions: Hoist decision per group
            entries: Every parsed member entry
            existing_root: Sources already present in `[workspace.dependencies]`

        Returns:
            RewritePlan with the root patch and one patch per touched member
        """
        existing_root = existing_root or {}
        entries = [entry for entry in entries if entry.is_hoistable]
        plan = RewritePlan()

        members_by_key: Dict[GroupKey, set] = {}
        for entry in entries:
            members_by_key.setdefault(entry.key, set()).add(entry.member_id)

        hoisted: Dict[GroupKey, SourceDescriptor] = {}
        for key, decision in decisions.items():
            if not decision.is_hoist:
                continue
            if len(members_by_key.get(key, ())) < self.min_members:
                plan.below_threshold.append(key)
                continue
            hoisted[key] = decision.source

        for key, source in hoisted.items():
            if existing_root.get(key.name) == source:
                continue
            plan.root_patch.entries[key.name] = source

        for entry in entries:
            if entry.key not in hoisted:
                continue
            patch = plan.member_patches.setdefault(
                entry.member_id, MemberPatch(entry.member_id)
            )
            patch.rewrites.append(
                MemberRewrite(entry.table, entry.name, dict(entry.extra_attributes))
            )

        log_patch_computed("workspace", len(plan.root_patch))
        for member_id, patch in plan.member_patches.items():
            log_patch_computed(member_id, len(patch))

        return plan
