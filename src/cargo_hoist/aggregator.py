"""
Grouping of dependency declarations across workspace members.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .dependency import DependencyEntry, GroupKey, SourceDescriptor
from .structured_logging import log_group_classified

# Pseudo member owning a source already present in [workspace.dependencies].
WORKSPACE_MEMBER_ID = "<workspace>"


class GroupClassification(Enum):
    UNIFORM = "UNIFORM"
    CONFLICTING = "CONFLICTING"


@dataclass
class DependencyGroup:
    """All sources declared for one table-qualified dependency name."""

    key: GroupKey
    candidates: List[Tuple[str, SourceDescriptor]] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def distinct_sources(self) -> List[SourceDescriptor]:
        """Distinct sources in first-seen order."""
        sources: List[SourceDescriptor] = []
        for _, source in self.candidates:
            if source not in sources:
                sources.append(source)
        return sources

    @property
    def classification(self) -> GroupClassification:
        if len(self.distinct_sources) <= 1:
            return GroupClassification.UNIFORM
        return GroupClassification.CONFLICTING

    @property
    def is_uniform(self) -> bool:
        return self.classification is GroupClassification.UNIFORM

    @property
    def members(self) -> List[str]:
        """Real members contributing to the group, without the workspace pseudo member."""
        members: List[str] = []
        for member_id, _ in self.candidates:
            if member_id != WORKSPACE_MEMBER_ID and member_id not in members:
                members.append(member_id)
        return members

    @property
    def member_count(self) -> int:
        return len(self.members)


class DependencyAggregator:
    """
    Groups hoistable entries by (table, name) and classifies each group.

    Follows the RORO pattern: receives dependency entries, returns groups.
    """

    def __init__(self, existing_root: Optional[Mapping[str, SourceDescriptor]] = None):
        """
        Args:
            existing_root: Sources already declared in `[workspace.dependencies]`;
                a group whose name is found there starts with that source
        """
        self.existing_root = dict(existing_root or {})

    def aggregate(
        self, entries: Iterable[DependencyEntry]
    ) -> Dict[GroupKey, DependencyGroup]:
        groups: Dict[GroupKey, DependencyGroup] = {}

        for entry in entries:
            if not entry.is_hoistable:
                continue

            group = groups.get(entry.key)
            if group is None:
                group = DependencyGroup(entry.key)
                root_source = self.existing_root.get(entry.name)
                if root_source is not None:
                    group.candidates.append((WORKSPACE_MEMBER_ID, root_source))
                groups[entry.key] = group

            group.candidates.append((entry.member_id, entry.source))

        for group in groups.values():
            log_group_classified(
                str(group.key.table),
                group.name,
                group.classification.value,
                len(group.distinct_sources),
                group.member_count,
            )

        return groups


def aggregate(
    entries: Iterable[DependencyEntry],
    existing_root: Optional[Mapping[str, SourceDescriptor]] = None,
) -> Dict[GroupKey, DependencyGroup]:
    """Group entries across the workspace; see DependencyAggregator."""
    return DependencyAggregator(existing_root).aggregate(entries)
