"""
Hoisting pipeline.

parse -> aggregate -> resolve -> plan -> write, as one synchronous pass over
a pre-enumerated workspace. The only point where the pipeline waits is the
decision provider. No file is touched until every conflict has a decision.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .aggregator import DependencyAggregator, DependencyGroup
from .cli_config import get_config
from .dependency import DependencyEntry, GroupKey, SourceDescriptor
from .error_handling import HoistError, get_error_handler
from .parsers import EntryIssue, parse_member_entries, parse_workspace_dependencies
from .planner import RewritePlan, RewritePlanner
from .resolver import (
    ConflictResolver,
    DecisionProvider,
    HoistDecision,
    get_decision_provider,
)
from .structured_logging import log_hoist_complete, log_hoist_start
from .workspace import Workspace, persist_workspace
from .writer import ManifestWriter


@dataclass
class HoistResult:
    """Everything a hoist run decided and did."""

    workspace_root: Path
    groups: Dict[GroupKey, DependencyGroup] = field(default_factory=dict)
    decisions: Dict[GroupKey, HoistDecision] = field(default_factory=dict)
    plan: RewritePlan = field(default_factory=RewritePlan)
    issues: List[EntryIssue] = field(default_factory=list)
    written: List[Path] = field(default_factory=list)
    dry_run: bool = False
    duration_ms: int = 0
    error_stats: Dict[str, int] = field(default_factory=dict)

    @property
    def hoisted(self) -> Dict[GroupKey, SourceDescriptor]:
        return {
            key: decision.source
            for key, decision in self.decisions.items()
            if decision.is_hoist and key not in self.plan.below_threshold
        }

    @property
    def skipped(self) -> Dict[GroupKey, HoistDecision]:
        return {
            key: decision
            for key, decision in self.decisions.items()
            if not decision.is_hoist
        }

    @property
    def conflicting_groups(self) -> List[DependencyGroup]:
        return [group for group in self.groups.values() if not group.is_uniform]

    @property
    def has_changes(self) -> bool:
        return not self.plan.is_empty


class WorkspaceHoister:
    """
    Hoists shared dependency sources into `[workspace.dependencies]`.

    Follows the RORO pattern: receives a loaded workspace, returns a HoistResult.
    """

    def __init__(
        self,
        provider: DecisionProvider,
        min_members: int = 1,
        include_dev: bool = True,
        include_build: bool = True,
        include_target: bool = True,
        dry_run: bool = False,
    ):
        self.provider = provider
        self.include_dev = include_dev
        self.include_build = include_build
        self.include_target = include_target
        self.dry_run = dry_run
        self.planner = RewritePlanner(min_members)
        self.resolver = ConflictResolver(provider)
        self.writer = ManifestWriter()

    def collect_entries(
        self, workspace: Workspace
    ) -> Tuple[List[DependencyEntry], List[EntryIssue]]:
        """Parse every member manifest; returns (entries, issues)."""
        entries: List[DependencyEntry] = []
        issues: List[EntryIssue] = []
        for member_id, manifest in workspace.members.items():
            member_entries, member_issues = parse_member_entries(
                manifest,
                member_id,
                workspace.root,
                self.include_dev,
                self.include_build,
                self.include_target,
            )
            entries.extend(member_entries)
            issues.extend(member_issues)
        return entries, issues

    def run(self, workspace: Workspace) -> HoistResult:
        """
        Run the pipeline and, unless dry-run, write the modified manifests.

        Raises:
            PersistenceError: If a manifest cannot be written
        """
        start_time = time.monotonic()
        log_hoist_start(str(workspace.root), len(workspace.members))

        result = HoistResult(workspace_root=workspace.root, dry_run=self.dry_run)

        existing_root, root_issues = parse_workspace_dependencies(
            workspace.root_manifest, workspace.root
        )
        entries, issues = self.collect_entries(workspace)
        result.issues = root_issues + issues

        groups = DependencyAggregator(existing_root).aggregate(entries)
        result.groups = self.planner.filter_groups(groups)
        result.decisions = self.resolver.resolve_all(result.groups)
        result.plan = self.planner.plan(result.decisions, entries, existing_root)

        if not self.dry_run and not result.plan.is_empty:
            self.apply(workspace, result.plan)
            result.written = persist_workspace(workspace)

        result.duration_ms = int((time.monotonic() - start_time) * 1000)
        result.error_stats = get_error_handler().get_error_stats()
        log_hoist_complete(
            result.duration_ms,
            hoisted=len(result.hoisted),
            skipped=len(result.skipped),
            conflicts=len(result.conflicting_groups),
            issues=len(result.issues),
        )
        return result

    def apply(self, workspace: Workspace, plan: RewritePlan) -> None:
        """Apply a plan to the in-memory manifests without writing them."""
        for member_id, patch in plan.member_patches.items():
            manifest = workspace.members.get(member_id)
            if manifest is None:
                raise HoistError(f"Plan references unknown member {member_id}")
            self.writer.apply_member_patch(patch, manifest)
        self.writer.apply_root_patch(plan.root_patch, workspace.root_manifest)


def get_workspace_hoister(
    provider: Optional[DecisionProvider] = None,
    min_members: Optional[int] = None,
    include_dev: Optional[bool] = None,
    include_build: Optional[bool] = None,
    include_target: Optional[bool] = None,
    dry_run: Optional[bool] = None,
) -> WorkspaceHoister:
    """
    Factory function to create a hoister; unset arguments come from config.
    """
    config = get_config().hoist

    def pick(value, default):
        return default if value is None else value

    return WorkspaceHoister(
        provider=provider or get_decision_provider(config.strategy),
        min_members=pick(min_members, config.min_members),
        include_dev=pick(include_dev, config.include_dev),
        include_build=pick(include_build, config.include_build),
        include_target=pick(include_target, config.include_target),
        dry_run=pick(dry_run, config.dry_run),
    )
