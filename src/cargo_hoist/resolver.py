"""
Conflict resolution for dependency groups.

Uniform groups are hoisted without asking anyone. Conflicting groups are
handed to a decision provider exactly once; the provider picks one of the
candidate sources or skips the dependency.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import click
from rich.console import Console

from .aggregator import DependencyGroup
from .dependency import GroupKey, SourceDescriptor, TableKey
from .error_handling import DecisionProviderError, log_decision_error
from .structured_logging import log_cross_table_conflict, log_decision_made


class DecisionAction(Enum):
    HOIST = "HOIST"
    SKIP = "SKIP"


@dataclass(frozen=True)
class HoistDecision:
    """Outcome of resolving one dependency group."""

    action: DecisionAction
    source: Optional[SourceDescriptor] = None
    reason: str = ""

    @classmethod
    def hoist(cls, source: SourceDescriptor, reason: str = "uniform") -> "HoistDecision":
        return cls(DecisionAction.HOIST, source, reason)

    @classmethod
    def skip(cls, reason: str = "operator_skip") -> "HoistDecision":
        return cls(DecisionAction.SKIP, None, reason)

    @property
    def is_hoist(self) -> bool:
        return self.action is DecisionAction.HOIST


class DecisionProvider(ABC):
    """Chooses a source for a conflicting dependency."""

    @abstractmethod
    def choose(
        self, name: str, table: TableKey, candidates: Sequence[SourceDescriptor]
    ) -> Optional[int]:
        """
        Args:
            name: Dependency name
            table: Dependency table the group belongs to
            candidates: At least two distinct sources, in first-seen order

        Returns:
            Index of the chosen candidate, or None to skip hoisting

        Raises:
            DecisionProviderError: If no decision can be obtained
        """


class SkipDecisionProvider(DecisionProvider):
    """Non-interactive provider that never hoists a conflicting dependency."""

    def choose(self, name, table, candidates):
        return None


class FirstCandidateDecisionProvider(DecisionProvider):
    """Non-interactive provider that always picks the first-seen source."""

    def choose(self, name, table, candidates):
        return 0


class InteractiveDecisionProvider(DecisionProvider):
    """Asks the operator on the terminal; `0` skips the dependency."""

    def __init__(
        self,
        console: Optional[Console] = None,
        prompt: Callable[..., int] = click.prompt,
    ):
        self.console = console or Console(stderr=True)
        self.prompt = prompt

    def choose(self, name, table, candidates):
        self.console.print(
            f"\n⚠️  Dependency [bold]`{name}`[/bold] ([cyan]{table}[/cyan]) "
            "has conflicting source specifications:",
            style="yellow",
        )
        for index, source in enumerate(candidates, start=1):
            self.console.print(f"  {index}) {source.describe()}", markup=False)
        self.console.print("  0) Skip hoisting this dependency")

        try:
            choice = self.prompt(
                f"Please choose an option for `{name}`",
                default=0,
                type=click.IntRange(0, len(candidates)),
                show_default=True,
                err=True,
            )
        except (click.Abort, EOFError) as e:
            raise DecisionProviderError(f"no answer for `{name}`: input closed") from e

        if choice == 0:
            return None
        return choice - 1


DECISION_STRATEGIES = ("interactive", "skip", "first")


def get_decision_provider(
    strategy: str = "interactive", console: Optional[Console] = None
) -> DecisionProvider:
    """
    Factory function for decision providers.

    Args:
        strategy: One of "interactive", "skip" or "first"
        console: Console used by the interactive prompt
    """
    strategy = strategy.lower()
    if strategy == "interactive":
        return InteractiveDecisionProvider(console)
    if strategy == "skip":
        return SkipDecisionProvider()
    if strategy == "first":
        return FirstCandidateDecisionProvider()
    raise ValueError(f"Unknown decision strategy: {strategy}")


class ConflictResolver:
    """Turns dependency groups into hoist decisions."""

    def __init__(self, provider: DecisionProvider):
        self.provider = provider

    def resolve(self, group: DependencyGroup) -> HoistDecision:
        candidates = group.distinct_sources

        if group.is_uniform:
            decision = HoistDecision.hoist(candidates[0])
        else:
            decision = self._ask_provider(group, candidates)

        log_decision_made(
            str(group.key.table),
            group.name,
            decision.action.value,
            decision.source.describe() if decision.source else None,
            decision.reason,
        )
        return decision

    def _ask_provider(
        self, group: DependencyGroup, candidates: List[SourceDescriptor]
    ) -> HoistDecision:
        try:
            choice = self.provider.choose(group.name, group.key.table, candidates)
        except DecisionProviderError as e:
            log_decision_error(str(e), group.name, exception=e)
            return HoistDecision.skip("provider_failure")

        if choice is None:
            return HoistDecision.skip("operator_skip")
        if not 0 <= choice < len(candidates):
            log_decision_error(
                f"provider returned out-of-range choice {choice} for `{group.name}`",
                group.name,
            )
            return HoistDecision.skip("provider_failure")
        return HoistDecision.hoist(candidates[choice], "operator_choice")

    def resolve_all(
        self, groups: Mapping[GroupKey, DependencyGroup]
    ) -> Dict[GroupKey, HoistDecision]:
        """Resolve every group independently, then refuse cross-table mismatches."""
        decisions = {key: self.resolve(group) for key, group in groups.items()}
        return enforce_cross_table_consistency(decisions)


def enforce_cross_table_consistency(
    decisions: Mapping[GroupKey, HoistDecision],
) -> Dict[GroupKey, HoistDecision]:
    """
    Skip names that would be hoisted with different sources from different tables.

    `[workspace.dependencies]` holds one entry per name regardless of which
    member table it came from, so such names cannot be hoisted.
    """
    sources_by_name: Dict[str, Dict[GroupKey, SourceDescriptor]] = {}
    for key, decision in decisions.items():
        if decision.is_hoist:
            sources_by_name.setdefault(key.name, {})[key] = decision.source

    refused = set()
    for name, by_key in sources_by_name.items():
        distinct = set(by_key.values())
        if len(distinct) > 1:
            refused.add(name)
            log_cross_table_conflict(
                name, {str(key.table): source.describe() for key, source in by_key.items()}
            )

    resolved = {}
    for key, decision in decisions.items():
        if key.name in refused and decision.is_hoist:
            resolved[key] = HoistDecision.skip("cross_table_conflict")
            log_decision_made(
                str(key.table), key.name, DecisionAction.SKIP.value, None, "cross_table_conflict"
            )
        else:
            resolved[key] = decision
    return resolved
