"""
Console output for hoist runs using the Rich library.
"""

import json
from typing import Any, Dict, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .hoister import HoistResult


class HoistReporter:
    """Formats and displays hoist plans and results."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_result(self, result: HoistResult, verbose: bool = False) -> None:
        self.console.print()
        self._print_header(result)

        if result.issues:
            self._print_issues(result)

        if verbose and result.groups:
            self._print_groups(result)

        if result.has_changes:
            self._print_plan(result)
        else:
            self.console.print(
                "✅ Nothing to hoist: the workspace is already consolidated.",
                style="green",
            )

        self._print_footer(result)

    def _print_header(self, result: HoistResult) -> None:
        mode = "Plan (dry run)" if result.dry_run else "Hoist"
        self.console.print(
            Panel(
                f"📦 {mode}: {result.workspace_root}",
                title="[bold blue]cargo-hoist[/bold blue]",
                border_style="blue",
            )
        )

    def _print_issues(self, result: HoistResult) -> None:
        table = Table(
            title="⚠️  Entries excluded from hoisting",
            box=box.ROUNDED,
            title_style="bold yellow",
        )
        table.add_column("Member")
        table.add_column("Table")
        table.add_column("Dependency", style="bold")
        table.add_column("Problem")
        for issue in result.issues:
            table.add_row(issue.member_id, issue.table, issue.name, issue.message)
        self.console.print(table)

    def _print_groups(self, result: HoistResult) -> None:
        table = Table(title="📊 Dependency groups", box=box.ROUNDED, title_style="bold cyan")
        table.add_column("Table")
        table.add_column("Dependency", style="bold")
        table.add_column("Members", justify="center")
        table.add_column("Sources", justify="center")
        table.add_column("Decision")

        for key, group in result.groups.items():
            decision = result.decisions.get(key)
            if decision is None:
                status = "[dim]-[/dim]"
            elif decision.is_hoist:
                status = f"[green]hoist[/green] {decision.source.describe()}"
            else:
                status = f"[yellow]skip[/yellow] ({decision.reason})"
            table.add_row(
                str(key.table),
                key.name,
                str(group.member_count),
                str(len(group.distinct_sources)),
                status,
            )
        self.console.print(table)

    def _print_plan(self, result: HoistResult) -> None:
        plan = result.plan
        if not plan.root_patch.is_empty:
            self.console.print("\n[bold cyan][workspace.dependencies][/bold cyan]")
            for name, source in plan.root_patch.entries.items():
                self.console.print(f"  + {name} = {source.describe()}", markup=False)

        for member_id, patch in plan.member_patches.items():
            if patch.is_empty:
                continue
            self.console.print(f"\n[bold cyan]{member_id}[/bold cyan]")
            for rewrite in patch.rewrites:
                extras = ", ".join(rewrite.extra_attributes)
                suffix = f" (keeps {extras})" if extras else ""
                self.console.print(
                    f"  ~ {rewrite.table}.{rewrite.name} -> workspace = true{suffix}",
                    markup=False,
                )

    def _print_footer(self, result: HoistResult) -> None:
        self.console.print()
        summary = (
            f"Hoisted: {len(result.hoisted)}  "
            f"Skipped: {len(result.skipped)}  "
            f"Conflicts: {len(result.conflicting_groups)}  "
            f"Member rewrites: {result.plan.rewrite_count}"
        )
        self.console.print(summary, style="bold")
        if result.error_stats:
            counts = ", ".join(
                f"{key}={count}" for key, count in sorted(result.error_stats.items())
            )
            self.console.print(f"Diagnostics: {counts}", style="dim")
        if result.written:
            for path in result.written:
                self.console.print(f"✅ Updated {path}", style="green")
        elif result.dry_run and result.has_changes:
            self.console.print("ℹ️  Dry run: no files were modified", style="blue")


def result_to_dict(result: HoistResult) -> Dict[str, Any]:
    """Serialize a result for JSON output."""
    return {
        "workspace_root": str(result.workspace_root),
        "dry_run": result.dry_run,
        "duration_ms": result.duration_ms,
        "root_entries": {
            name: source.to_toml()
            for name, source in result.plan.root_patch.entries.items()
        },
        "member_rewrites": {
            member_id: [
                {
                    "table": str(rewrite.table),
                    "name": rewrite.name,
                    "extra_attributes": rewrite.extra_attributes,
                }
                for rewrite in patch.rewrites
            ]
            for member_id, patch in result.plan.member_patches.items()
        },
        "skipped": {
            str(key): decision.reason for key, decision in result.skipped.items()
        },
        "issues": [
            {
                "member": issue.member_id,
                "table": issue.table,
                "dependency": issue.name,
                "category": issue.category.value,
                "message": issue.message,
            }
            for issue in result.issues
        ],
        "written": [str(path) for path in result.written],
        "error_stats": dict(result.error_stats),
    }


def output_json_result(result: HoistResult) -> str:
    return json.dumps(result_to_dict(result), indent=2, ensure_ascii=False, default=str)
