import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel

from .cli_config import (
    ComprehensiveConfig,
    apply_config_data,
    create_sample_config,
    get_config,
    load_config_file,
    validate_config_values,
)
from .error_handling import HoistError, setup_error_handling
from .hoister import get_workspace_hoister
from .reporting import HoistReporter, output_json_result
from .resolver import DECISION_STRATEGIES, get_decision_provider
from .structured_logging import configure_logging
from .workspace import find_workspace_root, load_workspace

__version__ = "1.0.0"

console = Console()

_LOG_LEVEL_CHOICES = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _setup_logging(log_level: Optional[str], verbose: bool) -> None:
    config = get_config()
    level = log_level or ("INFO" if verbose else config.logging.log_level)
    configure_logging(level, config.logging.enable_json)
    setup_error_handling(getattr(logging, level.upper(), logging.WARNING))


def _resolve_workspace(workspace: Optional[str]) -> Path:
    if workspace:
        return Path(workspace).resolve()
    return find_workspace_root(Path.cwd())


def run_hoist(
    workspace: Optional[str],
    dry_run: bool,
    strategy: Optional[str],
    min_members: Optional[int],
    no_dev: bool,
    no_build: bool,
    no_target: bool,
    output_format: str,
    quiet: bool,
    verbose: bool,
    log_level: Optional[str],
) -> None:
    """Shared body of the `hoist` and `plan` commands."""
    try:
        _setup_logging(log_level, verbose)
        config = get_config().hoist

        json_output = output_format == "json"
        # Prompts go to stderr; stdout carries only the report.
        provider = get_decision_provider(
            strategy or config.strategy, Console(stderr=True)
        )

        hoister = get_workspace_hoister(
            provider=provider,
            min_members=min_members,
            include_dev=False if no_dev else None,
            include_build=False if no_build else None,
            include_target=False if no_target else None,
            dry_run=True if dry_run else None,
        )

        root = _resolve_workspace(workspace)
        loaded = load_workspace(root)
        result = hoister.run(loaded)

        if json_output:
            click.echo(output_json_result(result))
        elif not quiet:
            HoistReporter(console).print_result(result, verbose=verbose)

    except KeyboardInterrupt:
        Console(stderr=True).print("\n⚠️  Hoist interrupted by user", style="yellow")
        sys.exit(130)
    except HoistError as e:
        raise click.ClickException(str(e)) from e


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    📦 cargo-hoist: consolidate Cargo workspace dependencies

    Moves duplicated dependency sources from member manifests into
    [workspace.dependencies] and rewrites members to `workspace = true`.
    """
    if version:
        console.print(f"cargo-hoist version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


def hoist_options(func):
    """Options shared by `hoist` and `plan`."""
    options = [
        click.argument(
            "workspace",
            required=False,
            type=click.Path(exists=True, file_okay=False),
        ),
        click.option(
            "--strategy",
            type=click.Choice(list(DECISION_STRATEGIES), case_sensitive=False),
            help="How conflicting sources are resolved (default from config: interactive)",
        ),
        click.option(
            "--min-members",
            type=click.IntRange(min=1),
            help="Only hoist dependencies declared by at least N members (default: 1)",
        ),
        click.option("--no-dev", is_flag=True, help="Leave [dev-dependencies] untouched"),
        click.option(
            "--no-build", is_flag=True, help="Leave [build-dependencies] untouched"
        ),
        click.option(
            "--no-target",
            is_flag=True,
            help="Leave [target.<cfg>.*] dependency tables untouched",
        ),
        click.option(
            "--output-format",
            type=click.Choice(["console", "json"], case_sensitive=False),
            default="console",
            help="Output format for results",
            show_default=True,
        ),
        click.option("--quiet", "-q", is_flag=True, help="Suppress non-critical output"),
        click.option(
            "--verbose",
            "-v",
            is_flag=True,
            help="Show every dependency group and its decision",
        ),
        click.option(
            "--log-level",
            type=click.Choice(_LOG_LEVEL_CHOICES, case_sensitive=False),
            help="Diagnostics level written to stderr",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@cli.command()
@hoist_options
@click.option("--dry-run", is_flag=True, help="Show the plan without writing files")
def hoist(
    workspace: Optional[str],
    strategy: Optional[str],
    min_members: Optional[int],
    no_dev: bool,
    no_build: bool,
    no_target: bool,
    output_format: str,
    quiet: bool,
    verbose: bool,
    log_level: Optional[str],
    dry_run: bool,
) -> None:
    """
    Hoist shared dependency sources into [workspace.dependencies].

    WORKSPACE defaults to the nearest workspace root above the current directory.

    Examples:

      cargo-hoist hoist

      cargo-hoist hoist path/to/workspace --strategy first

      cargo-hoist hoist --min-members 2 --no-dev
    """
    run_hoist(
        workspace,
        dry_run,
        strategy,
        min_members,
        no_dev,
        no_build,
        no_target,
        output_format,
        quiet,
        verbose,
        log_level,
    )


@cli.command()
@hoist_options
def plan(
    workspace: Optional[str],
    strategy: Optional[str],
    min_members: Optional[int],
    no_dev: bool,
    no_build: bool,
    no_target: bool,
    output_format: str,
    quiet: bool,
    verbose: bool,
    log_level: Optional[str],
) -> None:
    """Show what `hoist` would change without modifying any file."""
    run_hoist(
        workspace,
        True,
        strategy,
        min_members,
        no_dev,
        no_build,
        no_target,
        output_format,
        quiet,
        verbose,
        log_level,
    )


@cli.command()
def info():
    """Show how hoisting works and usage examples."""
    info_text = """
[bold blue]📋 Dependency Tables:[/bold blue]

• [green]\\[dependencies][/green], [green]\\[dev-dependencies][/green], [green]\\[build-dependencies][/green]
• [green]\\[target.<cfg>.dependencies][/green] and friends

[bold blue]🔀 Sources:[/bold blue]

• [yellow]version[/yellow] - registry requirement, compared as text
• [yellow]git[/yellow] - url plus at most one of branch, tag or rev
• [yellow]path[/yellow] - rewritten relative to the workspace root

Member attributes such as features, optional, default-features and
package are kept on the member entry next to `workspace = true`.

[bold blue]⚖️  Conflicts:[/bold blue]

• [green]interactive[/green] - choose a source, 0 skips the dependency
• [green]first[/green] - always take the first source seen
• [green]skip[/green] - never hoist conflicting dependencies

[bold blue]🌍 Environment Variables:[/bold blue]

• [cyan]CARGO_HOIST_MIN_MEMBERS[/cyan] - Minimum members sharing a dependency
• [cyan]CARGO_HOIST_STRATEGY[/cyan] - Conflict strategy
• [cyan]CARGO_HOIST_DRY_RUN[/cyan] - Never write manifests
• [cyan]CARGO_HOIST_LOG_LEVEL[/cyan] - Diagnostics level
• [cyan]CARGO_HOIST_MAX_FILE_SIZE_MB[/cyan] - Manifest size limit

[bold blue]📄 Configuration Files:[/bold blue]

• [green].cargo-hoist.toml[/green] (or .json, .yaml) - Project-level config
• [green]~/.config/cargo-hoist/config.toml[/green] - User-level config

[bold blue]💡 Usage Examples:[/bold blue]

  # Preview the changes
  cargo-hoist plan

  # Hoist, resolving conflicts non-interactively
  cargo-hoist hoist --strategy first

  # Only hoist dependencies shared by two or more crates
  cargo-hoist hoist --min-members 2

  # Generate sample config
  cargo-hoist config init
"""
    console.print(
        Panel(
            info_text,
            title="[bold]cargo-hoist Information[/bold]",
            border_style="blue",
        )
    )


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=".cargo-hoist.toml",
    help="Path where to create the config file",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)

    if config_path.exists() and not force:
        console.print(f"⚠️  Config file already exists at {config_path}", style="yellow")
        console.print("Use --force to overwrite", style="dim")
        return

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_sample_config())
    except OSError as e:
        raise click.ClickException(f"Failed to create config file: {e}") from e

    console.print(f"✅ Created configuration file at {config_path}", style="green")
    console.print("Edit this file to customize your settings", style="dim")


@config.command("show")
def config_show():
    """Show the effective configuration."""
    current_config = get_config()

    console.print(Panel("[bold blue]🔧 Configuration[/bold blue]", border_style="blue"))

    console.print("\n[bold cyan]📦 Hoist Settings:[/bold cyan]")
    console.print(f"  Min Members: {current_config.hoist.min_members}")
    console.print(f"  Strategy: {current_config.hoist.strategy}")
    console.print(f"  Include dev-dependencies: {current_config.hoist.include_dev}")
    console.print(f"  Include build-dependencies: {current_config.hoist.include_build}")
    console.print(f"  Include target tables: {current_config.hoist.include_target}")
    console.print(f"  Dry Run: {current_config.hoist.dry_run}")

    console.print("\n[bold cyan]🔒 Security Settings:[/bold cyan]")
    console.print(f"  Max File Size: {current_config.security.max_file_size_mb} MB")

    console.print("\n[bold cyan]📝 Logging Settings:[/bold cyan]")
    console.print(f"  Log Level: {current_config.logging.log_level}")
    console.print(f"  JSON Logs: {current_config.logging.enable_json}")


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def config_validate(config_file: str):
    """Validate a configuration file."""
    try:
        config_data = load_config_file(Path(config_file))
    except HoistError as e:
        raise click.ClickException(str(e)) from e

    if config_data is None:
        raise click.ClickException(f"Could not load config from {config_file}")

    candidate = ComprehensiveConfig()
    apply_config_data(candidate, config_data)
    errors = validate_config_values(candidate)
    if errors:
        console.print("❌ Configuration validation failed:", style="red")
        for error in errors:
            console.print(f"  • {error}", style="red")
        sys.exit(1)

    console.print(f"✅ Configuration file {config_file} is valid", style="green")


if __name__ == "__main__":
    cli()
