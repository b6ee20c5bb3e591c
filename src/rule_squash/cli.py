"""CLI application entry point."""

from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError
from rich.table import Table

from rule_squash.compose.assembler import Squasher
from rule_squash.config.loader import find_config_files, load_config
from rule_squash.config.schema import SquashConfig
from rule_squash.core.errors import SquashError
from rule_squash.utils.output import (
    console,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from rule_squash.utils.paths import display_path

app = typer.Typer(
    name="rule-squash",
    help="Compile rule recipes into one merged document plus commands, skills and subagents",
    no_args_is_help=True,
)


def _load(config: Optional[Path]) -> SquashConfig:
    """Load configuration, exiting with a readable error when it is invalid."""
    try:
        return load_config(config)
    except ValidationError as e:
        print_error("Configuration validation failed:")
        console.print(e)
        raise typer.Exit(1)
    except (OSError, yaml.YAMLError) as e:
        print_error(f"Failed to load config: {e}")
        raise typer.Exit(1)


@app.command()
def squash(
    recipe: str = typer.Argument(..., help="Name of the recipe to compile"),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to base recipes file (default: ./recipes.yml)",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Merged output file (overrides settings.output_file)",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be written without making changes",
    ),
    essential: bool = typer.Option(
        False,
        "--essential",
        help="Only include root files marked 'essential: true'",
    ),
    front_matter: bool = typer.Option(
        False,
        "--front-matter",
        help="Keep non-compiler frontmatter in the output",
    ),
    toc: bool = typer.Option(
        False,
        "--toc",
        "-t",
        help="Prepend a table of contents to the merged output",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Print each document as it is processed",
    ),
):
    """Compile a recipe and write its artifacts.

    Writes the merged body plus command files, skills, scripts and subagent
    definitions below the current directory.
    """
    try:
        cfg = _load(config)
        squasher = Squasher(
            cfg,
            keep_frontmatter=front_matter,
            essential_only=essential,
            verbose=verbose,
        )

        print_info(f"Squashing recipe: {recipe}")
        compiled = squasher.compile(recipe)

        if dry_run:
            print_warning("DRY RUN MODE - No changes will be made")
            root = Path.cwd()
            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("Category", style="green")
            table.add_column("Source")
            for category, sources in (
                ("body", compiled.body),
                ("command", compiled.commands),
                ("skill", compiled.skills),
                ("script", compiled.scripts),
            ):
                for source in sources:
                    table.add_row(category, display_path(source.key, root))
            for artifact in compiled.subagents:
                table.add_row("subagent", f"{artifact.name} ({artifact.recipe})")
            console.print(table)
            if compiled.capabilities:
                console.print(f"[bold]Capabilities:[/bold] {', '.join(compiled.capabilities)}")
            return

        squasher.write(compiled, output_file=output, toc=toc)

        if compiled.warnings:
            print_warning(f"Completed with {len(compiled.warnings)} warning(s)")
        else:
            print_success(f"Squashed recipe '{recipe}'")

    except typer.Exit:
        raise
    except SquashError as e:
        print_error(str(e))
        raise typer.Exit(1)


@app.command()
def subagents(
    recipe: str = typer.Argument(..., help="Recipe whose subagents to compile"),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to base recipes file",
    ),
):
    """List the subagents a recipe generates."""
    try:
        cfg = _load(config)
        generated = Squasher(cfg).generate_subagents(recipe)

        if not generated:
            print_info(f"Recipe '{recipe}' declares no subagents")
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Name", style="green")
        table.add_column("Body")
        table.add_column("Commands")
        table.add_column("Skills")
        table.add_column("Scripts")
        for name, compiled in generated:
            table.add_row(
                name,
                str(len(compiled.body)),
                str(len(compiled.commands)),
                str(len(compiled.skills)),
                str(len(compiled.scripts)),
            )
        console.print(table)

    except typer.Exit:
        raise
    except SquashError as e:
        print_error(str(e))
        raise typer.Exit(1)


@app.command()
def cycles(
    root: Optional[Path] = typer.Argument(
        None, help="Corpus root to scan (default: the rules root)"
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to base recipes file",
    ),
):
    """Report circular 'requires:' chains across the rule corpus."""
    cfg = _load(config)
    squasher = Squasher(cfg)
    corpus_root = root or squasher.compiler.locator.default_root

    found = squasher.detect_cycles(corpus_root)
    if not found:
        print_success("No circular dependencies found")
        return

    print_warning(f"Found {len(found)} circular dependency chain(s) in requires:")
    for cycle in found:
        chain = [display_path(key, corpus_root.resolve()) for key in cycle]
        console.print(f"  • {' → '.join(chain + chain[:1])}")


@app.command("list-recipes")
def list_recipes(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to base recipes file",
    ),
):
    """List configured recipes."""
    cfg = _load(config)

    if not cfg.recipes:
        print_info("No recipes configured")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Name", style="green")
    table.add_column("Description")
    table.add_column("Files")
    table.add_column("Subagents")
    for name, recipe in sorted(cfg.recipes.items()):
        table.add_row(
            name,
            recipe.description or "",
            str(len(recipe.files) + len(recipe.sources) + len(recipe.remote_sources)),
            ", ".join(recipe.subagent_names),
        )
    console.print(table)


@app.command()
def validate(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to base recipes file",
    ),
):
    """Validate the layered recipe configuration.

    Checks that every recipes file parses, the merged configuration is valid
    and every subagent points at a configured recipe.
    """
    try:
        config_files = find_config_files(config)
    except FileNotFoundError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not config_files:
        print_error("No recipes file found")
        raise typer.Exit(1)

    for config_file in config_files:
        print_info(f"Using recipes file: {config_file}")

    cfg = _load(config)
    print_success("Configuration is valid")

    problems = []
    for name, recipe in cfg.recipes.items():
        for subagent in recipe.subagents:
            if subagent.recipe not in cfg.recipes:
                problems.append(
                    f"Recipe '{name}': subagent '{subagent.name}' uses unknown recipe '{subagent.recipe}'"
                )

    console.print()
    console.print(f"[bold]Recipes:[/bold] {len(cfg.recipes)}")
    for name in sorted(cfg.recipes):
        console.print(f"  • {name}")

    if problems:
        console.print()
        for problem in problems:
            print_warning(problem)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
