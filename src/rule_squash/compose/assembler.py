"""Squash orchestrator.

This module ties the components together. For a recipe it:
1. Compiles the recipe's dependency graph (locator + resolver + compiler)
2. Checks every dispatched subagent is registered
3. Compiles and validates each subagent
4. Propagates capabilities from sub-recipes up to the recipe
5. Optionally writes the merged body and side artifacts to disk
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rule_squash.compose.files import script_paths, write_commands, write_scripts, write_skills
from rule_squash.compose.markdown import render_agent, render_body
from rule_squash.config.loader import load_config
from rule_squash.config.schema import SquashConfig
from rule_squash.core import cycles
from rule_squash.core.compiler import GraphCompiler
from rule_squash.core.models import CompiledOutput, Cycle
from rule_squash.core.subagents import SubagentGraphBuilder, file_capabilities
from rule_squash.fetch.github import GitHubFetcher
from rule_squash.fetch.protocols import ContentFetcher
from rule_squash.utils.output import print_info, print_success
from rule_squash.utils.paths import ensure_dir


@dataclass
class WrittenArtifacts:
    """Files produced by one squash."""

    body: Optional[Path] = None
    commands: list[Path] = field(default_factory=list)
    skills: list[Path] = field(default_factory=list)
    scripts: list[Path] = field(default_factory=list)
    agents: list[Path] = field(default_factory=list)


class Squasher:
    """Public entry point for compiling recipes from one configuration.

    Args:
        config: Merged, immutable configuration
        fetcher: Remote content provider; defaults to ``GitHubFetcher`` using
            ``$GITHUB_TOKEN`` when set
        cwd: First local search location
        keep_frontmatter: Keep non-compiler frontmatter in published content
        essential_only: Keep only roots marked ``essential: true``
        verbose: Print per-document progress
    """

    def __init__(
        self,
        config: SquashConfig,
        fetcher: Optional[ContentFetcher] = None,
        cwd: Optional[Path] = None,
        keep_frontmatter: bool = False,
        essential_only: bool = False,
        verbose: bool = False,
    ):
        self.config = config
        if fetcher is None:
            fetcher = GitHubFetcher(token=os.getenv("GITHUB_TOKEN"))
        self.compiler = GraphCompiler(
            config,
            fetcher=fetcher,
            cwd=cwd,
            keep_frontmatter=keep_frontmatter,
            essential_only=essential_only,
            verbose=verbose,
        )
        self.subagents = SubagentGraphBuilder(config, self.compiler, verbose=verbose)

    def compile(self, recipe_name: str) -> CompiledOutput:
        """Compile a recipe together with its subagents.

        Raises:
            RecipeNotFoundError: If the recipe is not configured
            MissingRegistration: If a compiled document dispatches an
                unregistered subagent
            StructuralViolation: If a subagent breaks the flat hierarchy
        """
        recipe = self.config.get_recipe(recipe_name)
        output = self.compiler.compile(recipe_name)

        self.subagents.validate_registration(recipe_name, output)
        output.subagents = self.subagents.generate(recipe_name)

        capabilities = self.subagents.collect_capabilities(recipe, {recipe_name})
        output.capabilities = list(dict.fromkeys(capabilities + file_capabilities(output)))
        return output

    def generate_subagents(self, recipe_name: str) -> list[tuple[str, CompiledOutput]]:
        """Compile only the subagents of a recipe."""
        return [
            (artifact.name, artifact.output)
            for artifact in self.subagents.generate(recipe_name)
        ]

    def detect_cycles(self, corpus_root: Optional[Path] = None) -> list[Cycle]:
        """Requires-cycles under ``corpus_root`` (defaults to the rules root)."""
        if corpus_root is None:
            corpus_root = self.compiler.locator.default_root
        return cycles.detect_cycles(corpus_root)

    def write(
        self,
        output: CompiledOutput,
        output_file: Optional[Path] = None,
        base_dir: Optional[Path] = None,
        toc: bool = False,
    ) -> WrittenArtifacts:
        """Write a compiled recipe's body and side artifacts.

        Args:
            output: Result of ``compile``
            output_file: Merged body destination (defaults to settings.output_file)
            base_dir: Directory output paths are relative to (defaults to cwd)
            toc: Prepend a table of contents to the merged body

        Returns:
            Paths of everything written
        """
        settings = self.config.settings
        base_dir = base_dir or Path.cwd()
        recipe = self.config.get_recipe(output.recipe) if output.recipe else None
        written = WrittenArtifacts()

        body_path = output_file or Path(settings.output_file)
        if not body_path.is_absolute():
            body_path = base_dir / body_path
        ensure_dir(body_path.parent)
        scripts_map = script_paths(output.scripts, settings.scripts_output)
        body = render_body(output, toc=toc, script_paths=scripts_map)
        body_path.write_text(body, encoding="utf-8")
        written.body = body_path
        print_success(f"Wrote {len(output.body)} document(s) to {body_path}")

        if output.commands:
            written.commands = write_commands(
                output.commands,
                base_dir / settings.commands_output,
                omit_prefix=recipe.omit_command_prefix if recipe else None,
                commands_dir=settings.commands_dir,
            )
            print_info(f"Saved {len(written.commands)} command file(s) to {settings.commands_output}")

        if output.skills:
            written.skills = write_skills(
                output.skills, base_dir / settings.skills_output, settings.skills_dir
            )
            print_info(f"Saved {len(written.skills)} skill(s) to {settings.skills_output}")

        if output.scripts:
            written.scripts = write_scripts(output.scripts, base_dir / settings.scripts_output)
            print_info(f"Copied {len(written.scripts)} script(s) to {settings.scripts_output}")

        if output.subagents:
            agents_dir = ensure_dir(base_dir / settings.agents_output)
            for artifact in output.subagents:
                agent_path = agents_dir / f"{artifact.name}.md"
                agent_path.write_text(
                    render_agent(artifact, output.recipe or "", settings.skills_dir),
                    encoding="utf-8",
                )
                written.agents.append(agent_path)
                # Subagent skills are shared with the parent's skills output
                written.skills += write_skills(
                    artifact.output.skills, base_dir / settings.skills_output, settings.skills_dir
                )
                written.commands += write_commands(
                    artifact.output.commands,
                    base_dir / settings.commands_output / artifact.name,
                    omit_prefix=self.config.get_recipe(artifact.recipe).omit_command_prefix,
                    commands_dir=settings.commands_dir,
                )
            print_info(f"Generated {len(written.agents)} subagent(s) in {settings.agents_output}")

        return written


def compile(recipe_name: str, config_path: Optional[Path] = None) -> CompiledOutput:
    """Compile a recipe using the layered configuration."""
    return Squasher(load_config(config_path)).compile(recipe_name)


def generate_subagents(
    recipe_name: str, config_path: Optional[Path] = None
) -> list[tuple[str, CompiledOutput]]:
    """Compile a recipe's subagents using the layered configuration."""
    return Squasher(load_config(config_path)).generate_subagents(recipe_name)


def detect_cycles(corpus_root: Path) -> list[Cycle]:
    """Requires-cycles among the local documents under ``corpus_root``."""
    return cycles.detect_cycles(corpus_root)
