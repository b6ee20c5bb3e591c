"""Build subagents from recipe-within-recipe declarations.

Subagents form a flat dispatch hierarchy: a recipe may dispatch subagents,
but a subagent's recipe may neither declare subagents of its own nor contain
a document that dispatches one. Capability requirements of sub-recipes are
propagated up to the dispatching recipe.
"""

from pathlib import PurePosixPath
from typing import Optional

from rule_squash.config.schema import RecipeConfig, SquashConfig, SubagentConfig
from rule_squash.core import frontmatter
from rule_squash.core.compiler import GraphCompiler
from rule_squash.core.errors import MissingRegistration, StructuralViolation
from rule_squash.core.models import CompiledOutput, SubagentArtifact
from rule_squash.utils.output import print_info, print_warning

DEFAULT_MODEL = "inherit"


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def resolve_model(subagent: SubagentConfig, parent: RecipeConfig) -> str:
    """Subagent model, else the parent recipe's model, else ``inherit``."""
    return subagent.model or parent.model or DEFAULT_MODEL


def collect_dispatches(output: CompiledOutput) -> list[tuple[str, str]]:
    """``(file name, target)`` pairs declared by a compiled body."""
    dispatches = []
    for source in output.body:
        for target in frontmatter.declared_list(source.metadata, "dispatches"):
            dispatches.append((PurePosixPath(source.path).name, target))
    return dispatches


def file_capabilities(output: CompiledOutput) -> list[str]:
    """Capabilities declared by ``mcp_servers:`` in compiled body documents."""
    servers: list[str] = []
    for source in output.body:
        servers.extend(frontmatter.declared_list(source.metadata, "mcp_servers"))
    return _unique(servers)


class SubagentGraphBuilder:
    """Compiles and validates the subagents a recipe declares."""

    def __init__(self, config: SquashConfig, compiler: GraphCompiler, verbose: bool = False):
        self.config = config
        self.compiler = compiler
        self.verbose = verbose

    def generate(self, recipe_name: str) -> list[SubagentArtifact]:
        """Compile every subagent of a recipe.

        Each sub-recipe is compiled once even when several subagents share
        it. A sub-recipe missing from the configuration is skipped with a
        warning.

        Raises:
            RecipeNotFoundError: If the parent recipe is not configured
            StructuralViolation: If a sub-recipe declares subagents (checked
                before anything is compiled) or contains a dispatching document
        """
        parent = self.config.get_recipe(recipe_name)

        planned: list[tuple[SubagentConfig, RecipeConfig]] = []
        seen: set[str] = set()
        for subagent in parent.subagents:
            if subagent.recipe in seen:
                continue
            seen.add(subagent.recipe)

            sub_recipe = self.config.recipes.get(subagent.recipe)
            if sub_recipe is None:
                print_warning(
                    f"Recipe '{subagent.recipe}' for subagent '{subagent.name}' not found, skipping"
                )
                continue

            self.validate_no_nested_subagents(subagent, sub_recipe)
            planned.append((subagent, sub_recipe))

        artifacts = []
        for subagent, sub_recipe in planned:
            if self.verbose:
                print_info(f"Generating {subagent.name} from '{subagent.recipe}' recipe")

            output = self.compiler.compile(subagent.recipe)
            self.validate_no_dispatch(subagent, output)

            capabilities = _unique(
                self.collect_capabilities(sub_recipe, {subagent.recipe})
                + file_capabilities(output)
            )
            output.capabilities = capabilities
            artifacts.append(
                SubagentArtifact(
                    name=subagent.name,
                    recipe=subagent.recipe,
                    model=resolve_model(subagent, parent),
                    output=output,
                    description=sub_recipe.description or f"Subagent for {subagent.recipe}",
                    capabilities=capabilities,
                )
            )

        return artifacts

    @staticmethod
    def validate_no_nested_subagents(subagent: SubagentConfig, sub_recipe: RecipeConfig) -> None:
        """Reject a sub-recipe that declares subagents of its own.

        Raises:
            StructuralViolation: Naming the subagent and its nested targets
        """
        if not sub_recipe.subagents:
            return

        nested = ", ".join(sub_recipe.subagent_names)
        raise StructuralViolation(
            f"Recipe '{subagent.recipe}' (subagent '{subagent.name}') has its own "
            f"subagents ({nested}). Subagents cannot spawn other subagents. Convert "
            f"them to skills and reference them via 'skills:' in the rule frontmatter instead."
        )

    @staticmethod
    def validate_no_dispatch(subagent: SubagentConfig, output: CompiledOutput) -> None:
        """Reject a compiled subagent whose documents dispatch subagents.

        Raises:
            StructuralViolation: Listing every dispatching file and target
        """
        dispatches = collect_dispatches(output)
        if not dispatches:
            return

        file_list = "\n".join(
            f"  - {file_name} dispatches: {target}" for file_name, target in dispatches
        )
        raise StructuralViolation(
            f"Subagent '{subagent.name}' (recipe: {subagent.recipe})\n"
            f"contains files that dispatch other subagents:\n\n"
            f"{file_list}\n\n"
            f"Subagents cannot dispatch other subagents.\n"
            f"Remove these files from the recipe, or inline\n"
            f"the functionality without subagent dispatch."
        )

    def validate_registration(self, recipe_name: str, output: CompiledOutput) -> None:
        """Check every dispatch target in a compiled body is a declared subagent.

        Raises:
            MissingRegistration: For the first unregistered target
        """
        registered = set(self.config.get_recipe(recipe_name).subagent_names)
        for file_name, target in collect_dispatches(output):
            if target not in registered:
                raise MissingRegistration(recipe_name, file_name, target)

    def collect_capabilities(
        self, recipe: RecipeConfig, visited: Optional[set[str]] = None
    ) -> list[str]:
        """Recipe capabilities plus those of every sub-recipe, transitively.

        Args:
            recipe: Recipe to start from
            visited: Recipe names already collected; shared across the walk so
                recipes reachable through several subagents are read once

        Returns:
            Unique capability names in first-seen order
        """
        if visited is None:
            visited = set()

        servers = list(recipe.capabilities)
        for subagent in recipe.subagents:
            if subagent.recipe in visited:
                continue
            visited.add(subagent.recipe)

            sub_recipe = self.config.recipes.get(subagent.recipe)
            if sub_recipe is None:
                continue
            servers.extend(self.collect_capabilities(sub_recipe, visited))

        return _unique(servers)
