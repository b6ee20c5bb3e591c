"""Compile a recipe's dependency graph into ordered, categorized output.

The traversal is depth-first over an explicit deque. Newly discovered edges
are pushed to the front, followed by a finalize marker for the source that
declared them, so a source is appended to its output list only after all
of its dependencies have been.
"""

import os
import re
import shutil
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from rule_squash.config.schema import (
    GitHubSourceConfig,
    LocalSourceConfig,
    RecipeConfig,
    SettingsConfig,
    SquashConfig,
)
from rule_squash.core import frontmatter
from rule_squash.core.errors import NotFoundError
from rule_squash.core.locator import SourceLocator
from rule_squash.core.models import (
    Category,
    CompiledOutput,
    Discovery,
    ResolvedSource,
    SourceReference,
)
from rule_squash.core.resolver import (
    DependencyResolver,
    has_path_segment,
    is_github_url,
    is_remote_locator,
    normalize_url,
    parse_github_url,
)
from rule_squash.fetch.protocols import ContentFetcher
from rule_squash.utils.output import print_info, print_warning


def classify(locator: str, settings: SettingsConfig) -> Category:
    """Derive a source's category from the shape of its path.

    Checked in order: script pattern, skills directory, commands directory.
    Anything else is body text.
    """
    normalized = locator.replace(os.sep, "/")
    if re.search(settings.bin_pattern, normalized):
        return Category.SCRIPT
    if has_path_segment(normalized, settings.skills_dir):
        return Category.SKILL
    if has_path_segment(normalized, settings.commands_dir):
        return Category.COMMAND
    return Category.BODY


@dataclass(frozen=True)
class _Finalize:
    """Queue marker: all of ``source``'s dependencies have been emitted."""

    source: ResolvedSource


QueueItem = Union[SourceReference, _Finalize]


class GraphCompiler:
    """Compiles recipes from a single merged configuration.

    Args:
        config: Merged, immutable configuration
        fetcher: Remote content provider (remote references warn without one)
        cwd: First local search location, defaults to the working directory
        keep_frontmatter: Keep non-compiler frontmatter in published content
        essential_only: Keep only local roots marked ``essential: true``
        verbose: Print each document as it is resolved
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
        self.settings = config.settings
        self.fetcher = fetcher
        self.cwd = cwd
        self.keep_frontmatter = keep_frontmatter
        self.essential_only = essential_only
        self.verbose = verbose
        self._output: Optional[CompiledOutput] = None
        self.locator = self._new_locator()
        self.resolver = DependencyResolver(self.settings, warn=self._warn)

    def _new_locator(self) -> SourceLocator:
        return SourceLocator(self.settings, self.fetcher, self.cwd, warn=self._warn)

    def _warn(self, message: str) -> None:
        print_warning(message)
        if self._output is not None:
            self._output.warnings.append(message)

    def compile(self, recipe_name: str) -> CompiledOutput:
        """Compile one recipe into deduplicated, ordered output.

        Missing files and failed fetches become warnings on the result.

        Raises:
            RecipeNotFoundError: If the recipe is not configured
        """
        recipe = self.config.get_recipe(recipe_name)
        output = CompiledOutput(recipe=recipe_name, capabilities=list(recipe.capabilities))

        previous = self._output
        self._output = output
        # Prefetched content must not outlive one compile
        self.locator = self._new_locator()
        try:
            roots = self.collect_roots(recipe_name, recipe)
            self._traverse(roots, output, visited=set())
            self._check_shell_commands(output)
        finally:
            self._output = previous

        return output

    def collect_roots(self, recipe_name: str, recipe: RecipeConfig) -> list[SourceReference]:
        """Root references of a recipe in declaration order.

        Declared files come first, then ``sources:``, legacy
        ``remote_sources:`` and finally documents tagged with the recipe's
        name. Duplicates are dropped by canonical key.
        """
        candidates: list[SourceReference] = []

        for locator in recipe.files:
            if is_remote_locator(locator):
                self._add_remote_root(locator, recipe_name, candidates)
            else:
                self._add_local_root(locator, recipe_name, candidates)

        for entry in recipe.sources:
            if isinstance(entry, GitHubSourceConfig):
                self._add_github_source(entry, recipe_name, candidates)
            elif isinstance(entry, LocalSourceConfig):
                for locator in entry.local:
                    self._add_local_root(locator, recipe_name, candidates, include_scripts=True)
            elif is_remote_locator(entry):
                self._add_remote_root(entry, recipe_name, candidates)
            else:
                self._add_local_root(entry, recipe_name, candidates, include_scripts=True)

        for url in recipe.remote_sources:
            self._add_remote_root(url, recipe_name, candidates)

        candidates.extend(self.locator.scan_tags(recipe_name))

        roots = []
        seen = set()
        for reference in candidates:
            try:
                key = self.locator.canonical_key(reference)
            except NotFoundError as e:
                self._warn(str(e))
                continue
            if key in seen:
                continue
            seen.add(key)
            roots.append(reference)

        if self.essential_only:
            roots = [ref for ref in roots if self._is_essential(ref)]

        return roots

    def _add_local_root(
        self,
        locator: str,
        recipe_name: str,
        roots: list[SourceReference],
        include_scripts: bool = False,
    ) -> None:
        path = self.locator.find_local(locator)
        if path is None:
            self._warn(f"File not found: {locator}")
            return

        if path.is_dir():
            expanded = self.locator.expand_directory(locator, include_scripts=include_scripts)
            if not expanded:
                self._warn(f"No markdown files found in directory: {locator}")
            for item in expanded:
                roots.append(SourceReference.local(item, recipe_name, Discovery.ROOT))
            return

        roots.append(SourceReference.local(locator, recipe_name, Discovery.ROOT))

    def _add_remote_root(
        self, url: str, recipe_name: str, roots: list[SourceReference]
    ) -> None:
        url = normalize_url(url)
        if is_github_url(url):
            try:
                location = parse_github_url(url, self.settings.default_branch)
            except ValueError as e:
                self._warn(str(e))
                return
            if location.is_directory:
                for blob_url in self.locator.expand_tree(url):
                    roots.append(SourceReference.remote(blob_url, recipe_name, Discovery.ROOT))
                return

        roots.append(SourceReference.remote(url, recipe_name, Discovery.ROOT))

    def _add_github_source(
        self, entry: GitHubSourceConfig, recipe_name: str, roots: list[SourceReference]
    ) -> None:
        branch = entry.branch or self.settings.default_branch
        for rule_path in entry.rules:
            rule_path = rule_path.strip("/")
            if re.search(r"\.\w+$", rule_path):
                url = f"https://github.com/{entry.github}/blob/{branch}/{rule_path}"
            else:
                url = f"https://github.com/{entry.github}/tree/{branch}/{rule_path}"
            self._add_remote_root(url, recipe_name, roots)

    def _is_essential(self, reference: SourceReference) -> bool:
        if reference.is_remote:
            return False
        try:
            data, _ = self.locator.resolve(reference)
        except NotFoundError:
            return False
        metadata, _ = frontmatter.split(data.decode("utf-8", errors="replace"))
        return frontmatter.is_essential(metadata)

    def _traverse(
        self,
        roots: list[SourceReference],
        output: CompiledOutput,
        visited: set[str],
        bundling: frozenset[str] = frozenset(),
    ) -> None:
        self.locator.prefetch(roots)
        queue: deque[QueueItem] = deque(roots)

        while queue:
            item = queue.popleft()
            if isinstance(item, _Finalize):
                output.add(item.source)
                continue

            try:
                key = self.locator.canonical_key(item)
            except NotFoundError as e:
                self._warn(str(e))
                continue

            # Already emitted or in progress; this is how cycles terminate
            if key in visited:
                continue

            try:
                source = self.resolve_source(item)
            except NotFoundError as e:
                self._warn(str(e))
                continue
            visited.add(key)

            pending = [edge.target for edge in self.resolver.extract_edges(source)]
            if source.category == Category.SKILL:
                pending.extend(self._bundle_skill(source, bundling))

            self.locator.prefetch(pending)
            queue.extendleft(reversed([*pending, _Finalize(source)]))

    def resolve_source(self, reference: SourceReference) -> ResolvedSource:
        """Read, classify and strip one reference.

        Raises:
            NotFoundError: If the reference cannot be read as a document
        """
        data, key = self.locator.resolve(reference)
        if reference.discovery == Discovery.SCRIPT:
            category = Category.SCRIPT
        else:
            category = classify(self.locator.shape(reference, key), self.settings)

        if self.verbose:
            print_info(f"Processing {category.value}: {reference.locator}")

        if category == Category.SCRIPT:
            return ResolvedSource(reference=reference, key=key, category=category, data=data)

        try:
            raw = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise NotFoundError(reference.locator, f"not valid UTF-8: {e}") from e

        metadata, _ = frontmatter.split(raw)
        return ResolvedSource(
            reference=reference,
            key=key,
            category=category,
            raw=raw,
            content=frontmatter.strip_metadata(raw, keep_frontmatter=self.keep_frontmatter),
            metadata=metadata,
        )

    def _bundle_skill(
        self, skill: ResolvedSource, bundling: frozenset[str]
    ) -> list[SourceReference]:
        """Compile a skill's own requires into its bundle.

        The nested pass starts from a fresh visited set, so documents already
        in the parent output are still inlined. It does hold every skill
        whose bundle is still open, which keeps skills that require each
        other from being bundled into one another forever.
        Scripts found by the nested pass are returned for the parent to copy.
        """
        requires = self.resolver.requires_of(skill)
        if not requires:
            return []

        bundling = bundling | {skill.key}
        bundle = CompiledOutput(recipe=skill.reference.recipe)
        self._traverse(requires, bundle, visited=set(bundling), bundling=bundling)
        skill.inlined = bundle.body + bundle.commands + bundle.skills
        return [script.reference for script in bundle.scripts]

    def _check_shell_commands(self, output: CompiledOutput) -> None:
        """Collect ``require_shell_commands:`` and warn for any not on PATH.

        Documents inlined into skill bundles are included.
        """
        pending = output.all_sources()
        seen: set[str] = set()
        while pending:
            source = pending.pop(0)
            if source.key in seen:
                continue
            seen.add(source.key)
            for command in frontmatter.declared_list(source.metadata, "require_shell_commands"):
                if command not in output.required_commands:
                    output.required_commands.append(command)
            pending.extend(source.inlined)

        for command in output.required_commands:
            if shutil.which(command) is None:
                self._warn(f"Required shell command '{command}' not found in PATH")
