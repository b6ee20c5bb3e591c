"""Resolve source references to bytes across local and remote providers.

Local references are searched in the working directory, then the user
override directory, then the packaged default root, so a user can shadow a
packaged rule without editing it. Remote references go through a
``ContentFetcher``; blobs sharing a repository and branch are fetched with one
batched request when possible.
"""

import os
from itertools import groupby
from pathlib import Path
from typing import Callable, Optional

from rule_squash.config.schema import SettingsConfig
from rule_squash.core import frontmatter
from rule_squash.core.errors import FetchFailure, NotFoundError
from rule_squash.core.models import Discovery, SourceReference
from rule_squash.core.resolver import (
    GitHubLocation,
    is_github_url,
    normalize_url,
    parse_github_url,
)
from rule_squash.fetch.protocols import ContentFetcher
from rule_squash.utils.paths import display_path, expand_path

TAG_SUFFIXES = (".md", ".mdc")


class SourceLocator:
    """Resolves references to ``(bytes, canonical_key)`` pairs.

    A locator holds the content prefetched for one compile; create a new one
    per invocation.
    """

    def __init__(
        self,
        settings: SettingsConfig,
        fetcher: Optional[ContentFetcher] = None,
        cwd: Optional[Path] = None,
        warn: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings
        self.fetcher = fetcher
        self.cwd = cwd or Path.cwd()
        self._warn = warn or (lambda message: None)
        self._prefetched: dict[str, bytes] = {}
        self._failed: dict[str, str] = {}

    @property
    def search_roots(self) -> list[Path]:
        """Local search order, highest priority first."""
        roots = [self.cwd, expand_path(self.settings.user_dir)]
        if self.settings.default_root:
            roots.append(expand_path(self.settings.default_root))
        return roots

    @property
    def default_root(self) -> Path:
        if self.settings.default_root:
            return expand_path(self.settings.default_root)
        return self.cwd

    def find_local(self, locator: str) -> Optional[Path]:
        """First existing file or directory matching a local locator."""
        path = Path(os.path.expanduser(locator))
        if path.is_absolute():
            return path if path.exists() else None

        for root in self.search_roots:
            candidate = root / path
            if candidate.exists():
                return candidate
        return None

    def canonical_key(self, reference: SourceReference) -> str:
        """Identity of a reference, computed without reading its content.

        Raises:
            NotFoundError: If a local reference matches no file
        """
        if reference.is_remote:
            return normalize_url(reference.locator)

        path = self.find_local(reference.locator)
        if path is None or not path.is_file():
            raise NotFoundError(reference.locator, "no such file in any search location")
        return os.path.realpath(path)

    def resolve(self, reference: SourceReference) -> tuple[bytes, str]:
        """Read a reference's bytes.

        Returns:
            Tuple of (content, canonical_key)

        Raises:
            NotFoundError: If no provider can supply the content
        """
        key = self.canonical_key(reference)

        if not reference.is_remote:
            try:
                return Path(key).read_bytes(), key
            except OSError as e:
                raise NotFoundError(reference.locator, str(e)) from e

        if key in self._prefetched:
            return self._prefetched[key], key
        if key in self._failed:
            raise NotFoundError(reference.locator, self._failed[key])
        if self.fetcher is None:
            raise NotFoundError(reference.locator, "no remote fetcher configured")

        try:
            data = self.fetcher.fetch_file(key)
        except FetchFailure as e:
            self._failed[key] = str(e)
            raise NotFoundError(reference.locator, str(e)) from e

        self._prefetched[key] = data
        return data, key

    def prefetch(self, references: list[SourceReference]) -> None:
        """Batch-fetch remote GitHub blobs that share a repository and branch.

        Groups of one are left for ``resolve``. When a batch fails the group
        falls back to one request per file, and files that still fail are
        remembered so ``resolve`` does not request them again.
        """
        if self.fetcher is None:
            return

        pending = {}
        for reference in references:
            if not reference.is_remote:
                continue
            key = normalize_url(reference.locator)
            if key in self._prefetched or key in self._failed or not is_github_url(key):
                continue
            try:
                location = parse_github_url(key, self.settings.default_branch)
            except ValueError:
                continue
            # Batch results come back keyed by blob URL
            if location.kind == "blob" and location.path and location.blob_url == key:
                pending[key] = location

        ordered = sorted(pending.values(), key=lambda loc: loc.group_key)
        for group_key, group in groupby(ordered, key=lambda loc: loc.group_key):
            locations = list(group)
            if len(locations) < 2:
                continue
            try:
                self._prefetched.update(self.fetcher.fetch_batch(locations))
            except FetchFailure as e:
                self._warn(f"Batch fetch failed for {group_key}, fetching files individually: {e}")
                self._fetch_individually(locations)

    def _fetch_individually(self, locations: list[GitHubLocation]) -> None:
        for location in locations:
            key = location.blob_url
            try:
                self._prefetched[key] = self.fetcher.fetch_file(key)
            except FetchFailure as e:
                self._failed[key] = str(e)

    def expand_tree(self, url: str) -> list[str]:
        """Expand a GitHub tree URL into the blob URLs of its documents."""
        if self.fetcher is None:
            self._warn(f"Cannot expand {url}: no remote fetcher configured")
            return []
        try:
            location = parse_github_url(url, self.settings.default_branch)
            urls = self.fetcher.list_directory(location)
        except (ValueError, FetchFailure) as e:
            self._warn(f"Failed to expand GitHub directory {url}: {e}")
            return []
        if not urls:
            self._warn(f"No markdown files found in GitHub directory: {url}")
        return urls

    def expand_directory(self, locator: str, include_scripts: bool = False) -> list[str]:
        """Expand a local directory into its documents, sorted.

        Returned locators keep the directory's locator as prefix.
        """
        directory = self.find_local(locator)
        if directory is None or not directory.is_dir():
            return []

        found = sorted(directory.rglob("*.md"))
        if include_scripts:
            found += sorted((directory / "bin").rglob("*.sh"))

        return [
            str(Path(locator) / path.relative_to(directory)) for path in found if path.is_file()
        ]

    def scan_tags(self, recipe_name: str) -> list[SourceReference]:
        """Local documents whose ``recipes:`` metadata lists the recipe."""
        rules_root = self.default_root / self.settings.rules_dir
        if not rules_root.is_dir():
            return []

        tagged = []
        for path in sorted(rules_root.rglob("*")):
            if path.suffix not in TAG_SUFFIXES or not path.is_file():
                continue
            try:
                raw = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            metadata, _ = frontmatter.split(raw)
            if frontmatter.declares_recipe(metadata, recipe_name):
                tagged.append(
                    SourceReference.local(str(path), recipe_name, Discovery.TAG)
                )
        return tagged

    def shape(self, reference: SourceReference, key: str) -> str:
        """Path used to classify a reference.

        Absolute local paths are made relative to the search root holding
        them so directories above the corpus never affect classification.
        """
        if reference.is_remote:
            return key

        if not os.path.isabs(os.path.expanduser(reference.locator)):
            return reference.locator

        for root in self.search_roots:
            relative = display_path(key, Path(os.path.realpath(root)))
            if relative != key:
                return relative
        return key
