"""Dependency edge extraction and URL resolution.

This module provides functionality to:
- Parse GitHub URLs into components
- Normalize remote URLs so equal documents share one identity
- Extract a document's ``requires:``, ``skills:`` and ``scripts:`` edges
  and resolve them against the provider the document came from
"""

import os
import posixpath
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse, urlunparse

from rule_squash.config.schema import SettingsConfig
from rule_squash.core import frontmatter
from rule_squash.core.models import (
    Category,
    DependencyEdge,
    Discovery,
    EdgeKind,
    ResolvedSource,
    SourceReference,
)

# Body lines of the form "@./other.md" import another local document
IMPORT_LINE_PATTERN = re.compile(r"^@(\.\.?/\S+)", re.MULTILINE)

GITHUB_HOSTS = ("github.com", "www.github.com")


@dataclass(frozen=True)
class GitHubLocation:
    """A file or directory inside a GitHub repository.

    Attributes:
        owner: Repository owner (user or organization)
        repo: Repository name
        ref: Git branch, tag or commit
        path: Path within the repository ("" for the repository root)
        kind: "blob" for files, "tree" for directories
    """

    owner: str
    repo: str
    ref: str
    path: str = ""
    kind: str = "blob"

    @property
    def repo_key(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def group_key(self) -> str:
        """Key used to batch files sharing a repository and branch."""
        return f"{self.owner}/{self.repo}@{self.ref}"

    @property
    def blob_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}/blob/{self.ref}/{self.path}"

    @property
    def tree_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}/tree/{self.ref}/{self.path}"

    @property
    def raw_url(self) -> str:
        return f"https://raw.githubusercontent.com/{self.owner}/{self.repo}/{self.ref}/{self.path}"

    @property
    def is_directory(self) -> bool:
        """Tree URLs without a file extension point at directories."""
        if self.kind != "tree":
            return False
        return not re.search(r"\.\w+$", self.path.rsplit("/", 1)[-1])

    def with_path(self, path: str) -> "GitHubLocation":
        return replace(self, path=path, kind="blob")


def normalize_github_shorthand(url: str) -> str:
    """Expand ``github:owner/repo/...`` to a full GitHub URL."""
    if url.startswith("github:"):
        return f"https://github.com/{url[len('github:'):].lstrip('/')}"
    return url


def is_remote_locator(locator: str) -> bool:
    return locator.startswith(("http://", "https://", "github:"))


def is_github_url(url: str) -> bool:
    return urlparse(url).netloc in GITHUB_HOSTS


def parse_github_url(url: str, default_branch: str = "main") -> GitHubLocation:
    """Parse a GitHub URL into components.

    Handles these GitHub URL formats:
    - https://github.com/owner/repo/blob/main/path/to/file.md
    - https://github.com/owner/repo/tree/main/path/to/dir
    - github.com/owner/repo (default branch, repository root)
    - github:owner/repo/blob/main/file.md

    Args:
        url: GitHub URL to parse
        default_branch: Branch used when the URL names none

    Returns:
        GitHubLocation with the URL's components

    Raises:
        ValueError: If URL is not a valid GitHub URL
    """
    url = normalize_github_shorthand(url)
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"

    parsed = urlparse(url)
    if parsed.netloc not in GITHUB_HOSTS:
        raise ValueError(f"Not a GitHub URL: {url}")

    path_parts = [part for part in parsed.path.split("/") if part]
    if len(path_parts) < 2:
        raise ValueError(
            f"Invalid GitHub URL format: {url}. Expected owner/repo at minimum"
        )

    owner, repo = path_parts[0], path_parts[1]
    if len(path_parts) >= 4 and path_parts[2] in ("blob", "tree"):
        return GitHubLocation(
            owner=owner,
            repo=repo,
            ref=path_parts[3],
            path="/".join(path_parts[4:]),
            kind=path_parts[2],
        )

    return GitHubLocation(owner=owner, repo=repo, ref=default_branch, kind="tree")


def normalize_url_path(path: str) -> str:
    """Collapse ``.`` and ``..`` segments of a URL path.

    ``..`` never climbs above the root, matching how browsers resolve it.
    """
    parts: list[str] = []
    for part in path.split("/"):
        if part == "..":
            if parts:
                parts.pop()
        elif part and part != ".":
            parts.append(part)
    return "/".join(parts)


def normalize_url(url: str) -> str:
    """Canonical form of a remote locator used as its identity.

    GitHub URLs always use ``https://github.com`` so every spelling of a
    blob matches the ``GitHubLocation.blob_url`` the fetchers key on.
    """
    url = normalize_github_shorthand(url)
    parsed = urlparse(url)
    if parsed.netloc in GITHUB_HOSTS:
        parsed = parsed._replace(scheme="https", netloc="github.com")
    path = "/" + normalize_url_path(parsed.path)
    return urlunparse(parsed._replace(path=path, fragment=""))


def resolve_local_path(base_dir: Path, target: str) -> Optional[Path]:
    """Resolve a path relative to a directory, trying an implicit ``.md``.

    Returns:
        The real path of an existing file, or None
    """
    candidate = Path(os.path.normpath(base_dir / os.path.expanduser(target)))
    if not candidate.is_file() and candidate.suffix != ".md":
        with_suffix = candidate.with_name(candidate.name + ".md")
        if with_suffix.is_file():
            candidate = with_suffix
    if not candidate.is_file():
        return None
    return Path(os.path.realpath(candidate))


def resolve_remote_path(source_url: str, target: str) -> str:
    """Resolve an edge declared by a remote document.

    GitHub blob sources resolve inside the same repository and branch, with
    a leading ``/`` meaning the repository root. Other URLs resolve against
    the source URL's directory.
    """
    if is_github_url(source_url):
        location = parse_github_url(source_url)
        if target.startswith("/"):
            path = normalize_url_path(target)
        else:
            path = normalize_url_path(posixpath.join(posixpath.dirname(location.path), target))
        return location.with_path(path).blob_url

    parsed = urlparse(source_url)
    path = posixpath.join(posixpath.dirname(parsed.path), target)
    return urlunparse(parsed._replace(path="/" + normalize_url_path(path), fragment=""))


def has_path_segment(locator: str, segment: str) -> bool:
    """Check whether ``segment`` appears as a whole directory name."""
    return f"/{segment.strip('/')}/" in "/" + locator.replace(os.sep, "/")


def local_requires(path: Path) -> list[str]:
    """Real paths of the local documents a file depends on.

    Covers frontmatter ``requires:`` entries and ``@./relative`` import lines,
    keeping only targets that exist on disk.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return []

    metadata, body = frontmatter.split(raw)
    targets = frontmatter.declared_list(metadata, "requires")
    targets += IMPORT_LINE_PATTERN.findall(body)

    base_dir = Path(os.path.realpath(path)).parent
    requirements: list[str] = []
    for target in targets:
        if is_remote_locator(target):
            continue
        resolved = resolve_local_path(base_dir, target)
        if resolved is not None and str(resolved) not in requirements:
            requirements.append(str(resolved))
    return requirements


class DependencyResolver:
    """Turns a resolved document's declared dependencies into references.

    A relative edge inherits its source's provider: local documents resolve
    against their directory on disk and remote documents against their
    repository, so a remote edge can never land on a local file.
    """

    def __init__(
        self,
        settings: SettingsConfig,
        warn: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings
        self._warn = warn or (lambda message: None)

    def extract_edges(self, source: ResolvedSource) -> list[DependencyEdge]:
        """Outbound edges in declaration order: ``requires:``, ``skills:``, ``scripts:``.

        Scripts have no edges. A skill's own ``requires:`` belong to its
        bundle and are not returned here.
        """
        if source.category == Category.SCRIPT:
            return []

        metadata, _ = frontmatter.split(source.raw)
        edges: list[DependencyEdge] = []

        if source.category != Category.SKILL:
            for target in frontmatter.declared_list(metadata, "requires"):
                reference = self.resolve_edge(source, target, Discovery.REQUIRES)
                if reference is not None:
                    edges.append(DependencyEdge(source.key, reference, EdgeKind.REQUIRES))

        for target in frontmatter.declared_list(metadata, "skills"):
            reference = self.resolve_edge(source, target, Discovery.SKILL)
            if reference is None:
                continue
            if not has_path_segment(reference.locator, self.settings.skills_dir):
                self._warn(
                    f"Skill reference '{target}' in {source.path} must be in a "
                    f"/{self.settings.skills_dir}/ directory (resolved to {reference.locator})"
                )
                continue
            edges.append(DependencyEdge(source.key, reference, EdgeKind.SKILL))

        declared = frontmatter.declared_scripts(metadata)
        if declared is None:
            self._warn(f"Invalid scripts format in {source.path}")
            return edges

        files, remote = declared
        for target in files + remote:
            reference = self.resolve_script(source, target)
            if reference is not None:
                edges.append(DependencyEdge(source.key, reference, EdgeKind.SCRIPT))

        return edges

    def resolve_script(self, source: ResolvedSource, target: str) -> Optional[SourceReference]:
        """Resolve a ``scripts:`` entry.

        Local scripts are looked up beside the declaring document first, then
        in the search locations like a recipe entry.
        """
        if is_remote_locator(target) or source.reference.is_remote:
            return self.resolve_edge(source, target, Discovery.SCRIPT)

        resolved = resolve_local_path(Path(source.key).parent, target)
        locator = str(resolved) if resolved is not None else target
        return SourceReference.local(locator, source.reference.recipe, Discovery.SCRIPT)

    def requires_of(self, source: ResolvedSource) -> list[SourceReference]:
        """Resolved ``requires:`` targets regardless of category."""
        metadata, _ = frontmatter.split(source.raw)
        references = []
        for target in frontmatter.declared_list(metadata, "requires"):
            reference = self.resolve_edge(source, target, Discovery.REQUIRES)
            if reference is not None:
                references.append(reference)
        return references

    def resolve_edge(
        self, source: ResolvedSource, target: str, discovery: Discovery
    ) -> Optional[SourceReference]:
        """Resolve one declared edge relative to its source.

        Returns:
            The target reference, or None (with a warning) when unresolvable
        """
        recipe = source.reference.recipe

        if is_remote_locator(target):
            return SourceReference.remote(normalize_url(target), recipe, discovery)

        if source.reference.is_remote:
            try:
                url = resolve_remote_path(source.key, target)
            except ValueError as e:
                self._warn(f"Cannot resolve '{target}' from {source.path}: {e}")
                return None
            return SourceReference.remote(url, recipe, discovery)

        resolved = resolve_local_path(Path(source.key).parent, target)
        if resolved is None:
            self._warn(f"Required file not found: '{target}' (from {source.path})")
            return None
        return SourceReference.local(str(resolved), recipe, discovery)
