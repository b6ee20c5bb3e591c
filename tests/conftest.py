"""Shared pytest fixtures for rule-squash tests."""

from pathlib import Path
from typing import Optional

import pytest

from rule_squash.config.schema import SquashConfig
from rule_squash.core.errors import FetchFailure
from rule_squash.core.resolver import GitHubLocation


class FakeFetcher:
    """In-memory ContentFetcher recording every call."""

    def __init__(
        self,
        files: Optional[dict[str, str]] = None,
        directories: Optional[dict[str, list[str]]] = None,
        fail_batch: bool = False,
    ):
        self.files = {url: text.encode("utf-8") for url, text in (files or {}).items()}
        self.directories = directories or {}
        self.fail_batch = fail_batch
        self.file_calls: list[str] = []
        self.batch_calls: list[list[str]] = []
        self.list_calls: list[str] = []

    def fetch_file(self, url: str) -> bytes:
        self.file_calls.append(url)
        if url not in self.files:
            raise FetchFailure(f"Failed to fetch {url}: HTTP 404")
        return self.files[url]

    def fetch_batch(self, locations: list[GitHubLocation]) -> dict[str, bytes]:
        self.batch_calls.append([location.blob_url for location in locations])
        if self.fail_batch:
            raise FetchFailure("GraphQL batch failed: HTTP 502")
        return {
            location.blob_url: self.files[location.blob_url]
            for location in locations
            if location.blob_url in self.files
        }

    def list_directory(self, location: GitHubLocation) -> list[str]:
        self.list_calls.append(location.tree_url)
        if location.tree_url not in self.directories:
            raise FetchFailure(f"Path not found: {location.tree_url}")
        return sorted(self.directories[location.tree_url])


@pytest.fixture
def work_dir(tmp_path, monkeypatch):
    """Isolated working directory with its own HOME and no overrides."""
    work = tmp_path / "work"
    work.mkdir()
    home = tmp_path / "home"
    home.mkdir()

    monkeypatch.chdir(work)
    monkeypatch.setenv("HOME", str(home))
    for name in (
        "RULE_SQUASH_USER_DIR",
        "RULE_SQUASH_RULES_DIR",
        "RULE_SQUASH_DEFAULT_BRANCH",
        "GITHUB_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)

    return work


@pytest.fixture
def write_files():
    """Write a mapping of relative path -> text (or bytes) below a root."""

    def _write(root: Path, files: dict) -> None:
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content)

    return _write


@pytest.fixture
def make_config(work_dir, tmp_path):
    """Build a SquashConfig rooted at the working directory."""

    def _make(recipes: dict, **settings) -> SquashConfig:
        merged_settings = {
            "default_root": str(work_dir),
            "user_dir": str(tmp_path / "home" / "rules-home"),
        }
        merged_settings.update(settings)
        return SquashConfig.model_validate(
            {"version": "1.0", "settings": merged_settings, "recipes": recipes}
        )

    return _make


@pytest.fixture
def demo_corpus(work_dir, write_files):
    """Two documents requiring each other."""
    write_files(
        work_dir,
        {
            "a.md": "---\nrequires:\n  - b.md\n---\n# A\n",
            "b.md": "---\nrequires:\n  - a.md\n---\n# B\n",
        },
    )
    return work_dir


@pytest.fixture
def make_fetcher():
    """Factory for in-memory fetchers with given files and directories."""
    return FakeFetcher
