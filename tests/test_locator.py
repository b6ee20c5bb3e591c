"""Tests for SourceLocator search order and remote prefetching."""

import os

import pytest

from rule_squash.core.errors import NotFoundError
from rule_squash.core.locator import SourceLocator
from rule_squash.core.models import Discovery, SourceReference

BLOB_A = "https://github.com/owner/repo/blob/main/docs/a.md"
BLOB_B = "https://github.com/owner/repo/blob/main/docs/b.md"
BLOB_C = "https://github.com/owner/repo/blob/main/docs/c.md"
OTHER_REPO = "https://github.com/other/repo/blob/main/x.md"


@pytest.fixture
def package_root(tmp_path):
    root = tmp_path / "package"
    root.mkdir()
    return root


class TestLocalSearch:
    """Test local lookup across search roots."""

    def test_shadowing_order(self, work_dir, tmp_path, package_root, make_config, write_files):
        """cwd shadows the user directory, which shadows the default root."""
        config = make_config({}, default_root=str(package_root))
        locator = SourceLocator(config.settings, cwd=work_dir)
        user_dir = tmp_path / "home" / "rules-home"

        write_files(package_root, {"x.md": "# packaged\n"})
        assert locator.find_local("x.md") == package_root / "x.md"

        write_files(user_dir, {"x.md": "# user\n"})
        assert locator.find_local("x.md") == user_dir / "x.md"

        write_files(work_dir, {"x.md": "# local\n"})
        data, key = locator.resolve(SourceReference.local("x.md"))
        assert data == b"# local\n"
        assert key == os.path.realpath(work_dir / "x.md")

    def test_symlink_shares_real_path_identity(self, work_dir, make_config, write_files):
        write_files(work_dir, {"real.md": "# Real\n"})
        (work_dir / "link.md").symlink_to(work_dir / "real.md")
        locator = SourceLocator(make_config({}).settings, cwd=work_dir)

        assert locator.canonical_key(SourceReference.local("link.md")) == (
            locator.canonical_key(SourceReference.local("real.md"))
        )

    def test_missing_file(self, work_dir, make_config):
        locator = SourceLocator(make_config({}).settings, cwd=work_dir)

        with pytest.raises(NotFoundError, match="missing.md"):
            locator.resolve(SourceReference.local("missing.md"))

    def test_directory_is_not_a_document(self, work_dir, make_config):
        (work_dir / "rules").mkdir()
        locator = SourceLocator(make_config({}).settings, cwd=work_dir)

        with pytest.raises(NotFoundError):
            locator.canonical_key(SourceReference.local("rules"))

    def test_expand_directory_sorted(self, work_dir, make_config, write_files):
        write_files(
            work_dir,
            {
                "vendor/b.md": "# B\n",
                "vendor/a.md": "# A\n",
                "vendor/sub/c.md": "# C\n",
                "vendor/notes.txt": "ignored",
                "vendor/bin/run.sh": "#!/bin/sh\n",
            },
        )
        locator = SourceLocator(make_config({}).settings, cwd=work_dir)

        assert locator.expand_directory("vendor") == [
            "vendor/a.md",
            "vendor/b.md",
            "vendor/sub/c.md",
        ]
        assert locator.expand_directory("vendor", include_scripts=True)[-1] == (
            "vendor/bin/run.sh"
        )

    def test_scan_tags(self, work_dir, make_config, write_files):
        write_files(
            work_dir,
            {
                "rules/b.mdc": "---\nrecipes: [demo]\n---\n# B\n",
                "rules/a.md": "---\nrecipes: [demo, other]\n---\n# A\n",
                "rules/c.md": "---\nrecipes: [other]\n---\n# C\n",
                "rules/d.md": "# untagged\n",
            },
        )
        locator = SourceLocator(make_config({}).settings, cwd=work_dir)

        tagged = locator.scan_tags("demo")

        assert [os.path.basename(ref.locator) for ref in tagged] == ["a.md", "b.mdc"]
        assert all(ref.discovery == Discovery.TAG for ref in tagged)
        assert all(ref.recipe == "demo" for ref in tagged)

    def test_shape_is_relative_to_search_root(self, work_dir, make_config, write_files):
        write_files(work_dir, {"rules/commands/pr.md": "# PR\n"})
        locator = SourceLocator(make_config({}).settings, cwd=work_dir)
        key = os.path.realpath(work_dir / "rules/commands/pr.md")

        assert locator.shape(SourceReference.local(key), key) == "rules/commands/pr.md"
        assert locator.shape(SourceReference.local("x/y.md"), key) == "x/y.md"


class TestRemotePrefetch:
    """Test batched remote fetching."""

    def test_batch_for_shared_repository(self, work_dir, make_config, make_fetcher):
        fetcher = make_fetcher({BLOB_A: "# A\n", BLOB_B: "# B\n", OTHER_REPO: "# X\n"})
        locator = SourceLocator(make_config({}).settings, fetcher, cwd=work_dir)

        locator.prefetch(
            [
                SourceReference.remote(BLOB_A),
                SourceReference.remote(BLOB_B),
                SourceReference.remote(OTHER_REPO),
                SourceReference.local("a.md"),
            ]
        )

        assert fetcher.batch_calls == [[BLOB_A, BLOB_B]]
        assert locator.resolve(SourceReference.remote(BLOB_A)) == (b"# A\n", BLOB_A)
        assert fetcher.file_calls == []

        # Singleton groups are fetched on demand
        assert locator.resolve(SourceReference.remote(OTHER_REPO))[0] == b"# X\n"
        assert fetcher.file_calls == [OTHER_REPO]

    def test_batch_serves_other_spellings_of_github_urls(
        self, work_dir, make_config, make_fetcher
    ):
        fetcher = make_fetcher({BLOB_A: "# A\n", BLOB_B: "# B\n"})
        locator = SourceLocator(make_config({}).settings, fetcher, cwd=work_dir)
        http_refs = [
            SourceReference.remote(url.replace("https://", "http://")) for url in (BLOB_A, BLOB_B)
        ]

        locator.prefetch(http_refs)

        assert fetcher.batch_calls == [[BLOB_A, BLOB_B]]
        assert locator.resolve(http_refs[0]) == (b"# A\n", BLOB_A)
        www_b = SourceReference.remote(BLOB_B.replace("github.com", "www.github.com"))
        assert locator.resolve(www_b) == (b"# B\n", BLOB_B)
        assert fetcher.file_calls == []

    def test_batch_failure_falls_back_to_single_files(self, work_dir, make_config, make_fetcher):
        fetcher = make_fetcher({BLOB_A: "# A\n", BLOB_B: "# B\n"}, fail_batch=True)
        warnings = []
        locator = SourceLocator(
            make_config({}).settings, fetcher, cwd=work_dir, warn=warnings.append
        )

        locator.prefetch([SourceReference.remote(url) for url in (BLOB_A, BLOB_B, BLOB_C)])

        assert len(warnings) == 1
        assert "owner/repo@main" in warnings[0]
        assert fetcher.file_calls == [BLOB_A, BLOB_B, BLOB_C]
        assert locator.resolve(SourceReference.remote(BLOB_B))[0] == b"# B\n"

        # A file that failed individually is not requested again
        with pytest.raises(NotFoundError):
            locator.resolve(SourceReference.remote(BLOB_C))
        assert fetcher.file_calls == [BLOB_A, BLOB_B, BLOB_C]

    def test_remote_without_fetcher(self, work_dir, make_config):
        locator = SourceLocator(make_config({}).settings, cwd=work_dir)

        with pytest.raises(NotFoundError, match="no remote fetcher"):
            locator.resolve(SourceReference.remote(BLOB_A))

    def test_expand_tree(self, work_dir, make_config, make_fetcher):
        tree = "https://github.com/owner/repo/tree/main/docs"
        fetcher = make_fetcher(directories={tree: [BLOB_B, BLOB_A]})
        locator = SourceLocator(make_config({}).settings, fetcher, cwd=work_dir)

        assert locator.expand_tree(tree) == [BLOB_A, BLOB_B]

    def test_expand_tree_failure_warns(self, work_dir, make_config, make_fetcher):
        warnings = []
        locator = SourceLocator(
            make_config({}).settings, make_fetcher(), cwd=work_dir, warn=warnings.append
        )

        assert locator.expand_tree("https://github.com/owner/repo/tree/main/none") == []
        assert "Failed to expand GitHub directory" in warnings[0]
