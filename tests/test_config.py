"""Tests for configuration loading and layered merging."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from rule_squash.config.loader import (
    apply_env_overrides,
    find_config_files,
    load_config,
    load_yaml_file,
    merge_configs,
)


@pytest.fixture
def user_config_file(work_dir):
    """Path of the user override recipes file under the isolated HOME."""
    path = Path.home() / ".config" / "rule-squash" / "recipes.yml"
    path.parent.mkdir(parents=True)
    return path


class TestLoadYamlFile:
    """Test YAML file loading."""

    def test_load_valid_yaml(self, tmp_path):
        config_file = tmp_path / "recipes.yml"
        config_file.write_text(yaml.dump({"recipes": {"demo": ["a.md"]}}))

        assert load_yaml_file(config_file) == {"recipes": {"demo": ["a.md"]}}

    def test_load_empty_yaml(self, tmp_path):
        config_file = tmp_path / "empty.yml"
        config_file.write_text("")

        assert load_yaml_file(config_file) == {}

    def test_load_nonexistent_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_file(tmp_path / "missing.yml")


class TestMergeConfigs:
    """Test layered merging."""

    def test_scalar_override_wins(self):
        base = {"settings": {"default_branch": "main", "rules_dir": "rules"}}
        override = {"settings": {"default_branch": "develop"}}

        result = merge_configs([base, override])

        assert result["settings"] == {"default_branch": "develop", "rules_dir": "rules"}

    def test_lists_are_unioned_in_first_seen_order(self):
        base = {"recipes": {"demo": {"files": ["a.md", "b.md"]}}}
        override = {"recipes": {"demo": {"files": ["c.md", "a.md"]}}}

        result = merge_configs([base, override])

        assert result["recipes"]["demo"]["files"] == ["a.md", "b.md", "c.md"]

    def test_union_handles_mapping_items(self):
        base = {"subagents": [{"name": "a", "recipe": "ra"}]}
        override = {"subagents": [{"name": "a", "recipe": "ra"}, {"name": "b", "recipe": "rb"}]}

        result = merge_configs([base, override])

        assert result["subagents"] == [
            {"name": "a", "recipe": "ra"},
            {"name": "b", "recipe": "rb"},
        ]

    def test_user_recipe_added_alongside_base(self):
        result = merge_configs(
            [{"recipes": {"base": ["a.md"]}}, {"recipes": {"mine": ["b.md"]}}]
        )
        assert set(result["recipes"]) == {"base", "mine"}

    def test_inputs_are_not_mutated(self):
        base = {"recipes": {"demo": {"files": ["a.md"]}}}
        merge_configs([base, {"recipes": {"demo": {"files": ["b.md"]}}}])
        assert base == {"recipes": {"demo": {"files": ["a.md"]}}}

    def test_empty(self):
        assert merge_configs([]) == {}


class TestEnvOverrides:
    """Test environment variable overrides."""

    def test_overrides_settings(self, monkeypatch):
        monkeypatch.setenv("RULE_SQUASH_USER_DIR", "/custom/home")
        monkeypatch.setenv("RULE_SQUASH_RULES_DIR", "docs")
        monkeypatch.setenv("RULE_SQUASH_DEFAULT_BRANCH", "trunk")

        result = apply_env_overrides({"settings": {"default_branch": "main"}})

        assert result["settings"] == {
            "default_branch": "trunk",
            "user_dir": "/custom/home",
            "rules_dir": "docs",
        }

    def test_no_env_leaves_config_untouched(self, work_dir):
        original = {"settings": {"default_branch": "main"}}
        result = apply_env_overrides(original)
        assert result == original
        assert result["settings"] is not original["settings"]


class TestFindConfigFiles:
    """Test recipes file discovery."""

    def test_finds_base_in_cwd(self, work_dir):
        base = work_dir / "recipes.yml"
        base.write_text("recipes: {}\n")

        assert find_config_files() == [base]

    def test_user_file_comes_last(self, work_dir, user_config_file):
        base = work_dir / "recipes.yml"
        base.write_text("recipes: {}\n")
        user_config_file.write_text("recipes: {}\n")

        assert find_config_files() == [base, user_config_file.resolve()]

    def test_explicit_path_must_exist(self, work_dir):
        with pytest.raises(FileNotFoundError):
            find_config_files(work_dir / "nope.yml")


class TestLoadConfig:
    """Test full configuration loading."""

    def test_defaults_only(self, work_dir):
        config = load_config()

        assert config.recipes == {}
        assert config.settings.rules_dir == "rules"
        assert config.settings.default_root == str(work_dir.resolve())

    def test_default_root_follows_explicit_file(self, work_dir, tmp_path):
        other = tmp_path / "elsewhere"
        other.mkdir()
        recipes_file = other / "recipes.yml"
        recipes_file.write_text("recipes:\n  demo: [a.md]\n")

        config = load_config(recipes_file)

        assert config.settings.default_root == str(other.resolve())
        assert config.get_recipe("demo").files == ["a.md"]

    def test_user_layer_unions_recipe_files(self, work_dir, user_config_file):
        (work_dir / "recipes.yml").write_text(
            "recipes:\n  demo:\n    files: [a.md]\n    model: opus\n"
        )
        user_config_file.write_text(
            "recipes:\n  demo:\n    files: [b.md]\n    model: sonnet\n"
        )

        recipe = load_config().get_recipe("demo")

        assert recipe.files == ["a.md", "b.md"]
        assert recipe.model == "sonnet"

    def test_env_overrides_files(self, work_dir, monkeypatch):
        (work_dir / "recipes.yml").write_text("settings:\n  default_branch: main\n")
        monkeypatch.setenv("RULE_SQUASH_DEFAULT_BRANCH", "release")

        assert load_config().settings.default_branch == "release"

    def test_invalid_yaml(self, work_dir):
        (work_dir / "recipes.yml").write_text("recipes: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_config()

    def test_invalid_version(self, work_dir):
        (work_dir / "recipes.yml").write_text('version: "2.0"\n')

        with pytest.raises(ValidationError):
            load_config()

    def test_config_is_frozen(self, work_dir):
        config = load_config()
        with pytest.raises(ValidationError):
            config.settings.rules_dir = "other"
