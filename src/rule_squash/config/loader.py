"""Configuration loader with merge logic and precedence handling."""

import os
from pathlib import Path
from typing import Any, Optional

import yaml

from rule_squash.config.defaults import BASE_RECIPES_FILE, DEFAULT_CONFIG, USER_RECIPES_FILE
from rule_squash.config.schema import SquashConfig
from rule_squash.utils.paths import expand_path


def find_config_files(config_path: Optional[Path] = None) -> list[Path]:
    """Find recipes files in order of precedence (lowest to highest).

    1. Base recipes file (``config_path`` if given, else ./recipes.yml)
    2. User overrides (~/.config/rule-squash/recipes.yml)

    Args:
        config_path: Explicit base recipes file

    Returns:
        Existing recipes files, lowest precedence first

    Raises:
        FileNotFoundError: If config_path is given but doesn't exist
    """
    config_files = []

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Recipes file not found: {config_path}")
        config_files.append(config_path)
    else:
        base_config = Path.cwd() / BASE_RECIPES_FILE
        if base_config.exists():
            config_files.append(base_config)

    user_config = expand_path(USER_RECIPES_FILE)
    if user_config.exists():
        config_files.append(user_config)

    return config_files


def load_yaml_file(file_path: Path) -> dict[str, Any]:
    """Load and parse a YAML recipes file.

    Raises:
        yaml.YAMLError: If the file contains invalid YAML
        FileNotFoundError: If the file doesn't exist
    """
    with open(file_path, "r") as f:
        content = yaml.safe_load(f)
        return content if content is not None else {}


def merge_configs(configs: list[dict[str, Any]]) -> dict[str, Any]:
    """Deep merge configuration dictionaries, lowest precedence first.

    Nested dictionaries merge recursively and scalars from later layers win.
    Lists are unioned, keeping first-seen order, so a user layer can add files
    to a base recipe without repeating them.

    Args:
        configs: Configuration dictionaries ordered lowest to highest precedence

    Returns:
        Merged configuration dictionary
    """
    result: dict[str, Any] = {}

    for config in configs:
        result = _deep_merge(result, config)

    return result


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()

    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = _deep_merge(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            result[key] = _union(current, value)
        else:
            result[key] = value

    return result


def _union(first: list[Any], second: list[Any]) -> list[Any]:
    # Items may be dicts (source or subagent entries), so no set here
    merged = list(first)
    for item in second:
        if item not in merged:
            merged.append(item)
    return merged


def apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides to configuration.

    Supports the following environment variables:
    - RULE_SQUASH_USER_DIR: Override settings.user_dir
    - RULE_SQUASH_RULES_DIR: Override settings.rules_dir
    - RULE_SQUASH_DEFAULT_BRANCH: Override settings.default_branch
    """
    result = config.copy()
    result["settings"] = dict(result.get("settings") or {})

    if user_dir := os.getenv("RULE_SQUASH_USER_DIR"):
        result["settings"]["user_dir"] = user_dir

    if rules_dir := os.getenv("RULE_SQUASH_RULES_DIR"):
        result["settings"]["rules_dir"] = rules_dir

    if default_branch := os.getenv("RULE_SQUASH_DEFAULT_BRANCH"):
        result["settings"]["default_branch"] = default_branch

    return result


def load_config(config_path: Optional[Path] = None) -> SquashConfig:
    """Load and merge configuration from all layers.

    Configuration precedence (lowest to highest):
    1. Built-in defaults
    2. Base recipes file (config_path, or ./recipes.yml)
    3. User recipes file (~/.config/rule-squash/recipes.yml)
    4. Environment variables

    ``settings.default_root`` falls back to the base recipes file's directory,
    or the working directory when there is no base file.

    Args:
        config_path: Optional explicit base recipes file

    Returns:
        Validated, immutable SquashConfig instance

    Raises:
        ValidationError: If the merged configuration is invalid
        yaml.YAMLError: If a recipes file contains invalid YAML
        FileNotFoundError: If config_path is provided but doesn't exist
    """
    config_files = find_config_files(config_path)
    configs_to_merge = [DEFAULT_CONFIG]

    for config_file in config_files:
        try:
            configs_to_merge.append(load_yaml_file(config_file))
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Error loading {config_file}: {e}") from e

    merged_config = apply_env_overrides(merge_configs(configs_to_merge))

    if not merged_config["settings"].get("default_root"):
        base_file = config_path or Path.cwd() / BASE_RECIPES_FILE
        merged_config["settings"]["default_root"] = str(base_file.resolve().parent)

    return SquashConfig.model_validate(merged_config)
