"""Recipe configuration loading and validation."""

from rule_squash.config.loader import (
    find_config_files,
    load_config,
    merge_configs,
)
from rule_squash.config.schema import (
    GitHubSourceConfig,
    LocalSourceConfig,
    RecipeConfig,
    SettingsConfig,
    SquashConfig,
    SubagentConfig,
)

__all__ = [
    # Loader functions
    "find_config_files",
    "load_config",
    "merge_configs",
    # Schema classes
    "GitHubSourceConfig",
    "LocalSourceConfig",
    "RecipeConfig",
    "SettingsConfig",
    "SquashConfig",
    "SubagentConfig",
]
