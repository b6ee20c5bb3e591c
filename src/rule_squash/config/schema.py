"""Pydantic models for rule-squash recipe configuration."""

import re
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from rule_squash.core.errors import RecipeNotFoundError


class SettingsConfig(BaseModel):
    """Global settings shared by every recipe."""

    model_config = ConfigDict(frozen=True)

    rules_dir: str = Field(
        default="rules",
        description="Directory under the default root scanned for recipe tags",
    )
    user_dir: str = Field(
        default="~/.config/rule-squash/rules-home",
        description="User override directory searched before the default root",
    )
    default_root: Optional[str] = Field(
        default=None,
        description="Packaged rules root (defaults to the base recipes file's directory)",
    )
    commands_dir: str = Field(
        default="commands", description="Path segment marking command documents"
    )
    skills_dir: str = Field(
        default="skills", description="Path segment marking skill documents"
    )
    bin_pattern: str = Field(
        default=r"bin/.*\.sh$", description="Regex marking executable scripts"
    )
    default_branch: str = Field(
        default="main", description="Default git branch for GitHub sources"
    )
    output_file: str = Field(
        default="CLAUDE.local.md", description="Merged body output file"
    )
    agents_output: str = Field(default=".claude/agents")
    commands_output: str = Field(default=".claude/commands")
    skills_output: str = Field(default=".claude/skills")
    scripts_output: str = Field(default=".claude/scripts")

    @field_validator("bin_pattern")
    @classmethod
    def validate_bin_pattern(cls, v: str) -> str:
        """Validate the script pattern is a usable regex."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid bin_pattern regex: {e}") from e
        return v


class GitHubSourceConfig(BaseModel):
    """Files or directories pulled from a GitHub repository."""

    model_config = ConfigDict(frozen=True)

    github: str = Field(description="Repository in format 'owner/repo'")
    branch: Optional[str] = Field(
        default=None, description="Branch to fetch from (overrides default_branch)"
    )
    rules: list[str] = Field(
        default_factory=list, description="Paths within the repository"
    )

    @field_validator("github")
    @classmethod
    def validate_repo_format(cls, v: str) -> str:
        """Validate repository format is owner/repo."""
        if v.count("/") != 1 or v.startswith("/") or v.endswith("/"):
            raise ValueError("Repository must be in format 'owner/repo'")
        return v


class LocalSourceConfig(BaseModel):
    """Local files or directories declared under ``sources:``."""

    model_config = ConfigDict(frozen=True)

    local: list[str] = Field(description="Local file or directory paths")

    @field_validator("local", mode="before")
    @classmethod
    def coerce_single_path(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v


SourceEntry = Union[GitHubSourceConfig, LocalSourceConfig, str]


class SubagentConfig(BaseModel):
    """A subagent compiled from another recipe."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Subagent name, also its dispatch target")
    recipe: str = Field(description="Recipe compiled into the subagent")
    model: Optional[str] = Field(
        default=None, description="Model override for this subagent"
    )


class RecipeConfig(BaseModel):
    """A named bundle of rule sources.

    A recipe written as a bare YAML list is shorthand for ``files:``.
    """

    model_config = ConfigDict(frozen=True)

    description: Optional[str] = None
    files: list[str] = Field(default_factory=list)
    sources: list[SourceEntry] = Field(default_factory=list)
    remote_sources: list[str] = Field(
        default_factory=list, description="Legacy list of remote URLs"
    )
    subagents: list[SubagentConfig] = Field(default_factory=list)
    capabilities: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("capabilities", "mcp_servers"),
        description="Tool-access requirements (MCP server names)",
    )
    model: Optional[str] = None
    omit_command_prefix: Optional[Union[str, list[str]]] = Field(
        default=None,
        description="Leading path prefix(es) dropped from command output paths",
    )

    @model_validator(mode="before")
    @classmethod
    def expand_list_shorthand(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"files": data}
        return data

    @property
    def subagent_names(self) -> list[str]:
        return [agent.name for agent in self.subagents]


class SquashConfig(BaseModel):
    """Root configuration: settings plus every known recipe."""

    model_config = ConfigDict(frozen=True)

    version: str = Field(default="1.0", description="Config schema version")
    settings: SettingsConfig = Field(default_factory=SettingsConfig)
    recipes: dict[str, RecipeConfig] = Field(default_factory=dict)

    @field_validator("version", mode="before")
    @classmethod
    def validate_version(cls, v: Any) -> str:
        """Validate version format."""
        v = str(v)
        if not v.startswith("1."):
            raise ValueError(
                f"Unsupported config version: {v}. Only version 1.x is supported."
            )
        return v

    def get_recipe(self, name: str) -> RecipeConfig:
        """Look up a recipe by name.

        Raises:
            RecipeNotFoundError: If no layer declares the recipe
        """
        try:
            return self.recipes[name]
        except KeyError:
            raise RecipeNotFoundError(name, sorted(self.recipes)) from None
