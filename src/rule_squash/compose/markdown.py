"""Render compiled output as markdown documents."""

import re
from datetime import datetime, timezone
from typing import Optional

import yaml

from rule_squash.compose.files import skill_name
from rule_squash.core import frontmatter
from rule_squash.core.models import CompiledOutput, ResolvedSource, SubagentArtifact

AGENT_TOOLS = "Bash, Read, Write, Edit, Glob, Grep"
AGENT_PERMISSION_MODE = "bypassPermissions"

HEADER_PATTERN = re.compile(r"^(#+)\s+(.+)$")

NO_COMMAND_DESCRIPTION = "Command description not available"


def file_prefix(source_path: str) -> str:
    """Anchor prefix derived from a document's path.

    GitHub URLs use their path inside the repository, other URLs their last
    segment.
    """
    path = source_path
    if source_path.startswith("http"):
        match = re.search(r"/(?:blob|tree)/[^/]+/(.+)$", source_path)
        path = match.group(1) if match else source_path.rsplit("/", 1)[-1]

    path = re.sub(r"\.md$", "", path.lower())
    path = re.sub(r"[^\w/-]", "", path)
    path = re.sub(r"/+", "-", path)
    return path.strip("-")


def anchor_for(text: str, prefix: Optional[str] = None) -> str:
    anchor = re.sub(r"[^\w\s-]", "", text.lower())
    anchor = re.sub(r"-+", "-", re.sub(r"\s+", "-", anchor)).strip("-")
    return f"{prefix}-{anchor}" if prefix else anchor


def extract_headers(
    content: str, source_path: Optional[str] = None
) -> list[tuple[int, str, str]]:
    """Markdown headers of a document as (level, text, anchor) tuples."""
    prefix = file_prefix(source_path) if source_path else None
    headers = []
    for line in content.splitlines():
        match = HEADER_PATTERN.match(line)
        if match:
            text = match.group(2).strip()
            headers.append((len(match.group(1)), text, anchor_for(text, prefix)))
    return headers


def add_anchor_ids(content: str, source_path: str) -> str:
    """Put an HTML anchor before every header so TOC links resolve."""
    prefix = file_prefix(source_path)
    lines = []
    for line in content.splitlines():
        match = HEADER_PATTERN.match(line)
        if match:
            text = match.group(2).strip()
            anchor = anchor_for(text, prefix)
            lines.extend([f'<a id="{anchor}"></a>', "", f"{match.group(1)} {text}"])
        else:
            lines.append(line)
    return "\n".join(lines)


def command_name(file_path: str) -> str:
    """Slash command name: the file name with ``_`` and ``-`` as ``:``."""
    name = re.sub(r"\.md$", "", file_path.replace("\\", "/").rsplit("/", 1)[-1])
    return re.sub(r"[_-]", ":", name)


def command_description(command: ResolvedSource) -> str:
    """Frontmatter description, else the first substantial prose line."""
    metadata, body = frontmatter.split(command.raw or command.content)
    if metadata.get("description"):
        return str(metadata["description"])

    for line in body.splitlines():
        if not line.strip() or line.startswith(("#", "---")):
            continue
        if len(line.strip()) > 10:
            description = re.sub(r"[*_`]", "", line.strip())[:81]
            return description + ("..." if len(line) > 80 else "")
    return NO_COMMAND_DESCRIPTION


def render_toc(output: CompiledOutput) -> str:
    """Table of contents over body headers plus a slash command listing."""
    lines = ["## Table of Contents", ""]
    for source in output.body:
        for level, text, anchor in extract_headers(source.content, source.path):
            lines.append(f"{'  ' * (level - 1)}- [{text}](#{anchor})")

    if output.commands:
        lines.extend(["", "### Available Slash Commands", ""])
        for command in output.commands:
            lines.append(f"- `/{command_name(command.path)}` - {command_description(command)}")
    return "\n".join(lines)


def rewrite_script_references(content: str, script_paths: dict[str, str]) -> str:
    """Point references to copied scripts at their output location."""
    for source_path in sorted(script_paths, key=len, reverse=True):
        content = content.replace(source_path, script_paths[source_path])
    return content


def render_body(
    output: CompiledOutput,
    toc: bool = False,
    script_paths: Optional[dict[str, str]] = None,
) -> str:
    """Merge body documents into one markdown document.

    Documents are separated by a blank line and empty documents are skipped.

    Args:
        output: Compiled recipe
        toc: Prepend a table of contents and anchor every header
        script_paths: Script source path -> copied script path, rewritten
            wherever the body mentions them
    """
    parts = []
    for source in output.body:
        content = source.content.strip("\n")
        if not content.strip():
            continue
        if script_paths:
            content = rewrite_script_references(content, script_paths)
        if toc:
            content = add_anchor_ids(content, source.path)
        parts.append(content)

    if toc:
        parts.insert(0, render_toc(output))
    if not parts:
        return ""
    return "\n\n".join(parts) + "\n"


def _title(name: str) -> str:
    return " ".join(word.capitalize() for word in name.replace("-", "_").split("_") if word)


def render_agent(
    artifact: SubagentArtifact,
    parent_recipe: str,
    skills_dir: str = "skills",
    generated_at: Optional[datetime] = None,
) -> str:
    """Render a subagent definition file.

    Args:
        artifact: Compiled subagent
        parent_recipe: Recipe that dispatches the subagent
        skills_dir: Path segment marking skill documents
        generated_at: Timestamp for the footer (defaults to now, UTC)

    Returns:
        Agent file text with YAML frontmatter
    """
    generated_at = generated_at or datetime.now(timezone.utc)

    header = {
        "name": artifact.name,
        "description": artifact.description or f"Subagent for {artifact.recipe}",
        "tools": AGENT_TOOLS,
        "model": artifact.model,
    }
    skills = [skill_name(skill.path, skills_dir) for skill in artifact.output.skills]
    if skills:
        header["skills"] = skills
    if artifact.capabilities:
        header["mcpServers"] = list(artifact.capabilities)
    header["permissionMode"] = AGENT_PERMISSION_MODE

    lines = [
        "---",
        yaml.safe_dump(header, sort_keys=False, allow_unicode=True, width=1000).rstrip("\n"),
        f"# Auto-generated from recipe: {artifact.recipe}",
        f"# Do not edit manually - regenerate using 'rule-squash squash {parent_recipe}'",
        "---",
        "",
        f"# {_title(artifact.name)}",
        "",
        header["description"],
        "",
        "## Recipe Content",
        "",
    ]

    for source in artifact.output.body:
        content = source.content.strip("\n")
        if not content.strip():
            continue
        lines.extend([content, "", "---", ""])

    lines.extend(
        [
            "---",
            f"*Last generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}*",
            f"*Source recipe: {artifact.recipe}*",
        ]
    )
    return "\n".join(lines) + "\n"
