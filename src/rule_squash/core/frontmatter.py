"""YAML frontmatter parsing and stripping for rule documents."""

import re
from typing import Any, Optional

import yaml

# Match YAML frontmatter: --- at start, content, --- on its own line to close
FRONTMATTER_PATTERN = re.compile(
    r"\A---[ \t]*\n(.*?)^---[ \t]*(?:\n|\Z)", re.DOTALL | re.MULTILINE
)

# Keys the assistant runtime understands; kept in published output by default.
RUNTIME_DIRECTIVES = ("name", "description", "permissionMode", "allowed_tools", "model")

# Keys only the compiler reads; always removed from published output.
COMPILER_KEYS = (
    "requires",
    "recipes",
    "essential",
    "mcp_servers",
    "skills",
    "dispatches",
    "scripts",
    "require_shell_commands",
)


def _parse_block(raw: str) -> Optional[tuple[dict[str, Any], str]]:
    """Return (metadata, body) when a well-formed mapping block is present."""
    match = FRONTMATTER_PATTERN.match(raw)
    if not match:
        return None

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return None

    if data is None:
        data = {}
    if not isinstance(data, dict):
        return None

    return data, raw[match.end():]


def split(raw: str) -> tuple[dict[str, Any], str]:
    """Split a document into its metadata map and body text.

    Missing, malformed or non-mapping frontmatter never raises; the document
    is returned whole with an empty metadata map.

    Args:
        raw: Full document text

    Returns:
        Tuple of (metadata, body)
    """
    parsed = _parse_block(raw)
    if parsed is None:
        return {}, raw
    return parsed


def _render(metadata: dict[str, Any], body: str) -> str:
    if not metadata:
        return body
    block = yaml.safe_dump(
        metadata, sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    return f"---\n{block}---\n{body}"


def strip_metadata(raw: str, keep_frontmatter: bool = False) -> str:
    """Produce the publishable form of a document.

    By default only runtime directives survive, and the frontmatter block is
    dropped entirely when none are present. With ``keep_frontmatter`` every
    key except the compiler-only ones is kept.

    Args:
        raw: Full document text
        keep_frontmatter: Keep non-compiler frontmatter keys

    Returns:
        Document text with compiler metadata removed. Documents whose
        frontmatter cannot be parsed are returned unchanged.
    """
    parsed = _parse_block(raw)
    if parsed is None:
        return raw

    metadata, body = parsed
    if keep_frontmatter:
        kept = {k: v for k, v in metadata.items() if k not in COMPILER_KEYS}
    else:
        kept = {k: metadata[k] for k in RUNTIME_DIRECTIVES if k in metadata}

    return _render(kept, body)


def declared_list(metadata: dict[str, Any], key: str) -> list[str]:
    """Normalize a scalar or list metadata value to a list of strings."""
    value = metadata.get(key)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return [str(value)]


def declares_recipe(metadata: dict[str, Any], recipe_name: str) -> bool:
    """Check whether a document tags itself as a member of a recipe."""
    return recipe_name in declared_list(metadata, "recipes")


def is_essential(metadata: dict[str, Any]) -> bool:
    return metadata.get("essential") is True


def declared_scripts(metadata: dict[str, Any]) -> Optional[tuple[list[str], list[str]]]:
    """Local and remote scripts a document ships with.

    ``scripts:`` is either a list of local paths or a mapping with ``files:``
    and ``remote:`` lists.

    Returns:
        Tuple of (files, remote), or None when ``scripts:`` has another shape
    """
    value = metadata.get("scripts")
    if value is None:
        return [], []
    if isinstance(value, dict):
        return declared_list(value, "files"), declared_list(value, "remote")
    if isinstance(value, list):
        return declared_list(metadata, "scripts"), []
    return None
