"""Write compiled commands, skills and scripts to their output directories."""

import os
import re
from pathlib import Path, PurePosixPath
from typing import Optional, Union

from rule_squash.core.models import ResolvedSource
from rule_squash.utils.output import print_warning

SCRIPT_TARGET_PATTERN = re.compile(r"bin/(.+\.sh)$")

# Command directory names the assistant runtime ignores
RESERVED_COMMAND_DIRS = ("debug",)


def command_relative_path(
    file_path: str,
    omit_prefix: Optional[Union[str, list[str]]] = None,
    commands_dir: str = "commands",
) -> str:
    """Output path of a command document, relative to the commands output.

    Directories between the last ``*rules*`` directory and the commands
    directory are kept as a namespace, so ``rules/git/commands/pr.md``
    becomes ``git/pr.md``. Without a ``rules`` directory only the immediate
    parent is kept. ``omit_prefix`` strips the longest matching leading
    prefix from the result.
    """
    marker = f"/{commands_dir}/"
    normalized = "/" + file_path.replace("\\", "/").lstrip("/")
    if marker not in normalized:
        return PurePosixPath(file_path).name

    before, _, after = normalized.rpartition(marker)
    components = [part for part in before.split("/") if part]

    rules_indexes = [i for i, part in enumerate(components) if "rules" in part.lower()]
    if rules_indexes:
        namespace = components[rules_indexes[-1] + 1:]
    else:
        namespace = components[-1:]

    result = "/".join([*namespace, after])
    if omit_prefix:
        result = _apply_omit_prefix(result, after, omit_prefix)
    return result


def _apply_omit_prefix(
    result_path: str, after_commands: str, omit_prefix: Union[str, list[str]]
) -> str:
    prefixes = [omit_prefix] if isinstance(omit_prefix, str) else omit_prefix

    best_path = result_path
    best_stripped = 0
    for prefix in prefixes:
        prefix_parts = [part for part in prefix.split("/") if part]
        path_parts = result_path.split("/")
        stripped = 0
        while prefix_parts and path_parts and prefix_parts[0] == path_parts[0]:
            prefix_parts.pop(0)
            path_parts.pop(0)
            stripped += 1

        if stripped > best_stripped:
            best_stripped = stripped
            best_path = "/".join(path_parts) if path_parts else PurePosixPath(after_commands).name

    return best_path


def skill_name(file_path: str, skills_dir: str = "skills") -> str:
    """Skill name: the path after the last skills directory, minus ``.md``."""
    marker = f"/{skills_dir}/"
    normalized = "/" + file_path.replace("\\", "/").lstrip("/")
    name = normalized.rpartition(marker)[2] if marker in normalized else PurePosixPath(file_path).name
    return re.sub(r"\.md$", "", name)


def script_target(file_path: str) -> str:
    """Output name of a script: its path below ``bin/``, else its file name."""
    match = SCRIPT_TARGET_PATTERN.search(file_path.replace("\\", "/"))
    if match:
        return match.group(1)
    return PurePosixPath(file_path).name


def write_commands(
    commands: list[ResolvedSource],
    output_dir: Path,
    omit_prefix: Optional[Union[str, list[str]]] = None,
    commands_dir: str = "commands",
) -> list[Path]:
    """Write command documents below ``output_dir``.

    Returns:
        Paths written, in input order
    """
    written = []
    warned_reserved = False

    for command in commands:
        relative = command_relative_path(command.path, omit_prefix, commands_dir)
        if not warned_reserved and any(
            part in RESERVED_COMMAND_DIRS for part in relative.split("/")[:-1]
        ):
            print_warning(
                f"'{relative.split('/')[0]}' is a reserved command directory name; "
                f"commands in it will not be recognized"
            )
            warned_reserved = True

        target = output_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(command.content, encoding="utf-8")
        written.append(target)

    return written


def write_skills(
    skills: list[ResolvedSource], output_dir: Path, skills_dir: str = "skills"
) -> list[Path]:
    """Write each skill bundle to ``<output_dir>/<name>/SKILL.md``."""
    written = []
    for skill in skills:
        target = output_dir / skill_name(skill.path, skills_dir) / "SKILL.md"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(skill.bundle_text(), encoding="utf-8")
        written.append(target)
    return written


def write_scripts(scripts: list[ResolvedSource], output_dir: Path) -> list[Path]:
    """Copy scripts byte for byte and make them executable."""
    written = []
    for script in scripts:
        target = output_dir / script_target(script.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(script.data or b"")
        target.chmod(0o755)
        written.append(target)
    return written


def script_paths(scripts: list[ResolvedSource], scripts_output: str) -> dict[str, str]:
    """Map local script source paths to where ``write_scripts`` copies them.

    Both the real path and an absolute or ``~`` locator are mapped, so either
    spelling in a document can be rewritten.
    """
    mappings = {}
    for script in scripts:
        if script.reference.is_remote:
            continue
        target = f"{scripts_output.rstrip('/')}/{script_target(script.path)}"
        mappings[script.key] = target
        if os.path.isabs(script.path) or script.path.startswith("~"):
            mappings[script.path] = target
    return mappings
