"""Recipe compilation entry points and artifact writers."""

from rule_squash.compose.assembler import (
    Squasher,
    WrittenArtifacts,
    compile,
    detect_cycles,
    generate_subagents,
)
from rule_squash.compose.markdown import render_agent, render_body

__all__ = [
    "Squasher",
    "WrittenArtifacts",
    "compile",
    "detect_cycles",
    "generate_subagents",
    "render_agent",
    "render_body",
]
