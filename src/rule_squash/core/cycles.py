"""Report requires-cycles across a local rule corpus.

Diagnostic only: compiles tolerate cycles, so nothing here raises or blocks.
"""

import os
from pathlib import Path

from rule_squash.core.models import Cycle
from rule_squash.core.resolver import local_requires

CORPUS_SUFFIXES = (".md", ".mdc")


def build_graph(corpus_root: Path) -> dict[str, list[str]]:
    """Adjacency map of real path to required real paths for a corpus."""
    graph: dict[str, list[str]] = {}
    for path in sorted(Path(corpus_root).rglob("*")):
        if path.suffix not in CORPUS_SUFFIXES or not path.is_file():
            continue
        graph.setdefault(os.path.realpath(path), local_requires(path))
    return graph


def find_cycles(graph: dict[str, list[str]]) -> list[Cycle]:
    """Every distinct cycle in a graph, normalized.

    Depth-first search with an explicit stack. Revisiting a node that is on
    the current path yields the path slice from that node as a raw cycle.
    """
    raw_cycles: list[list[str]] = []
    visited: set[str] = set()

    for start in sorted(graph):
        if start in visited:
            continue

        path: list[str] = [start]
        on_path: set[str] = {start}
        visited.add(start)
        stack = [iter(graph.get(start, []))]

        while stack:
            node = next(stack[-1], None)
            if node is None:
                stack.pop()
                on_path.discard(path.pop())
                continue

            if node in on_path:
                raw_cycles.append(path[path.index(node):] + [node])
            elif node not in visited:
                visited.add(node)
                path.append(node)
                on_path.add(node)
                stack.append(iter(graph.get(node, [])))

    return normalize_cycles(raw_cycles)


def normalize_cycles(raw_cycles: list[list[str]]) -> list[Cycle]:
    """Drop each cycle's closing node, rotate to its smallest key, dedupe."""
    cycles: list[Cycle] = []
    seen: set[str] = set()

    for raw in raw_cycles:
        nodes = raw[:-1] if len(raw) > 1 and raw[0] == raw[-1] else list(raw)
        if not nodes:
            continue
        pivot = nodes.index(min(nodes))
        rotated = nodes[pivot:] + nodes[:pivot]
        signature = "|".join(rotated)
        if signature not in seen:
            seen.add(signature)
            cycles.append(rotated)

    return cycles


def detect_cycles(corpus_root: Path) -> list[Cycle]:
    """Requires-cycles among the local documents under ``corpus_root``."""
    return find_cycles(build_graph(corpus_root))
