"""Data model shared by the locator, resolver, compiler and subagent builder."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Provider(str, Enum):
    """Where a reference's bytes come from."""

    LOCAL = "local"
    REMOTE = "remote"


class Discovery(str, Enum):
    """How a reference entered the traversal."""

    ROOT = "root"
    REQUIRES = "requires"
    SKILL = "skill"
    SCRIPT = "script"
    TAG = "tag"


class Category(str, Enum):
    """Output bucket of a resolved source."""

    BODY = "body"
    COMMAND = "command"
    SKILL = "skill"
    SCRIPT = "script"


class EdgeKind(str, Enum):
    """Kind of an outbound dependency edge."""

    REQUIRES = "requires"
    SKILL = "skill"
    SCRIPT = "script"


@dataclass(frozen=True)
class SourceReference:
    """A logical reference to a document.

    Attributes:
        locator: Local path (as written) or remote URL
        provider: Local filesystem or remote repository
        recipe: Name of the recipe whose traversal discovered it
        discovery: How the reference was discovered
    """

    locator: str
    provider: Provider = Provider.LOCAL
    recipe: Optional[str] = None
    discovery: Discovery = Discovery.ROOT

    @property
    def is_remote(self) -> bool:
        return self.provider == Provider.REMOTE

    @classmethod
    def local(
        cls,
        path: str,
        recipe: Optional[str] = None,
        discovery: Discovery = Discovery.ROOT,
    ) -> "SourceReference":
        return cls(locator=path, provider=Provider.LOCAL, recipe=recipe, discovery=discovery)

    @classmethod
    def remote(
        cls,
        url: str,
        recipe: Optional[str] = None,
        discovery: Discovery = Discovery.ROOT,
    ) -> "SourceReference":
        return cls(locator=url, provider=Provider.REMOTE, recipe=recipe, discovery=discovery)


@dataclass
class ResolvedSource:
    """A reference resolved to concrete content.

    ``raw`` keeps the frontmatter intact for edge extraction; ``content`` is
    the publishable form. Scripts carry their exact bytes in ``data`` and
    leave the text fields empty.
    """

    reference: SourceReference
    key: str
    category: Category
    raw: str = ""
    content: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    data: Optional[bytes] = None
    inlined: list["ResolvedSource"] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.reference.locator

    def bundle_text(self) -> str:
        """Publishable text including any inlined skill dependencies.

        Skills inlined into this bundle are flattened into it together with
        their own inlined dependencies. Each document appears once.
        """
        return "\n\n---\n\n".join(self._bundle_parts(set()))

    def _bundle_parts(self, seen: set[str]) -> list[str]:
        seen.add(self.key)
        parts = [self.content]
        for dep in self.inlined:
            if dep.key not in seen:
                parts.extend(dep._bundle_parts(seen))
        return parts


@dataclass(frozen=True)
class DependencyEdge:
    """An outbound edge from a resolved source."""

    source: str
    target: SourceReference
    kind: EdgeKind = EdgeKind.REQUIRES


# A requires-cycle as canonical keys, rotated to start at the smallest key.
Cycle = list[str]


@dataclass
class CompiledOutput:
    """Result of compiling one recipe.

    The four source lists never share a canonical key and keep the order in
    which the traversal finalized each source.
    """

    recipe: Optional[str] = None
    body: list[ResolvedSource] = field(default_factory=list)
    commands: list[ResolvedSource] = field(default_factory=list)
    skills: list[ResolvedSource] = field(default_factory=list)
    scripts: list[ResolvedSource] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    capabilities: list[str] = field(default_factory=list)
    subagents: list["SubagentArtifact"] = field(default_factory=list)
    required_commands: list[str] = field(default_factory=list)

    def add(self, source: ResolvedSource) -> None:
        bucket = {
            Category.BODY: self.body,
            Category.COMMAND: self.commands,
            Category.SKILL: self.skills,
            Category.SCRIPT: self.scripts,
        }[source.category]
        bucket.append(source)

    def all_sources(self) -> list[ResolvedSource]:
        return self.body + self.commands + self.skills + self.scripts

    def keys(self) -> list[str]:
        return [source.key for source in self.all_sources()]

    def __len__(self) -> int:
        return len(self.body) + len(self.commands) + len(self.skills) + len(self.scripts)


@dataclass
class SubagentArtifact:
    """A subagent compiled from its own recipe."""

    name: str
    recipe: str
    model: str
    output: CompiledOutput
    description: Optional[str] = None
    capabilities: list[str] = field(default_factory=list)
