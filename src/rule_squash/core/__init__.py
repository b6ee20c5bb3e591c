"""Core data model, errors and document parsing."""

from rule_squash.core.errors import (
    FetchFailure,
    MissingRegistration,
    NotFoundError,
    RecipeNotFoundError,
    SquashError,
    StructuralViolation,
)
from rule_squash.core.models import (
    Category,
    CompiledOutput,
    Cycle,
    DependencyEdge,
    Discovery,
    EdgeKind,
    Provider,
    ResolvedSource,
    SourceReference,
    SubagentArtifact,
)

__all__ = [
    # Errors
    "FetchFailure",
    "MissingRegistration",
    "NotFoundError",
    "RecipeNotFoundError",
    "SquashError",
    "StructuralViolation",
    # Models
    "Category",
    "CompiledOutput",
    "Cycle",
    "DependencyEdge",
    "Discovery",
    "EdgeKind",
    "Provider",
    "ResolvedSource",
    "SourceReference",
    "SubagentArtifact",
]
