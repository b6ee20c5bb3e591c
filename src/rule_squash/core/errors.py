"""Exception types raised while compiling recipes.

Provider-level failures (``NotFoundError``, ``FetchFailure``) are recoverable:
the compiler turns them into warnings and keeps going. Structural failures
(``StructuralViolation``, ``MissingRegistration``) abort the compile.
"""

from typing import Optional


class SquashError(Exception):
    """Base class for all rule-squash errors."""


class NotFoundError(SquashError):
    """A reference could not be resolved by any provider."""

    def __init__(self, locator: str, detail: Optional[str] = None):
        self.locator = locator
        message = f"Not found: {locator}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class FetchFailure(SquashError):
    """A remote batch or per-file fetch failed."""


class RecipeNotFoundError(SquashError):
    """The requested recipe is not declared in any configuration layer."""

    def __init__(self, recipe_name: str, available: list[str]):
        self.recipe_name = recipe_name
        self.available = available
        listing = ", ".join(available) if available else "(none)"
        super().__init__(
            f"Recipe '{recipe_name}' not found. Available recipes: {listing}"
        )


class StructuralViolation(SquashError):
    """A subagent recipe breaks the flat dispatch hierarchy."""


class MissingRegistration(SquashError):
    """A dispatch target is used but not registered as a subagent."""

    def __init__(self, recipe_name: str, file_name: str, target: str):
        self.recipe_name = recipe_name
        self.file_name = file_name
        self.target = target
        super().__init__(
            f"Recipe '{recipe_name}' dispatches: {target} (from {file_name})\n"
            f"but does not register it as a subagent.\n"
            f"Add to recipe:\n"
            f"  subagents:\n"
            f"    - name: {target}\n"
            f"      recipe: {target.replace('_', '-')}"
        )
