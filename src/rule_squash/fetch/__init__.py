"""Remote document fetching."""

from rule_squash.fetch.github import GitHubFetcher
from rule_squash.fetch.protocols import ContentFetcher

__all__ = ["ContentFetcher", "GitHubFetcher"]
