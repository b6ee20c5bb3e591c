"""Abstract interface for fetching remote rule documents."""

from typing import Protocol

from rule_squash.core.resolver import GitHubLocation


class ContentFetcher(Protocol):
    """Abstract interface for fetching remote documents."""

    def fetch_file(self, url: str) -> bytes:
        """Fetch a single document.

        Args:
            url: GitHub blob/tree URL or any other http(s) URL

        Returns:
            The document's bytes

        Raises:
            FetchFailure: If the document cannot be fetched
        """
        ...

    def fetch_batch(self, locations: list[GitHubLocation]) -> dict[str, bytes]:
        """Fetch several files from one repository and branch in one request.

        Args:
            locations: Files sharing owner, repo and ref

        Returns:
            Mapping of blob URL to bytes for every file the repository returned

        Raises:
            FetchFailure: If the combined request fails
        """
        ...

    def list_directory(self, location: GitHubLocation) -> list[str]:
        """List the markdown documents directly inside a repository directory.

        Returns:
            Blob URLs sorted by file name

        Raises:
            FetchFailure: If the listing cannot be retrieved
        """
        ...
