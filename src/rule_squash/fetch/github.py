"""GitHub document fetcher using the GraphQL and Contents APIs."""

from typing import Any, Optional

import httpx

from rule_squash.core.errors import FetchFailure
from rule_squash.core.resolver import GitHubLocation, is_github_url, parse_github_url


class GitHubFetcher:
    """Fetcher for rule documents hosted on GitHub or plain http(s) URLs.

    Requests are synchronous and are never retried; callers decide whether a
    failed batch falls back to single-file fetches.
    """

    BASE_URL = "https://api.github.com"
    GRAPHQL_URL = "https://api.github.com/graphql"
    TIMEOUT = 30.0

    def __init__(self, token: Optional[str] = None):
        """Initialize GitHub fetcher.

        Args:
            token: Optional GitHub personal access token for authenticated requests
        """
        self.token = token
        self._headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.TIMEOUT, follow_redirects=True)

    def fetch_file(self, url: str) -> bytes:
        """Fetch one document.

        GitHub blob URLs are downloaded from raw.githubusercontent.com; any
        other URL is fetched as is.

        Raises:
            FetchFailure: If the request fails or returns an error status
        """
        download_url = url
        headers: dict[str, str] = {}
        if is_github_url(url):
            location = parse_github_url(url)
            if location.is_directory or not location.path:
                raise FetchFailure(f"Not a file URL: {url}")
            download_url = location.raw_url
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"

        try:
            with self._client() as client:
                response = client.get(download_url, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchFailure(
                f"Failed to fetch {url}: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise FetchFailure(f"Failed to fetch {url}: {e}") from e

        return response.content

    def fetch_batch(self, locations: list[GitHubLocation]) -> dict[str, bytes]:
        """Fetch files from one repository with a single GraphQL query.

        Files the repository does not contain are omitted from the result.

        Raises:
            FetchFailure: If the query fails or returns no repository data
        """
        if not locations:
            return {}

        owner, repo = locations[0].owner, locations[0].repo
        query = self.build_batch_query(owner, repo, locations)

        try:
            with self._client() as client:
                response = client.post(
                    self.GRAPHQL_URL, headers=self._headers, json={"query": query}
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise FetchFailure(
                f"GraphQL batch for {owner}/{repo} failed: HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise FetchFailure(f"GraphQL batch for {owner}/{repo} failed: {e}") from e

        return self.parse_batch_response(payload, locations)

    @staticmethod
    def build_batch_query(owner: str, repo: str, locations: list[GitHubLocation]) -> str:
        """Build a GraphQL query selecting every file as an aliased blob."""
        file_queries = [
            f'file{idx}: object(expression: "{location.ref}:{location.path}") '
            "{ ... on Blob { text } }"
            for idx, location in enumerate(locations)
        ]
        selections = "\n    ".join(file_queries)
        return (
            "query {\n"
            f'  repository(owner: "{owner}", name: "{repo}") {{\n'
            f"    {selections}\n"
            "  }\n"
            "}\n"
        )

    @staticmethod
    def parse_batch_response(
        payload: dict[str, Any], locations: list[GitHubLocation]
    ) -> dict[str, bytes]:
        """Map aliased GraphQL results back to blob URLs.

        Raises:
            FetchFailure: If the payload carries no repository data
        """
        repository = (payload.get("data") or {}).get("repository")
        if not isinstance(repository, dict):
            errors = payload.get("errors") or []
            detail = "; ".join(str(error.get("message", error)) for error in errors)
            raise FetchFailure(f"GraphQL response has no repository data {detail}".strip())

        results = {}
        for idx, location in enumerate(locations):
            blob = repository.get(f"file{idx}")
            if blob and blob.get("text") is not None:
                results[location.blob_url] = blob["text"].encode("utf-8")
        return results

    def list_directory(self, location: GitHubLocation) -> list[str]:
        """List markdown files directly inside a repository directory.

        Raises:
            FetchFailure: If the Contents API call fails or returns a file
        """
        url = f"{self.BASE_URL}/repos/{location.owner}/{location.repo}/contents/{location.path}"

        try:
            with self._client() as client:
                response = client.get(url, headers=self._headers, params={"ref": location.ref})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise FetchFailure(f"Path not found: {location.tree_url}") from e
            raise FetchFailure(
                f"Failed to list {location.tree_url}: HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise FetchFailure(f"Failed to list {location.tree_url}: {e}") from e

        if not isinstance(data, list):
            raise FetchFailure(
                f"Expected directory at {location.path}, got file or invalid response"
            )

        items = sorted(
            (
                item
                for item in data
                if item.get("type") == "file" and str(item.get("name", "")).endswith(".md")
            ),
            key=lambda item: item["name"],
        )
        return [
            location.with_path(item.get("path") or f"{location.path}/{item['name']}").blob_url
            for item in items
        ]
