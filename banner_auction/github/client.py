"""HTTP client for the GitHub issues, reactions, and contents APIs."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import GitHubConfig

_PIN_MUTATION = """
mutation($issueId: ID!) {
  pinIssue(input: {issueId: $issueId}) { issue { id } }
}
"""

_UNPIN_MUTATION = """
mutation($issueId: ID!) {
  unpinIssue(input: {issueId: $issueId}) { issue { id } }
}
"""


class GitHubAPIError(Exception):
    """Raised for any non-success GitHub response or transport failure."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"GitHub API error {status}: {message}")
        self.status = status
        self.message = message

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


@dataclass(frozen=True)
class Comment:
    id: int
    body: str
    author: str
    created_at: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Comment":
        return cls(
            id=int(data["id"]),
            body=data.get("body") or "",
            author=(data.get("user") or {}).get("login", ""),
            created_at=data.get("created_at") or "",
        )


@dataclass(frozen=True)
class Reaction:
    id: int
    content: str
    author: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Reaction":
        return cls(
            id=int(data.get("id") or 0),
            content=data.get("content", ""),
            author=(data.get("user") or {}).get("login", ""),
        )


@dataclass(frozen=True)
class Issue:
    number: int
    body: str
    html_url: str
    node_id: str
    state: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Issue":
        return cls(
            number=int(data["number"]),
            body=data.get("body") or "",
            html_url=data.get("html_url", ""),
            node_id=data.get("node_id", ""),
            state=data.get("state", ""),
        )


class GitHubClient:
    def __init__(self, config: GitHubConfig, *, timeout_s: float = 10.0) -> None:
        self._config = config
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "banner-auction-server",
        }
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        self._client = httpx.AsyncClient(
            base_url=config.api_url, headers=headers, timeout=timeout_s
        )

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    @property
    def owner(self) -> str:
        return self._config.owner

    @property
    def repo(self) -> str:
        return self._config.repo

    async def close(self) -> None:
        await self._client.aclose()

    def _repo_path(self, suffix: str) -> str:
        return f"/repos/{self._config.owner}/{self._config.repo}{suffix}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise GitHubAPIError(0, str(exc)) from exc
        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.reason_phrase)
            except ValueError:
                message = response.reason_phrase
            raise GitHubAPIError(response.status_code, message)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _graphql(self, query: str, variables: dict[str, Any]) -> Any:
        data = await self._request("POST", "/graphql", json={"query": query, "variables": variables})
        errors = (data or {}).get("errors")
        if errors:
            raise GitHubAPIError(200, errors[0].get("message", "GraphQL error"))
        return data

    # Comments ---------------------------------------------------------------

    async def get_comment(self, comment_id: int) -> Comment:
        data = await self._request("GET", self._repo_path(f"/issues/comments/{comment_id}"))
        return Comment.from_api(data)

    async def list_reactions(self, comment_id: int) -> list[Reaction]:
        data = await self._request(
            "GET",
            self._repo_path(f"/issues/comments/{comment_id}/reactions"),
            params={"per_page": 100},
        )
        return [Reaction.from_api(item) for item in data or []]

    async def add_comment(self, issue_number: int, body: str) -> Comment:
        data = await self._request(
            "POST", self._repo_path(f"/issues/{issue_number}/comments"), json={"body": body}
        )
        return Comment.from_api(data)

    async def update_comment(self, comment_id: int, body: str) -> Comment:
        data = await self._request(
            "PATCH", self._repo_path(f"/issues/comments/{comment_id}"), json={"body": body}
        )
        return Comment.from_api(data)

    # Issues -----------------------------------------------------------------

    async def create_issue(self, title: str, body: str, labels: list[str] | None = None) -> Issue:
        data = await self._request(
            "POST",
            self._repo_path("/issues"),
            json={"title": title, "body": body, "labels": labels or []},
        )
        return Issue.from_api(data)

    async def get_issue(self, issue_number: int) -> Issue:
        data = await self._request("GET", self._repo_path(f"/issues/{issue_number}"))
        return Issue.from_api(data)

    async def update_issue_body(self, issue_number: int, body: str) -> Issue:
        data = await self._request(
            "PATCH", self._repo_path(f"/issues/{issue_number}"), json={"body": body}
        )
        return Issue.from_api(data)

    async def close_issue(self, issue_number: int) -> Issue:
        data = await self._request(
            "PATCH", self._repo_path(f"/issues/{issue_number}"), json={"state": "closed"}
        )
        return Issue.from_api(data)

    async def pin_issue(self, issue_node_id: str) -> None:
        await self._graphql(_PIN_MUTATION, {"issueId": issue_node_id})

    async def unpin_issue(self, issue_node_id: str) -> None:
        await self._graphql(_UNPIN_MUTATION, {"issueId": issue_node_id})

    # Contents ---------------------------------------------------------------

    async def get_readme(self) -> tuple[str, str]:
        data = await self._request("GET", self._repo_path("/readme"))
        content = base64.b64decode(data.get("content", "")).decode("utf-8")
        return content, data.get("sha", "")

    async def update_readme(self, content: str, sha: str, message: str) -> None:
        await self._request(
            "PUT",
            self._repo_path("/contents/README.md"),
            json={
                "message": message,
                "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
                "sha": sha,
            },
        )
