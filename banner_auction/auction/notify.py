"""Best-effort delivery of GitHub side effects after state is persisted."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from .. import messages
from ..github.client import GitHubAPIError, GitHubClient

logger = logging.getLogger(__name__)


class Notifier:
    """Runs GitHub writes whose failure must never undo a persisted change."""

    def __init__(self, github: GitHubClient) -> None:
        self._github = github

    @property
    def enabled(self) -> bool:
        return bool(self._github.is_configured)

    async def attempt(self, tag: str, action: Callable[[], Awaitable[Any]]) -> bool:
        if not self.enabled:
            logger.debug("%s skipped: GitHub repository not configured", tag)
            return False
        try:
            await action()
        except GitHubAPIError:
            logger.warning("%s failed; persisted state is unaffected", tag, exc_info=True)
            return False
        return True

    async def comment(self, tag: str, issue_number: int, body: str) -> bool:
        marked = messages.mark_service_comment(body)
        return await self.attempt(tag, lambda: self._github.add_comment(issue_number, marked))

    async def edit_comment(self, tag: str, comment_id: int, rewrite: Callable[[str], str]) -> bool:
        async def _edit() -> None:
            comment = await self._github.get_comment(comment_id)
            body = rewrite(comment.body)
            if body != comment.body:
                await self._github.update_comment(comment_id, body)

        return await self.attempt(tag, _edit)

    async def refresh_issue(self, tag: str, issue_number: int, render: Callable[[str], str]) -> bool:
        async def _refresh() -> None:
            issue = await self._github.get_issue(issue_number)
            await self._github.update_issue_body(issue_number, render(issue.body))

        return await self.attempt(tag, _refresh)
