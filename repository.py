"""
Notion repository.

Thin async adapter over the Notion database endpoints the sync engine needs:
retrieve, add properties, query with a cursor, and create pages. Every
transport failure is re-raised as a NotionError carrying a readable message.
"""

import logging
import os
from collections.abc import Awaitable
from typing import Any

import httpx
from notion_client import AsyncClient, RetryOptions
from notion_client.errors import NotionClientErrorBase

from errors import NotionError, format_notion_error

logger = logging.getLogger(__name__)

# Properties live on the database object and databases/{id}/query exists in
# this API version.
NOTION_VERSION = "2022-06-28"


def create_client(api_key: str) -> AsyncClient:
    """Build an authenticated Notion client from environment settings."""
    max_retries = int(os.getenv("NOTION_SYNC_MAX_RETRIES", "2"))
    timeout_ms = int(os.getenv("NOTION_SYNC_TIMEOUT_MS", "60000"))
    return AsyncClient(
        auth=api_key.strip(),
        notion_version=NOTION_VERSION,
        timeout_ms=timeout_ms,
        retry=RetryOptions(max_retries=max_retries),
    )


class NotionRepository:
    """Database-level operations against one Notion workspace."""

    def __init__(self, client: AsyncClient):
        self.client = client

    @classmethod
    def for_api_key(cls, api_key: str) -> "NotionRepository":
        return cls(create_client(api_key))

    async def retrieve_database(self, database_id: str) -> dict[str, Any]:
        """Fetch a database object including its property schema."""
        return await self._call(
            f"retrieve database {database_id}",
            self.client.request(path=f"databases/{database_id}", method="GET"),
        )

    async def update_database_properties(
        self, database_id: str, properties: dict[str, Any]
    ) -> None:
        """Add or change properties. A no-op when there is nothing to send."""
        if not properties:
            return
        logger.info(
            f"Creating properties on database {database_id}: {', '.join(properties)}"
        )
        await self._call(
            f"update database {database_id}",
            self.client.request(
                path=f"databases/{database_id}",
                method="PATCH",
                body={"properties": properties},
            ),
        )

    async def query_database(
        self,
        database_id: str,
        filter: dict[str, Any] | None = None,
        page_size: int = 100,
        start_cursor: str | None = None,
    ) -> dict[str, Any]:
        """Fetch one page of query results: `{results, has_more, next_cursor}`."""
        body: dict[str, Any] = {"page_size": page_size}
        if filter is not None:
            body["filter"] = filter
        if start_cursor:
            body["start_cursor"] = start_cursor
        return await self._call(
            f"query database {database_id}",
            self.client.request(
                path=f"databases/{database_id}/query", method="POST", body=body
            ),
        )

    async def create_page(
        self, database_id: str, properties: dict[str, Any]
    ) -> dict[str, Any]:
        """Create one record in the database."""
        return await self._call(
            f"create page in {database_id}",
            self.client.pages.create(
                parent={"database_id": database_id}, properties=properties
            ),
        )

    async def _call(self, action: str, request: Awaitable[Any]) -> Any:
        try:
            return await request
        except (NotionClientErrorBase, httpx.HTTPError) as e:
            message = format_notion_error(e)
            logger.error(f"Notion request failed ({action}): {message}")
            raise NotionError(message, code=getattr(e, "code", None)) from e
