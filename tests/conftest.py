"""
Test fixtures for the Notion sync server tests.

This module contains pytest fixtures and factories for Notion API responses so
the sync engine can be tested without calling the actual Notion API.
"""

import sys
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import fastmcp
import pytest
from fastmcp.client import Client, FastMCPTransport

# Add parent directory to path to import server module
sys.path.insert(0, str(Path(__file__).parent.parent))
import server
from models import (
    Account,
    Database,
    DatabaseSchemaStatus,
    SyncSettings,
    Transaction,
    TransactionsFieldMapping,
)
from repository import NotionRepository
from settings import MemorySettingsStore
from sync import NotionSync

BALANCE_DATABASE_ID = "a1b2c3d4-a1b2-c3d4-a1b2-c3d4a1b2c3d4"
TRANSACTIONS_DATABASE_ID = "0f0e0d0c-0b0a-0908-0706-050403020100"

TRANSACTIONS_PROPERTIES = {
    "Name": "title",
    "Date": "date",
    "Amount": "number",
    "Account Name": "rich_text",
    "Sync ID": "rich_text",
}
BALANCE_PROPERTIES = {
    "Account": "title",
    "Balance": "number",
    "Date": "date",
}


@pytest.fixture
def notion_repository() -> MagicMock:
    """Mock Notion repository with AsyncMock methods."""
    return MagicMock(spec=NotionRepository)


@pytest.fixture
def settings_store() -> MemorySettingsStore:
    return MemorySettingsStore()


@pytest.fixture
def notion_sync(
    notion_repository: MagicMock, settings_store: MemorySettingsStore
) -> NotionSync:
    """Sync state with an API key set and no databases connected."""
    return NotionSync(
        settings_store,
        repository_factory=lambda api_key: notion_repository,
        settings=SyncSettings(notion_api_key="secret_test"),
    )


@pytest.fixture
def connected_sync(notion_sync: NotionSync) -> NotionSync:
    """Sync state with valid balance and transactions databases connected."""
    notion_sync.settings = notion_sync.settings.model_copy(
        update={
            "balance_database": create_database(
                id=BALANCE_DATABASE_ID,
                title="Balances",
                properties=BALANCE_PROPERTIES,
            ),
            "transactions_database": create_database(
                id=TRANSACTIONS_DATABASE_ID,
                title="Transactions",
                properties=TRANSACTIONS_PROPERTIES,
            ),
            "transactions_field_mapping": TransactionsFieldMapping(
                date_property="Date",
                amount_property="Amount",
                merchant_property="Name",
                account_name_property="Account Name",
            ),
        }
    )
    return notion_sync


@pytest.fixture
def mock_sync(notion_sync: NotionSync) -> Generator[NotionSync, None, None]:
    """Install the test sync state as the server's process-wide state."""
    with patch("server._sync", notion_sync):
        yield notion_sync


@pytest.fixture
async def mcp_client(
    mock_sync: NotionSync,
) -> AsyncGenerator[Client[FastMCPTransport], None]:
    """In-memory MCP client connected to the server."""
    async with fastmcp.Client(server.mcp) as client:
        yield client


# Test data factories
def create_notion_property(
    *, name: str, property_type: str, id: str | None = None
) -> dict[str, Any]:
    """Create a Notion property schema entry."""
    return {
        "id": id or f"prop-{name.lower().replace(' ', '-')}",
        "name": name,
        "type": property_type,
        property_type: {},
    }


def create_notion_database(
    *,
    id: str = TRANSACTIONS_DATABASE_ID,
    title: str = "Transactions",
    properties: dict[str, str] | None = None,
    icon: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create a Notion database object as returned by the API.

    `properties` maps property names to Notion property types.
    """
    if properties is None:
        properties = TRANSACTIONS_PROPERTIES
    return {
        "object": "database",
        "id": id,
        "title": [{"type": "text", "plain_text": title}],
        "icon": icon,
        "properties": {
            name: create_notion_property(name=name, property_type=property_type)
            for name, property_type in properties.items()
        },
    }


def create_database(
    *,
    id: str = TRANSACTIONS_DATABASE_ID,
    title: str = "Transactions",
    properties: dict[str, str] | None = None,
    link: str | None = None,
    schema_status: DatabaseSchemaStatus | None = None,
) -> Database:
    """Create an audited Database model with a valid schema by default."""
    return Database.from_notion(
        create_notion_database(id=id, title=title, properties=properties),
        link if link is not None else f"https://www.notion.so/{id.replace('-', '')}",
        schema_status or DatabaseSchemaStatus.build([]),
    )


def create_query_page(
    *, sync_id: str | None, id: str = "page-1", **properties: Any
) -> dict[str, Any]:
    """Create a page as returned by a database query."""
    page_properties = dict(properties)
    if sync_id is not None:
        page_properties["Sync ID"] = {
            "type": "rich_text",
            "rich_text": [{"type": "text", "plain_text": sync_id}],
        }
    return {"object": "page", "id": id, "properties": page_properties}


def create_query_response(
    pages: list[dict[str, Any]], *, next_cursor: str | None = None
) -> dict[str, Any]:
    return {
        "object": "list",
        "results": pages,
        "has_more": next_cursor is not None,
        "next_cursor": next_cursor,
    }


def create_transaction(
    *,
    merchant: str = "Coffee Shop",
    date: str = "2024-01-05",
    amount_value: float = -4.5,
    account_name: str = "Visa 1234",
    **kwargs: Any,
) -> Transaction:
    """Create a Transaction for testing with sensible defaults."""
    return Transaction(
        merchant=merchant,
        date=date,
        amount_value=amount_value,
        account_name=account_name,
        **kwargs,
    )


def create_account(
    *,
    name: str = "Chequing",
    balance: str = "$1,234.56",
    group: str | None = None,
) -> Account:
    """Create an Account for testing with sensible defaults."""
    return Account(name=name, balance=balance, group=group)
