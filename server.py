import logging
import os
from typing import Literal

from fastmcp import FastMCP

import schema
from errors import InputError
from models import (
    Account,
    DatabaseConnection,
    MappingState,
    SyncOutcome,
    SyncStatus,
    Transaction,
)
from settings import JsonFileSettingsStore, default_settings_path
from sync import NotionSync

logger = logging.getLogger(__name__)

mcp = FastMCP[None](
    name="Notion Sync",
    instructions="""
    Syncs bank account balances and card transactions into the user's Notion
    databases. There are two databases: a balance database (one row per account
    per sync) and a transactions database (one row per transaction, de-duplicated
    by a content fingerprint stored in its "Sync ID" property).

    Before syncing, a Notion API key must be set and each database connected from
    a Notion link. Connecting audits the database schema, creates the properties
    it can, and reports anything that still needs the user's attention. For the
    transactions database, check get_sync_status and the field mapping before
    syncing; a mapping error blocks transaction sync.

    Sync results and errors come back as outcomes with a human-readable message
    that should be shown to the user as-is.
    """,
)

_sync: NotionSync | None = None


def get_sync() -> NotionSync:
    """Get the process-wide sync state, loading settings on first use."""
    global _sync
    if _sync is None:
        path = default_settings_path()
        logger.info(f"Loading settings from {path}")
        _sync = NotionSync(JsonFileSettingsStore(path))
        if api_key := os.getenv("NOTION_API_KEY"):
            _sync.settings = _sync.settings.model_copy(
                update={"notion_api_key": api_key.strip()}
            )
    return _sync


DatabaseKindParam = Literal["balance", "transactions"]
MappingField = Literal[
    "date_property", "amount_property", "merchant_property", "account_name_property"
]


@mcp.tool()
async def parse_database_link(link: str) -> str:
    """Extract the Notion database id from a link.

    Accepts a full Notion URL, a compact 32-character id or a hyphenated id.

    Args:
        link: Notion database link or id

    Returns:
        The database id in hyphenated form
    """
    database_id = schema.parse_database_id(link)
    if database_id is None:
        raise InputError("Could not parse a database id from the provided Notion link.")
    return database_id


@mcp.tool()
async def set_notion_api_key(api_key: str) -> SyncStatus:
    """Store the Notion integration secret used for all Notion calls.

    Args:
        api_key: Notion internal integration secret

    Returns:
        Current sync status
    """
    sync = get_sync()
    sync.set_api_key(api_key)
    return sync.status()


@mcp.tool()
async def save_database_link_draft(kind: DatabaseKindParam, link: str) -> SyncStatus:
    """Remember a database link the user is editing, without connecting it.

    Args:
        kind: Which database the link is for
        link: Link text as entered so far

    Returns:
        Current sync status
    """
    sync = get_sync()
    sync.save_link_draft(kind, link)
    return sync.status()


@mcp.tool()
async def connect_database(kind: DatabaseKindParam, link: str) -> DatabaseConnection:
    """Connect a Notion database and reconcile its schema.

    Missing properties that can be created (amounts, dates, account names and
    the Sync ID) are added to the database. A title property is never created;
    its absence is reported in the schema notes. For a transactions database a
    field mapping is suggested and stored.

    Args:
        kind: "balance" or "transactions"
        link: Notion database link or id

    Returns:
        DatabaseConnection with the outcome, the audited database and any
        suggested mapping
    """
    return await get_sync().connect_database(kind, link)


@mcp.tool()
async def disconnect_database(kind: DatabaseKindParam) -> SyncStatus:
    """Forget a connected database (and, for transactions, its field mapping)."""
    sync = get_sync()
    sync.disconnect_database(kind)
    return sync.status()


@mcp.tool()
async def get_transactions_field_mapping() -> MappingState:
    """Get the transactions field mapping, its errors and the compatible
    properties for each field."""
    return get_sync().mapping_state()


@mcp.tool()
async def update_transactions_field_mapping(
    field: MappingField, property_name: str
) -> MappingState:
    """Map one transactions field to a Notion property.

    Args:
        field: Mapping field to change
        property_name: Name of the Notion property to use

    Returns:
        MappingState after the change, including any validation errors
    """
    return get_sync().update_mapping_field(field, property_name)


@mcp.tool()
async def select_account_groups(
    selected: list[str], available: dict[str, str] | None = None
) -> SyncStatus:
    """Choose which account groups take part in balance sync.

    Args:
        selected: Group keys to sync; an empty list syncs every account
        available: Optional group key to title mapping, replacing the known groups

    Returns:
        Current sync status
    """
    sync = get_sync()
    sync.set_account_groups(selected, available)
    return sync.status()


@mcp.tool()
async def get_sync_status() -> SyncStatus:
    """Get database readiness, mapping errors and the latest sync result."""
    return get_sync().status()


@mcp.tool()
async def sync_balances(accounts: list[Account]) -> SyncOutcome:
    """Write account balances to the balance database.

    One page is created per account in a selected group, stamped with the
    current time. If any page fails to write the whole batch is reported as
    failed.

    Args:
        accounts: Accounts with their displayed balances

    Returns:
        SyncOutcome with the number of pages written
    """
    return await get_sync().sync_balances(accounts)


@mcp.tool()
async def sync_transactions(transactions: list[Transaction]) -> SyncOutcome:
    """Write new transactions to the transactions database.

    Transactions already present in Notion, or repeated within the batch, are
    skipped based on their merchant, date, amount and account name.

    Args:
        transactions: Transactions to sync

    Returns:
        SyncOutcome with written and skipped counts
    """
    return await get_sync().sync_transactions(transactions)
