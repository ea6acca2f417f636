"""
Schema reconciliation for Notion databases.

Connecting a database runs one audit pass for its kind: classify the live
properties, create the ones we are allowed to create, re-read the database and
record what is still missing. Balance databases need a title, a number and a
date. Transactions databases need a date, a number, a text property for the
merchant and a separate rich_text property for the account name, plus the
reserved Sync ID property used for de-duplication.
"""

import logging
import re
from typing import Any

from errors import InputError
from mapping import suggest_mapping
from models import (
    DATE,
    NUMBER,
    RICH_TEXT,
    SYNC_ID_PROPERTY,
    TITLE,
    Database,
    DatabaseKind,
    DatabaseProperty,
    DatabaseSchemaStatus,
    TransactionsFieldMapping,
)
from repository import NotionRepository

logger = logging.getLogger(__name__)

BALANCE_REQUIRED_FIELDS = ("Account Name", "Balance", "Date")
TRANSACTION_REQUIRED_FIELDS = ("Date", "Amount", "Merchant/Description", "Account Name")

CURRENCY_NUMBER = {"number": {"format": "dollar"}}
DATE_SCHEMA: dict[str, Any] = {"date": {}}
RICH_TEXT_SCHEMA: dict[str, Any] = {"rich_text": {}}

BALANCE_AUTO_PROPERTIES = {
    "Balance": CURRENCY_NUMBER,
    "Date": DATE_SCHEMA,
}

TRANSACTION_AUTO_PROPERTIES = {
    "Amount": CURRENCY_NUMBER,
    "Date": DATE_SCHEMA,
    "Account Name": RICH_TEXT_SCHEMA,
    SYNC_ID_PROPERTY: RICH_TEXT_SCHEMA,
}

NO_TITLE_BALANCE_NOTE = (
    "Notion database is missing a title property and cannot be used for balance sync."
)
NO_TITLE_TRANSACTIONS_NOTE = (
    "Transactions database should keep one title property for Merchant/Description."
)
NO_TEXT_NOTE = "No text field is available for Merchant/Description."

_DATABASE_ID_PATTERN = re.compile(
    r"[0-9a-f]{32}|[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)


def normalize_notion_id(value: str) -> str:
    compact = value.replace("-", "").lower()
    if len(compact) != 32:
        return value
    return "-".join(
        (compact[:8], compact[8:12], compact[12:16], compact[16:20], compact[20:])
    )


def parse_database_id(link: str) -> str | None:
    """Extract the first Notion id from a link or raw id, hyphenated.

    Returns None when the input holds no 32-hex or UUID-shaped token.
    """
    match = _DATABASE_ID_PATTERN.search(link)
    if not match:
        return None
    return normalize_notion_id(match.group(0))


def required_fields_for(kind: DatabaseKind) -> tuple[str, ...]:
    return BALANCE_REQUIRED_FIELDS if kind == "balance" else TRANSACTION_REQUIRED_FIELDS


def _of_type(
    properties: list[DatabaseProperty], property_type: str
) -> list[DatabaseProperty]:
    return [p for p in properties if p.type == property_type]


def _text_properties(properties: list[DatabaseProperty]) -> list[DatabaseProperty]:
    return [p for p in _of_type(properties, RICH_TEXT) if p.name != SYNC_ID_PROPERTY]


def missing_balance_fields(properties: list[DatabaseProperty]) -> list[str]:
    missing = []
    if not _of_type(properties, TITLE):
        missing.append("Account Name")
    if not _of_type(properties, NUMBER):
        missing.append("Balance")
    if not _of_type(properties, DATE):
        missing.append("Date")
    return missing


def missing_transactions_fields(properties: list[DatabaseProperty]) -> list[str]:
    """Transactions fields that cannot be satisfied by the given properties.

    The title property is reserved for the merchant, so the account name needs
    its own rich_text property: one when a title exists, two (merchant and
    account name) when it does not. The Sync ID property never counts as a
    usable text field.
    """
    titles = _of_type(properties, TITLE)
    rich_texts = _text_properties(properties)

    missing = []
    if not titles and not rich_texts:
        missing.append("Merchant/Description")
    if not _of_type(properties, NUMBER):
        missing.append("Amount")
    if not _of_type(properties, DATE):
        missing.append("Date")
    if (titles and not rich_texts) or (not titles and len(rich_texts) < 2):
        missing.append("Account Name")
    return missing


def missing_fields_for(
    kind: DatabaseKind, properties: list[DatabaseProperty]
) -> list[str]:
    if kind == "balance":
        return missing_balance_fields(properties)
    return missing_transactions_fields(properties)


def build_schema_status(
    kind: DatabaseKind,
    database: Database,
    auto_created_fields: list[str],
    notes: list[str],
) -> DatabaseSchemaStatus:
    return DatabaseSchemaStatus.build(
        missing_fields_for(kind, database.properties), auto_created_fields, notes
    )


def balance_properties_to_create(database: Database) -> dict[str, Any]:
    """Balance/Date are created when no property of their type exists."""
    to_create: dict[str, Any] = {}
    if not database.find_by_type(NUMBER):
        to_create["Balance"] = BALANCE_AUTO_PROPERTIES["Balance"]
    if not database.find_by_type(DATE):
        to_create["Date"] = BALANCE_AUTO_PROPERTIES["Date"]
    return to_create


def transactions_properties_to_create(database: Database) -> dict[str, Any]:
    """Transactions properties are created when absent by exact name."""
    return {
        name: definition
        for name, definition in TRANSACTION_AUTO_PROPERTIES.items()
        if not database.find_by_name(name)
    }


class SchemaAuditor:
    """One reconciliation pass for a (kind, database) pair."""

    def __init__(self, repository: NotionRepository, kind: DatabaseKind, link: str):
        self.repository = repository
        self.kind = kind
        self.link = link

    async def audit(self, response: dict[str, Any]) -> Database:
        """Reconcile the schema described by `response` and return the result.

        Property creation failures propagate; no status is produced for a
        database whose schema could not be brought up to date.
        """
        database = Database.from_notion(response, self.link)

        if self.kind == "balance":
            to_create = balance_properties_to_create(database)
        else:
            to_create = transactions_properties_to_create(database)

        if to_create:
            await self.repository.update_database_properties(database.id, to_create)
            database = Database.from_notion(
                await self.repository.retrieve_database(database.id), self.link
            )

        status = build_schema_status(
            self.kind, database, list(to_create), self._notes(database)
        )
        if not status.is_valid:
            logger.info(
                f"{self.kind} database {database.id} is missing: "
                f"{', '.join(status.missing_fields)}"
            )
        return database.model_copy(update={"schema_status": status})

    def _notes(self, database: Database) -> list[str]:
        has_title = database.find_by_type(TITLE) is not None
        if self.kind == "balance":
            return [] if has_title else [NO_TITLE_BALANCE_NOTE]

        notes = []
        if not has_title:
            notes.append(NO_TITLE_TRANSACTIONS_NOTE)
            if not _text_properties(database.properties):
                notes.append(NO_TEXT_NOTE)
        return notes


async def connect_database(
    repository: NotionRepository, link: str, kind: DatabaseKind
) -> tuple[Database, TransactionsFieldMapping | None]:
    """Resolve, audit and (for transactions) suggest a mapping for a database."""
    database_id = parse_database_id(link)
    if not database_id:
        raise InputError("Could not parse a database id from the provided Notion link.")

    logger.info(f"Connecting {kind} database {database_id}")
    response = await repository.retrieve_database(database_id)
    database = await SchemaAuditor(repository, kind, link).audit(response)

    suggested = suggest_mapping(database) if kind == "transactions" else None
    return database, suggested


async def ensure_sync_id_property(
    repository: NotionRepository, database: Database
) -> Database:
    """Make sure the transactions database has its Sync ID property.

    A no-op when the property already exists by name. Otherwise it is created,
    the database is re-read, and Sync ID is merged into the recorded
    auto-created fields.
    """
    if database.find_by_name(SYNC_ID_PROPERTY):
        return database

    await repository.update_database_properties(
        database.id, {SYNC_ID_PROPERTY: TRANSACTION_AUTO_PROPERTIES[SYNC_ID_PROPERTY]}
    )
    response = await repository.retrieve_database(database.id)

    status = database.schema_status or DatabaseSchemaStatus.build([])
    return Database.from_notion(
        response, database.link, status.with_auto_created(SYNC_ID_PROPERTY)
    )
