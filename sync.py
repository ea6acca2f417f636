"""
Sync orchestration.

`NotionSync` owns the application state (persisted settings plus the
transient loading/error/result fields) and is the only thing that changes it.
Every command returns an explicit result: remote and input failures come back
as error outcomes instead of escaping to the caller.
"""

import asyncio
import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import schema
from errors import InputError, NotionError, readable_error
from mapping import FIELD_RULES, field_options, normalize_mapping, validate_mapping
from models import (
    DATE,
    NUMBER,
    SYNC_ID_PROPERTY,
    TITLE,
    Account,
    Database,
    DatabaseConnection,
    DatabaseKind,
    MappingState,
    SyncOutcome,
    SyncSettings,
    SyncStatus,
    Transaction,
    TransactionsFieldMapping,
)
from repository import NotionRepository
from settings import SettingsStore, load_settings, save_settings
from sync_ids import (
    DateRange,
    existing_sync_ids,
    plan_writes,
    transactions_date_range,
)

logger = logging.getLogger(__name__)

MISSING_API_KEY = "Enter your Notion API key first."
MISSING_LINK = "Paste a Notion database block link first."
NO_DATE_RANGE = (
    "Could not determine the transactions date range from the current page."
)
BALANCE_SCHEMA_INCOMPLETE = "Balance database schema is still incomplete."
TRANSACTIONS_SCHEMA_INCOMPLETE = "Transactions database schema is still incomplete."

BALANCE_SYNC_FAILED = "Notion sync failed: "
TRANSACTIONS_SYNC_FAILED = "Transactions sync failed: "
CLIENT_INIT_FAILED = "Notion client init failed: "

NOT_CONNECTED = "Not connected"
READY = "Ready"
NEEDS_ATTENTION = "Needs attention"
MAPPING_INCOMPLETE = "Mapping incomplete"

_MINUS_SIGNS = str.maketrans({"−": "-", "–": "-"})
_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")

RepositoryFactory = Callable[[str], NotionRepository]


def parse_currency(value: str) -> float:
    """Parse a displayed balance like '-$1,234.56' or '−1,234.56 CAD'.

    Everything but digits, dots and minus signs is dropped, then the longest
    leading number is read, so '1,234.56-' is 1234.56 and '1.2.3' is 1.2.
    No leading number at all counts as zero.
    """
    cleaned = _NON_NUMERIC.sub("", value.translate(_MINUS_SIGNS))
    match = _LEADING_NUMBER.match(cleaned)
    return float(match.group()) if match else 0.0


def rich_text(content: str) -> list[dict[str, Any]]:
    return [{"type": "text", "text": {"content": content}}]


def filter_accounts(accounts: list[Account], selected: list[str]) -> list[Account]:
    """Accounts in a selected group. Ungrouped accounts always pass."""
    if not selected:
        return list(accounts)
    return [a for a in accounts if a.group is None or a.group in selected]


def database_status_text(
    database: Database | None, mapping_errors: list[str] | None = None
) -> str:
    if database is None:
        return NOT_CONNECTED
    if database.schema_status is None or not database.schema_status.is_valid:
        return NEEDS_ATTENTION
    if mapping_errors:
        return MAPPING_INCOMPLETE
    return READY


def balance_page_properties(
    database: Database, account: Account, timestamp: str
) -> dict[str, Any]:
    title = database.find_by_type(TITLE)
    number = database.find_by_type(NUMBER)
    date = database.find_by_type(DATE)
    if title is None or number is None or date is None:
        raise InputError(BALANCE_SCHEMA_INCOMPLETE)
    return {
        title.name: {"title": rich_text(account.name)},
        number.name: {"number": parse_currency(account.balance)},
        date.name: {"date": {"start": timestamp}},
    }


def transaction_page_properties(
    mapping: TransactionsFieldMapping,
    merchant_type: str,
    transaction: Transaction,
    sync_id: str,
) -> dict[str, Any]:
    merchant_key = "title" if merchant_type == TITLE else "rich_text"
    return {
        mapping.date_property: {"date": {"start": transaction.date}},
        mapping.amount_property: {"number": transaction.amount_value},
        mapping.merchant_property: {merchant_key: rich_text(transaction.merchant)},
        mapping.account_name_property: {
            "rich_text": rich_text(transaction.account_name)
        },
        SYNC_ID_PROPERTY: {"rich_text": rich_text(sync_id)},
    }


def transactions_result_message(written: int, skipped: int) -> str:
    if written == 0:
        return f"Created 0 transactions, skipped {skipped} duplicates."
    return f"Created {written} transaction(s), skipped {skipped} duplicate(s)."


class NotionSync:
    """Application state plus the commands that change it."""

    def __init__(
        self,
        store: SettingsStore,
        repository_factory: RepositoryFactory = NotionRepository.for_api_key,
        settings: SyncSettings | None = None,
    ):
        self.store = store
        self.repository_factory = repository_factory
        self.settings = settings if settings is not None else load_settings(store)
        self.is_loading = False
        self.error = ""
        self.sync_result_message = ""
        self.section_errors: dict[DatabaseKind, str] = {}

    # Settings

    def _persist(self, **values: Any) -> None:
        try:
            save_settings(self.store, **values)
        except OSError as e:
            logger.warning(f"Could not save settings ({', '.join(values)}): {e}")

    def _update(self, **values: Any) -> None:
        self.settings = self.settings.model_copy(update=values)
        self._persist(**values)

    def set_api_key(self, api_key: str) -> None:
        self._update(notion_api_key=api_key.strip())

    def save_link_draft(self, kind: DatabaseKind, link: str) -> None:
        self._update(**{f"{kind}_database_link_draft": link})

    def set_account_groups(
        self, selected: list[str], available: dict[str, str] | None = None
    ) -> None:
        values: dict[str, Any] = {"selected_accounts": list(selected)}
        if available is not None:
            values["available_accounts"] = dict(available)
        self._update(**values)

    def _repository(self) -> NotionRepository:
        api_key = self.settings.notion_api_key.strip()
        if not api_key:
            raise InputError(MISSING_API_KEY)
        try:
            return self.repository_factory(api_key)
        except (TypeError, ValueError) as e:
            raise NotionError(f"{CLIENT_INIT_FAILED}{readable_error(e)}") from e

    # Connection

    async def connect_database(
        self, kind: DatabaseKind, link: str
    ) -> DatabaseConnection:
        """Resolve, audit and store the database behind `link`.

        On failure the previously connected database stays in place and the
        error is recorded against the section.
        """
        self.section_errors.pop(kind, None)
        link = link.strip()
        self.save_link_draft(kind, link)

        try:
            repository = self._repository()
            if not link:
                raise InputError(MISSING_LINK)
            database, suggested = await schema.connect_database(
                repository, link, kind
            )
        except (InputError, NotionError) as e:
            message = str(e)
            logger.info(f"Could not connect {kind} database: {message}")
            self.section_errors[kind] = message
            return DatabaseConnection(outcome=SyncOutcome.error(message))

        values: dict[str, Any] = {f"{kind}_database": database}
        if kind == "transactions":
            values["transactions_field_mapping"] = (
                suggested or TransactionsFieldMapping()
            )
        self._update(**values)

        logger.info(f"Connected {kind} database {database.id} ({database.title})")
        return DatabaseConnection(
            outcome=SyncOutcome.success(f"Connected {database.title}."),
            database=database,
            suggested_mapping=suggested,
        )

    def disconnect_database(self, kind: DatabaseKind) -> None:
        values: dict[str, Any] = {
            f"{kind}_database": None,
            f"{kind}_database_link_draft": "",
        }
        if kind == "transactions":
            values["transactions_field_mapping"] = None
        self.section_errors.pop(kind, None)
        self._update(**values)
        logger.info(f"Disconnected {kind} database")

    # Mapping

    @property
    def mapping(self) -> TransactionsFieldMapping | None:
        return self.settings.transactions_field_mapping

    def mapping_errors(self) -> list[str]:
        return validate_mapping(self.mapping, self.settings.transactions_database)

    def mapping_state(self) -> MappingState:
        options = field_options(self.settings.transactions_database)
        return MappingState(
            mapping=normalize_mapping(self.mapping),
            errors=self.mapping_errors(),
            date_options=options["date_property"],
            amount_options=options["amount_property"],
            merchant_options=options["merchant_property"],
            account_name_options=options["account_name_property"],
        )

    def update_mapping_field(self, field: str, property_name: str) -> MappingState:
        """Point one mapping field at a property, then re-validate and save."""
        fields = [name for name, _ in FIELD_RULES]
        if field not in fields:
            raise InputError(
                f"Unknown mapping field {field!r}, expected one of {', '.join(fields)}"
            )
        mapping = normalize_mapping(self.mapping).model_copy(
            update={field: property_name}
        )
        self._update(transactions_field_mapping=mapping)
        return self.mapping_state()

    # Status

    def status(self) -> SyncStatus:
        settings = self.settings
        balance = settings.balance_database
        transactions = settings.transactions_database
        mapping_errors = self.mapping_errors()
        has_api_key = bool(settings.notion_api_key.strip())

        balance_status = database_status_text(balance)
        transactions_status = database_status_text(transactions, mapping_errors)

        if mapping_errors:
            save_hint = mapping_errors[0]
        elif balance_status == NEEDS_ATTENTION:
            save_hint = BALANCE_SCHEMA_INCOMPLETE
        elif transactions_status == NEEDS_ATTENTION:
            save_hint = TRANSACTIONS_SCHEMA_INCOMPLETE
        else:
            save_hint = ""

        return SyncStatus(
            balance_status=balance_status,
            transactions_status=transactions_status,
            balance_database_title=balance.title if balance else "",
            transactions_database_title=transactions.title if transactions else "",
            balance_schema=balance.schema_status if balance else None,
            transactions_schema=transactions.schema_status if transactions else None,
            mapping_errors=mapping_errors,
            save_hint=save_hint,
            can_sync_balances=has_api_key and balance_status == READY,
            can_sync_transactions=has_api_key and transactions_status == READY,
            has_api_key=has_api_key,
            balance_database_link_draft=settings.balance_database_link_draft,
            transactions_database_link_draft=settings.transactions_database_link_draft,
            available_accounts=settings.available_accounts,
            selected_accounts=settings.selected_accounts,
            is_loading=self.is_loading,
            error=self.error,
            sync_result_message=self.sync_result_message,
        )

    # Sync

    def _begin(self, action: str) -> None:
        logger.info(f"Starting {action}")
        self.is_loading = True
        self.error = ""
        self.sync_result_message = ""

    def _finish(self, outcome: SyncOutcome) -> SyncOutcome:
        self.is_loading = False
        if outcome.ok:
            self.sync_result_message = outcome.message
            logger.info(outcome.message)
        else:
            self.error = outcome.message
            logger.warning(outcome.message)
        return outcome

    def _balance_targets(
        self, accounts: list[Account]
    ) -> tuple[Database, list[Account]]:
        if not self.settings.notion_api_key.strip():
            raise InputError(MISSING_API_KEY)
        database = self.settings.balance_database
        if database is None:
            raise InputError("Connect a Notion balance database first.")
        if database.schema_status is None or not database.schema_status.is_valid:
            raise InputError(BALANCE_SCHEMA_INCOMPLETE)
        selected = filter_accounts(accounts, self.settings.selected_accounts)
        if not selected:
            raise InputError("No accounts to sync.")
        return database, selected

    async def sync_balances(self, accounts: list[Account]) -> SyncOutcome:
        """Write one balance page per selected account.

        Pages are created concurrently and the batch fails as a whole.
        """
        self._begin("balance sync")
        try:
            database, accounts = self._balance_targets(accounts)
            repository = self._repository()
        except (InputError, NotionError) as e:
            return self._finish(SyncOutcome.error(str(e)))

        timestamp = datetime.now(UTC).isoformat()
        try:
            pages = [
                balance_page_properties(database, account, timestamp)
                for account in accounts
            ]
            await asyncio.gather(
                *(repository.create_page(database.id, page) for page in pages)
            )
        except (InputError, NotionError) as e:
            return self._finish(SyncOutcome.error(f"{BALANCE_SYNC_FAILED}{e}"))

        written = len(accounts)
        return self._finish(
            SyncOutcome.success(f"Created {written} balance item(s).", written=written)
        )

    def _transaction_targets(
        self, transactions: list[Transaction]
    ) -> tuple[Database, TransactionsFieldMapping, DateRange]:
        if not self.settings.notion_api_key.strip():
            raise InputError(MISSING_API_KEY)
        database = self.settings.transactions_database
        if database is None:
            raise InputError("Connect a Notion transactions database first.")
        if errors := self.mapping_errors():
            raise InputError(errors[0])
        if not transactions:
            raise InputError("No transactions to sync.")
        date_range = transactions_date_range(transactions)
        if date_range is None:
            raise InputError(NO_DATE_RANGE)
        return database, normalize_mapping(self.mapping), date_range

    async def sync_transactions(self, transactions: list[Transaction]) -> SyncOutcome:
        """Write every transaction whose sync id is not already in Notion."""
        self._begin("transactions sync")
        try:
            database, mapping, date_range = self._transaction_targets(transactions)
            repository = self._repository()
        except (InputError, NotionError) as e:
            return self._finish(SyncOutcome.error(str(e)))

        try:
            written, skipped = await self._write_transactions(
                repository, database, mapping, date_range, transactions
            )
        except (InputError, NotionError) as e:
            return self._finish(SyncOutcome.error(f"{TRANSACTIONS_SYNC_FAILED}{e}"))

        return self._finish(
            SyncOutcome.success(
                transactions_result_message(written, skipped),
                written=written,
                skipped=skipped,
            )
        )

    async def _write_transactions(
        self,
        repository: NotionRepository,
        database: Database,
        mapping: TransactionsFieldMapping,
        date_range: DateRange,
        transactions: list[Transaction],
    ) -> tuple[int, int]:
        refreshed = await schema.ensure_sync_id_property(repository, database)
        if refreshed is not database:
            self._update(transactions_database=refreshed)
            database = refreshed

        merchant = database.find_by_name(mapping.merchant_property)
        if merchant is None:
            raise InputError(
                f"{mapping.merchant_property} is no longer available in the database."
            )

        existing = await existing_sync_ids(
            repository, database.id, mapping.date_property, date_range
        )

        plan = plan_writes(transactions, existing)
        await asyncio.gather(
            *(
                repository.create_page(
                    database.id,
                    transaction_page_properties(
                        mapping, merchant.type, transaction, sync_id
                    ),
                )
                for transaction, sync_id in plan.to_write
            )
        )
        return len(plan.to_write), plan.skipped
