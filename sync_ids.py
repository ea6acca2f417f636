"""
Content-derived identity for transactions.

A transaction's sync id is the SHA-256 of its normalised merchant, date,
two-decimal amount and normalised account name. The id is written to the
Sync ID property of every page we create, and is the only key used to tell
whether a transaction has already been synced.
"""

import hashlib
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from notion_client.helpers import async_iterate_paginated_api

from models import SYNC_ID_PROPERTY, Transaction
from repository import NotionRepository

logger = logging.getLogger(__name__)

QUERY_PAGE_SIZE = 100


def normalize_sync_id_part(value: str) -> str:
    return " ".join(value.split()).lower()


def format_amount(amount: float | Decimal) -> str:
    """Two-decimal rendering with ties rounded away from zero.

    The exact binary value is rounded, so 1.005 renders as 1.00 and 0.125 as
    0.13. Negative amounts that round to zero keep their sign (-0.001 renders
    as -0.00); only an exact zero, signed or not, renders as 0.00.
    """
    value = Decimal(amount)
    if value.is_zero():
        return "0.00"
    rounded = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{rounded:.2f}"


def transaction_sync_id(transaction: Transaction) -> str:
    seed = "|".join(
        (
            normalize_sync_id_part(transaction.merchant),
            transaction.date,
            format_amount(transaction.amount_value),
            normalize_sync_id_part(transaction.account_name),
        )
    )
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class DateRange:
    start: str
    end: str


def transactions_date_range(transactions: list[Transaction]) -> DateRange | None:
    dates = sorted(t.date for t in transactions if t.date)
    if not dates:
        return None
    return DateRange(start=dates[0], end=dates[-1])


def plain_text(page_property: Any) -> str:
    """Concatenated plain text of a title or rich_text page property."""
    if not isinstance(page_property, dict):
        return ""
    key = "title" if page_property.get("type") == "title" else "rich_text"
    fragments = page_property.get(key) or []
    return "".join(
        fragment.get("plain_text") or ""
        for fragment in fragments
        if isinstance(fragment, dict)
    ).strip()


def date_range_filter(date_property: str, date_range: DateRange) -> dict[str, Any]:
    return {
        "and": [
            {"property": date_property, "date": {"on_or_after": date_range.start}},
            {"property": date_property, "date": {"on_or_before": date_range.end}},
        ]
    }


async def existing_sync_ids(
    repository: NotionRepository,
    database_id: str,
    date_property: str,
    date_range: DateRange,
) -> set[str]:
    """Collect the Sync ID of every page dated inside `date_range`.

    Pages are fetched one cursor at a time; a sync id can't match outside the
    batch's own date span, so the range filter loses nothing.
    """
    sync_ids = set()
    pages = 0
    async for page in async_iterate_paginated_api(
        repository.query_database,
        database_id=database_id,
        filter=date_range_filter(date_property, date_range),
        page_size=QUERY_PAGE_SIZE,
    ):
        pages += 1
        properties = page.get("properties") or {}
        if sync_id := plain_text(properties.get(SYNC_ID_PROPERTY)):
            sync_ids.add(sync_id)

    logger.info(
        f"Found {len(sync_ids)} synced transactions among {pages} pages "
        f"between {date_range.start} and {date_range.end}"
    )
    return sync_ids


@dataclass
class DedupPlan:
    to_write: list[tuple[Transaction, str]]
    skipped: int


def plan_writes(transactions: list[Transaction], existing: set[str]) -> DedupPlan:
    """Keep the first occurrence of every sync id not already in Notion."""
    seen = set(existing)
    to_write = []
    for transaction in transactions:
        sync_id = transaction_sync_id(transaction)
        if sync_id in seen:
            continue
        seen.add(sync_id)
        to_write.append((transaction, sync_id))
    return DedupPlan(to_write=to_write, skipped=len(transactions) - len(to_write))
