"""
Transactions field mapping.

A mapping ties the four logical transaction fields to Notion property names.
`suggest_mapping` proposes one from a freshly audited database and
`validate_mapping` checks a (possibly user-edited) mapping against the live
schema.
"""

from typing import Any

from models import (
    DATE,
    NUMBER,
    RICH_TEXT,
    SYNC_ID_PROPERTY,
    TITLE,
    Database,
    DatabaseProperty,
    TransactionsFieldMapping,
)

# Checked in this order, so errors come out in a stable order too.
FIELD_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("date_property", (DATE,)),
    ("amount_property", (NUMBER,)),
    ("merchant_property", (TITLE, RICH_TEXT)),
    ("account_name_property", (RICH_TEXT,)),
]

MAPPING_REQUIRED_ERROR = "Field mapping is required for the transactions database."
DUPLICATE_MAPPING_ERROR = (
    "Each transactions field must map to a different Notion property."
)


def _named(
    candidates: list[DatabaseProperty], *names: str
) -> DatabaseProperty | None:
    for name in names:
        for candidate in candidates:
            if candidate.name == name:
                return candidate
    return None


def suggest_mapping(database: Database) -> TransactionsFieldMapping | None:
    """Propose a default mapping, or None when the schema can't support one.

    Name matches ("Date", "Amount", "Merchant", "Description", "Account Name")
    are only taken among properties of a compatible type. The reserved Sync ID
    property is never offered. A schema where one property would have to
    serve two roles yields None rather than a double mapping.
    """
    dates = database.of_types(DATE)
    numbers = database.of_types(NUMBER)
    rich_texts = [
        p for p in database.of_types(RICH_TEXT) if p.name != SYNC_ID_PROPERTY
    ]
    title = database.find_by_type(TITLE)

    date = _named(dates, "Date") or next(iter(dates), None)
    amount = _named(numbers, "Amount") or next(iter(numbers), None)
    merchant = (
        title
        or _named(rich_texts, "Merchant", "Description")
        or next((p for p in rich_texts if p.name != "Account Name"), None)
    )
    merchant_name = merchant.name if merchant else None
    account_name = _named(
        [p for p in rich_texts if p.name != merchant_name], "Account Name"
    ) or next((p for p in rich_texts if p.name != merchant_name), None)

    if not (date and amount and merchant and account_name):
        return None

    names = [date.name, amount.name, merchant.name, account_name.name]
    if len(set(names)) != len(names):
        return None

    return TransactionsFieldMapping(
        date_property=date.name,
        amount_property=amount.name,
        merchant_property=merchant.name,
        account_name_property=account_name.name,
    )


def validate_mapping(
    mapping: TransactionsFieldMapping | None, database: Database | None
) -> list[str]:
    """Return the ordered list of problems with `mapping`; empty means valid."""
    if database is None:
        return []
    if mapping is None:
        return [MAPPING_REQUIRED_ERROR]

    errors = []
    for field, allowed_types in FIELD_RULES:
        property_name = getattr(mapping, field)
        if not property_name:
            errors.append(f"{field} is required.")
            continue

        prop = database.find_by_name(property_name)
        if prop is None:
            errors.append(f"{property_name} is no longer available in the database.")
            continue

        if prop.type not in allowed_types:
            errors.append(
                f"{property_name} has type {prop.type}, "
                f"expected {' or '.join(allowed_types)}."
            )

    mapped = [value for value in mapping.values() if value]
    if len(set(mapped)) != len(mapped):
        errors.append(DUPLICATE_MAPPING_ERROR)

    return errors


def compatible_properties(
    database: Database | None, *property_types: str
) -> list[DatabaseProperty]:
    if database is None:
        return []
    return database.of_types(*property_types)


def field_options(database: Database | None) -> dict[str, list[str]]:
    """Property names a user may pick for each mapping field."""
    return {
        field: [p.name for p in compatible_properties(database, *allowed_types)]
        for field, allowed_types in FIELD_RULES
    }


def normalize_mapping(raw: Any) -> TransactionsFieldMapping:
    """Coerce a stored or partial mapping into a full one with empty defaults."""
    if isinstance(raw, TransactionsFieldMapping):
        return raw
    raw = raw if isinstance(raw, dict) else {}
    return TransactionsFieldMapping(
        **{
            field: value
            for field, _ in FIELD_RULES
            if isinstance(value := raw.get(field), str)
        }
    )
