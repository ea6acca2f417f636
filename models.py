"""
Pydantic models for the Notion sync server.

These models are the typed boundary between loosely-shaped Notion JSON and the
sync engine. Remote descriptors and persisted settings are decoded into these
value objects once, and nothing past that point handles raw dictionaries.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

DatabaseKind = Literal["balance", "transactions"]

TITLE = "title"
DATE = "date"
NUMBER = "number"
RICH_TEXT = "rich_text"
UNKNOWN = "unknown"

SYNC_ID_PROPERTY = "Sync ID"

DISPLAY_HINTS = {
    TITLE: "blue",
    DATE: "pink",
    NUMBER: "green",
    RICH_TEXT: "amber",
}
DEFAULT_DISPLAY_HINT = "gray"


def display_hint_for(property_type: str) -> str:
    """Badge colour used when listing a property of the given type."""
    return DISPLAY_HINTS.get(property_type, DEFAULT_DISPLAY_HINT)


class DatabaseProperty(BaseModel):
    """A typed column on a Notion database.

    `id` is the stable identity; `name` is what users see and what field
    mappings refer to.
    """

    id: str = Field(..., description="Notion property id")
    name: str = Field(..., description="Property name as shown in Notion")
    type: str = Field(
        ...,
        description="Property type. The sync engine understands 'title', 'date', "
        "'number' and 'rich_text'; anything else is carried through untouched",
    )
    display_hint: str = Field(
        DEFAULT_DISPLAY_HINT, description="Badge colour for the property type"
    )

    @classmethod
    def from_notion(
        cls, key: str, raw: Any, name_fallback: str | None = None
    ) -> DatabaseProperty:
        """Classify one entry of a Notion `properties` mapping.

        The mapping key stands in for a missing id or name, so neither is ever
        empty. Entries without a string `type` are classified as unknown.
        """
        raw = raw if isinstance(raw, dict) else {}
        property_type = raw.get("type")
        if not isinstance(property_type, str) or not property_type:
            property_type = UNKNOWN
        property_id = raw.get("id")
        name = raw.get("name")
        return cls(
            id=property_id if isinstance(property_id, str) and property_id else key,
            name=name if isinstance(name, str) and name else name_fallback or key,
            type=property_type,
            display_hint=display_hint_for(property_type),
        )


def classify_property(
    key: str, raw: Any, name_fallback: str | None = None
) -> DatabaseProperty:
    return DatabaseProperty.from_notion(key, raw, name_fallback)


def classify_properties(properties: Any) -> list[DatabaseProperty]:
    """Classify a Notion `properties` mapping, preserving its order."""
    if not isinstance(properties, dict):
        return []
    return [classify_property(key, raw) for key, raw in properties.items()]


class DatabaseSchemaStatus(BaseModel):
    """Outcome of one schema reconciliation pass."""

    is_valid: bool = Field(..., description="True when no required field is missing")
    missing_fields: list[str] = Field(
        default_factory=list, description="Required logical fields still missing"
    )
    auto_created_fields: list[str] = Field(
        default_factory=list, description="Properties created during reconciliation"
    )
    notes: list[str] = Field(
        default_factory=list, description="Structural caveats that need a human"
    )

    @classmethod
    def build(
        cls,
        missing_fields: list[str],
        auto_created_fields: list[str] | None = None,
        notes: list[str] | None = None,
    ) -> DatabaseSchemaStatus:
        return cls(
            is_valid=not missing_fields,
            missing_fields=list(missing_fields),
            auto_created_fields=list(auto_created_fields or []),
            notes=list(notes or []),
        )

    def with_auto_created(self, *fields: str) -> DatabaseSchemaStatus:
        """Union extra auto-created fields into this status, keeping order."""
        merged = list(self.auto_created_fields)
        for field in fields:
            if field not in merged:
                merged.append(field)
        return self.model_copy(update={"auto_created_fields": merged})


def title_from_notion(title: Any) -> str:
    if not isinstance(title, list):
        return "Untitled database"
    plain_title = "".join(
        item.get("plain_text") or "" for item in title if isinstance(item, dict)
    ).strip()
    return plain_title or "Untitled database"


def icon_from_notion(icon: Any) -> tuple[str | None, str | None]:
    """Return `(image_url, emoji)` for a Notion icon object."""
    if not isinstance(icon, dict):
        return None, None
    match icon.get("type"):
        case "external":
            return (icon.get("external") or {}).get("url"), None
        case "file":
            return (icon.get("file") or {}).get("url"), None
        case "emoji":
            return None, icon.get("emoji")
        case _:
            return None, None


class Database(BaseModel):
    """A connected Notion database and its last known schema.

    When both an image icon and an emoji are present the image wins for
    display; both are kept as received.
    """

    id: str = Field(..., description="Canonical (hyphenated) database id")
    title: str = Field(..., description="Plain-text database title")
    icon: str | None = Field(None, description="Image icon url, if any")
    emoji: str | None = Field(None, description="Emoji icon, if any")
    properties: list[DatabaseProperty] = Field(
        default_factory=list, description="Classified properties"
    )
    link: str = Field("", description="Link or id the user connected with")
    schema_status: DatabaseSchemaStatus | None = Field(
        None, description="Result of the latest reconciliation, None until audited"
    )

    @classmethod
    def from_notion(
        cls,
        response: dict[str, Any],
        link: str,
        schema_status: DatabaseSchemaStatus | None = None,
    ) -> Database:
        """Convert a Notion database object into our Database model."""
        icon, emoji = icon_from_notion(response.get("icon"))
        return cls(
            id=response["id"],
            title=title_from_notion(response.get("title")),
            icon=icon,
            emoji=emoji,
            properties=classify_properties(response.get("properties")),
            link=link,
            schema_status=schema_status,
        )

    @property
    def primary_icon(self) -> str | None:
        return self.icon or self.emoji

    def find_by_name(self, name: str) -> DatabaseProperty | None:
        return next((p for p in self.properties if p.name == name), None)

    def find_by_type(self, property_type: str) -> DatabaseProperty | None:
        return next((p for p in self.properties if p.type == property_type), None)

    def of_types(self, *property_types: str) -> list[DatabaseProperty]:
        return [p for p in self.properties if p.type in property_types]


class TransactionsFieldMapping(BaseModel):
    """Which Notion property receives each logical transaction field.

    Values are property names, or empty strings while unmapped.
    """

    date_property: str = Field("", description="Date-typed property name")
    amount_property: str = Field("", description="Number-typed property name")
    merchant_property: str = Field(
        "", description="Title or rich_text property name for the merchant"
    )
    account_name_property: str = Field(
        "", description="Rich_text property name for the account name"
    )

    def values(self) -> list[str]:
        return [
            self.date_property,
            self.amount_property,
            self.merchant_property,
            self.account_name_property,
        ]

    @property
    def is_complete(self) -> bool:
        values = self.values()
        return all(values) and len(set(values)) == len(values)


class Account(BaseModel):
    """An account balance scraped from the bank's overview page."""

    name: str = Field(..., description="Account display name")
    balance: str = Field(..., description="Balance as displayed, e.g. '$1,234.56'")
    group: str | None = Field(
        None, description="Account group key (e.g. 'chequing'), used for filtering"
    )


class Transaction(BaseModel):
    """A card transaction scraped from the bank's transactions page.

    Only `date`, `amount_value`, `merchant` and `account_name` feed the sync
    engine; the remaining fields are display-only.
    """

    date: str = Field(..., description="Posting date, ISO YYYY-MM-DD")
    amount_value: float = Field(
        ..., description="Signed amount (negative = spending, positive = credit)"
    )
    merchant: str = Field(..., description="Merchant or description")
    account_name: str = Field(..., description="Card or account name")
    key: str | None = Field(None, description="Source row key")
    amount_text: str | None = Field(None, description="Amount as displayed")
    description: str | None = Field(None, description="Raw description text")
    card_product_name: str | None = Field(None, description="Card product name")
    masked_card_number: str | None = Field(None, description="Masked card number")
    card_last_four: str | None = Field(None, description="Last four card digits")
    direction: Literal["credit", "debit", "unknown"] = Field(
        "unknown", description="Credit or debit as flagged by the source page"
    )
    category: str | None = Field(None, description="Source category label")


class SyncOutcome(BaseModel):
    """Result event of a sync or connection command."""

    status: Literal["success", "error"] = Field(..., description="Outcome kind")
    message: str = Field(..., description="Human-readable summary or error")
    written: int = Field(0, description="Records created in Notion")
    skipped: int = Field(0, description="Records skipped as duplicates")

    @classmethod
    def success(cls, message: str, written: int = 0, skipped: int = 0) -> SyncOutcome:
        return cls(status="success", message=message, written=written, skipped=skipped)

    @classmethod
    def error(cls, message: str) -> SyncOutcome:
        return cls(status="error", message=message)

    @property
    def ok(self) -> bool:
        return self.status == "success"


class DatabaseConnection(BaseModel):
    """Response for connect_database."""

    outcome: SyncOutcome = Field(..., description="Whether the connection succeeded")
    database: Database | None = Field(None, description="The connected database")
    suggested_mapping: TransactionsFieldMapping | None = Field(
        None, description="Default mapping suggested for transactions databases"
    )


class MappingState(BaseModel):
    """Current transactions mapping with its validation errors and options."""

    mapping: TransactionsFieldMapping = Field(..., description="Current mapping")
    errors: list[str] = Field(default_factory=list, description="Validation errors")
    date_options: list[str] = Field(default_factory=list)
    amount_options: list[str] = Field(default_factory=list)
    merchant_options: list[str] = Field(default_factory=list)
    account_name_options: list[str] = Field(default_factory=list)


class SyncSettings(BaseModel):
    """Everything persisted between runs."""

    notion_api_key: str = ""
    balance_database: Database | None = None
    transactions_database: Database | None = None
    transactions_field_mapping: TransactionsFieldMapping | None = None
    balance_database_link_draft: str = ""
    transactions_database_link_draft: str = ""
    available_accounts: dict[str, str] = Field(default_factory=dict)
    selected_accounts: list[str] = Field(default_factory=list)


class SyncStatus(BaseModel):
    """Read-only snapshot of the sync state for display."""

    balance_status: str = Field(..., description="Balance database readiness")
    transactions_status: str = Field(..., description="Transactions readiness")
    balance_database_title: str = Field(..., description="Connected balance database")
    transactions_database_title: str = Field(
        ..., description="Connected transactions database"
    )
    balance_schema: DatabaseSchemaStatus | None = None
    transactions_schema: DatabaseSchemaStatus | None = None
    mapping_errors: list[str] = Field(default_factory=list)
    save_hint: str = ""
    can_sync_balances: bool = False
    can_sync_transactions: bool = False
    has_api_key: bool = False
    balance_database_link_draft: str = ""
    transactions_database_link_draft: str = ""
    available_accounts: dict[str, str] = Field(default_factory=dict)
    selected_accounts: list[str] = Field(default_factory=list)
    is_loading: bool = False
    error: str = ""
    sync_result_message: str = ""
