"""
Test decoding of Notion database objects into models.
"""

from conftest import create_notion_database

from models import (
    UNKNOWN,
    Database,
    DatabaseProperty,
    DatabaseSchemaStatus,
    TransactionsFieldMapping,
    classify_properties,
    display_hint_for,
)


def test_classify_property_known_types() -> None:
    """Test that known property types keep their type and display hint."""
    properties = classify_properties(
        {
            "Name": {"id": "title", "name": "Name", "type": "title"},
            "Amount": {"id": "abc", "name": "Amount", "type": "number"},
        }
    )

    assert properties == [
        DatabaseProperty(id="title", name="Name", type="title", display_hint="blue"),
        DatabaseProperty(id="abc", name="Amount", type="number", display_hint="green"),
    ]


def test_classify_property_falls_back_to_key() -> None:
    """Test that a missing id or name is replaced by the mapping key."""
    (prop,) = classify_properties({"Status": {"type": "select"}})

    assert prop.id == "Status"
    assert prop.name == "Status"
    assert prop.type == "select"
    assert prop.display_hint == "gray"


def test_classify_property_malformed_entries() -> None:
    """Test that entries without a usable type become unknown."""
    properties = classify_properties(
        {
            "Broken": "not a dict",
            "Numeric type": {"name": "Numeric type", "type": 42},
            "Empty type": {"type": ""},
        }
    )

    assert [p.type for p in properties] == [UNKNOWN, UNKNOWN, UNKNOWN]
    assert [p.name for p in properties] == ["Broken", "Numeric type", "Empty type"]


def test_classify_properties_non_mapping() -> None:
    """Test that a non-mapping properties payload decodes to nothing."""
    assert classify_properties(None) == []
    assert classify_properties(["Name"]) == []


def test_display_hint_for_unknown_type() -> None:
    assert display_hint_for("formula") == "gray"
    assert display_hint_for("rich_text") == "amber"


def test_database_from_notion() -> None:
    """Test full database decoding with title fragments and emoji icon."""
    response = create_notion_database(
        title="Transactions",
        properties={"Name": "title", "Date": "date"},
        icon={"type": "emoji", "emoji": "💳"},
    )
    response["title"] = [
        {"plain_text": "  My "},
        {"plain_text": "Transactions  "},
    ]

    database = Database.from_notion(response, "https://notion.so/link")

    assert database.title == "My Transactions"
    assert database.icon is None
    assert database.emoji == "💳"
    assert database.primary_icon == "💳"
    assert database.link == "https://notion.so/link"
    assert database.schema_status is None
    assert [p.name for p in database.properties] == ["Name", "Date"]


def test_database_from_notion_untitled_with_file_icon() -> None:
    """Test that an empty title and a file icon are handled."""
    response = create_notion_database(properties={})
    response["title"] = []
    response["icon"] = {"type": "file", "file": {"url": "https://files/icon.png"}}

    database = Database.from_notion(response, "")

    assert database.title == "Untitled database"
    assert database.icon == "https://files/icon.png"
    assert database.primary_icon == "https://files/icon.png"


def test_database_external_icon() -> None:
    response = create_notion_database(
        icon={"type": "external", "external": {"url": "https://img/x.svg"}}
    )

    database = Database.from_notion(response, "")

    assert database.icon == "https://img/x.svg"
    assert database.emoji is None


def test_database_lookups() -> None:
    """Test finding properties by name and by type."""
    database = Database.from_notion(
        create_notion_database(
            properties={"Name": "title", "Memo": "rich_text", "Card": "rich_text"}
        ),
        "",
    )

    assert database.find_by_name("Memo") is not None
    assert database.find_by_name("memo") is None
    assert database.find_by_type("rich_text").name == "Memo"  # type: ignore[union-attr]
    assert [p.name for p in database.of_types("title", "rich_text")] == [
        "Name",
        "Memo",
        "Card",
    ]


def test_schema_status_with_auto_created_merges() -> None:
    """Test that auto-created fields are merged without duplicates."""
    status = DatabaseSchemaStatus.build([], ["Date"], ["note"])

    merged = status.with_auto_created("Sync ID", "Date")

    assert merged.auto_created_fields == ["Date", "Sync ID"]
    assert merged.notes == ["note"]
    assert merged.is_valid
    assert status.auto_created_fields == ["Date"]


def test_schema_status_validity_follows_missing_fields() -> None:
    assert DatabaseSchemaStatus.build(["Date"]).is_valid is False
    assert DatabaseSchemaStatus.build([]).is_valid is True


def test_mapping_is_complete() -> None:
    """Test mapping completeness requires four distinct values."""
    complete = TransactionsFieldMapping(
        date_property="Date",
        amount_property="Amount",
        merchant_property="Name",
        account_name_property="Account Name",
    )
    assert complete.is_complete

    assert not TransactionsFieldMapping(date_property="Date").is_complete
    assert not complete.model_copy(update={"amount_property": "Date"}).is_complete
