import json
from decimal import Decimal

from formations.line_items import ApplicationLineItem, ServiceLineItem, parse_line_items


def test_application_with_jurisdiction_name():
    parsed = parse_line_items(
        {"applications": json.dumps([{"email": "a@x.com", "jurisdiction": "Seychelles", "price": 599}])}
    )

    assert parsed.unparsed == []
    [item] = parsed.applications
    assert isinstance(item, ApplicationLineItem)
    assert item.jurisdiction == "Seychelles"
    assert item.price == Decimal("599")
    assert item.currency == "GBP"
    assert item.item_name == "Seychelles Company Formation"


def test_application_with_jurisdiction_object():
    entry = {"jurisdiction": {"name": "Belize", "price": "850.50", "currency": "usd"}}
    parsed = parse_line_items({"applications": json.dumps([entry])})

    [item] = parsed.applications
    assert item.jurisdiction == "Belize"
    assert item.price == Decimal("850.50")
    assert item.currency == "USD"
    assert item.source == entry


def test_application_without_jurisdiction_is_unknown():
    parsed = parse_line_items({"applications": json.dumps([{"email": "a@x.com"}])})

    assert parsed.applications[0].jurisdiction == "Unknown"
    assert parsed.applications[0].price == 0


def test_services_parsed():
    parsed = parse_line_items(
        {"standalone_services": json.dumps([{"id": 7, "name": "Nominee Director", "price": 300, "currency": "gbp"}])}
    )

    [item] = parsed.services
    assert isinstance(item, ServiceLineItem)
    assert item.id == "7"
    assert item.item_name == "Nominee Director"
    assert item.kind == "service"


def test_absent_and_empty_fields_give_no_items():
    assert parse_line_items({}).items == []
    assert parse_line_items({"applications": "", "standalone_services": "[]"}).items == []


def test_malformed_field_gives_zero_items():
    parsed = parse_line_items(
        {
            "applications": json.dumps([{"jurisdiction": "Seychelles", "price": 599}]),
            "standalone_services": "{broken",
        }
    )

    assert parsed.items == []
    assert [u.field for u in parsed.unparsed] == ["standalone_services"]
    assert parsed.unparsed[0].raw == "{broken"
    assert parsed.snapshot()["unparsed"][0]["kind"] == "unparsed"


def test_non_array_field_is_unparsed():
    parsed = parse_line_items({"applications": json.dumps({"jurisdiction": "Seychelles"})})

    assert parsed.items == []
    assert parsed.unparsed[0].field == "applications"


def test_service_without_name_is_unparsed():
    parsed = parse_line_items({"standalone_services": json.dumps([{"price": 10}])})

    assert parsed.services == []
    assert parsed.unparsed[0].field == "standalone_services"


def test_order_item_rows():
    parsed = parse_line_items(
        {
            "applications": json.dumps([{"jurisdiction": "Seychelles", "price": 599}]),
            "standalone_services": json.dumps([{"id": "apostille", "name": "Apostille", "price": 95}]),
        }
    )

    rows = parsed.order_item_rows("ORD1")

    assert [row["item_type"] for row in rows] == ["application", "service"]
    assert rows[0]["jurisdiction_name"] == "Seychelles"
    assert rows[1]["jurisdiction_name"] is None
    assert rows[1]["total_price"] == Decimal("95")
    assert all(row["order_id"] == "ORD1" and row["quantity"] == 1 for row in rows)
    assert parsed.snapshot() == {
        "applications": [{"jurisdiction": "Seychelles", "price": 599}],
        "standalone_services": [{"id": "apostille", "name": "Apostille", "price": 95}],
    }
