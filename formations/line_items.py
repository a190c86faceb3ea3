"""Line items carried in payment metadata.

Stripe metadata values are strings, so the checkout serialises the purchased
applications and standalone services as JSON arrays. They are validated here
into a tagged union; anything that does not validate is kept as an
``UnparsedLineItems`` record instead of disappearing.
"""

import json
from decimal import Decimal
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

DEFAULT_ITEM_CURRENCY = "GBP"


class _LineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    price: Decimal = Decimal("0")
    currency: str = DEFAULT_ITEM_CURRENCY
    # The entry exactly as the checkout sent it.
    source: dict = Field(default_factory=dict)

    @staticmethod
    def _normalise(data: dict, fallback_price: Any = None, fallback_currency: Any = None) -> dict:
        data["price"] = data.get("price") or fallback_price or 0
        data["currency"] = str(data.get("currency") or fallback_currency or DEFAULT_ITEM_CURRENCY).upper()
        return data


class ApplicationLineItem(_LineItem):
    kind: Literal["application"] = "application"
    id: Optional[str] = None
    jurisdiction: str
    email: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_jurisdiction(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        source = dict(data)
        data = dict(data, source=source)
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        jurisdiction = data.get("jurisdiction")
        # Older checkouts sent the jurisdiction name, newer ones the whole object.
        if isinstance(jurisdiction, dict):
            data["jurisdiction"] = jurisdiction.get("name") or "Unknown"
            return cls._normalise(data, jurisdiction.get("price"), jurisdiction.get("currency"))
        data["jurisdiction"] = jurisdiction or "Unknown"
        return cls._normalise(data)

    @property
    def item_name(self) -> str:
        return f"{self.jurisdiction} Company Formation"


class ServiceLineItem(_LineItem):
    kind: Literal["service"] = "service"
    id: Optional[str] = None
    name: str

    @model_validator(mode="before")
    @classmethod
    def _keep_source(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data, source=dict(data))
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        return cls._normalise(data)

    @property
    def item_name(self) -> str:
        return self.name


class UnparsedLineItems(BaseModel):
    kind: Literal["unparsed"] = "unparsed"
    field: str
    raw: str
    reason: str


LineItem = Annotated[
    Union[ApplicationLineItem, ServiceLineItem, UnparsedLineItems],
    Field(discriminator="kind"),
]

_FIELDS = (
    ("applications", ApplicationLineItem),
    ("standalone_services", ServiceLineItem),
)


class ParsedLineItems(BaseModel):
    applications: list[ApplicationLineItem] = Field(default_factory=list)
    services: list[ServiceLineItem] = Field(default_factory=list)
    unparsed: list[UnparsedLineItems] = Field(default_factory=list)

    @property
    def items(self) -> list[LineItem]:
        return [*self.applications, *self.services]

    def snapshot(self) -> dict:
        """The serialised copy stored on the order row."""
        snapshot = {
            "applications": [item.source for item in self.applications],
            "standalone_services": [item.source for item in self.services],
        }
        if self.unparsed:
            snapshot["unparsed"] = [item.model_dump() for item in self.unparsed]
        return snapshot

    def order_item_rows(self, order_id: str) -> list[dict]:
        rows = []
        for item in self.items:
            rows.append(
                {
                    "order_id": order_id,
                    "item_type": item.kind,
                    "item_name": item.item_name,
                    "jurisdiction_name": item.jurisdiction if isinstance(item, ApplicationLineItem) else None,
                    "unit_price": item.price,
                    "quantity": 1,
                    "total_price": item.price,
                    "currency": item.currency,
                    "item_metadata": item.source,
                }
            )
        return rows


def _raw_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    try:
        return json.dumps(raw)
    except (TypeError, ValueError):
        return repr(raw)


def parse_line_items(metadata: Mapping[str, Any]) -> ParsedLineItems:
    """Validate the ``applications`` and ``standalone_services`` metadata fields.

    A field that is absent or empty contributes no items. If any field fails to
    parse, the whole order is treated as having zero items and every failure
    is reported in ``unparsed``.
    """
    parsed: dict[str, list] = {"applications": [], "standalone_services": []}
    unparsed = []

    for field, model in _FIELDS:
        raw = metadata.get(field)
        if raw is None or raw == "":
            continue
        try:
            entries = json.loads(raw) if isinstance(raw, str) else raw
            if not isinstance(entries, list):
                raise ValueError("expected a JSON array")
            parsed[field] = [model.model_validate(entry) for entry in entries]
        except (ValueError, ValidationError) as exc:
            unparsed.append(UnparsedLineItems(field=field, raw=_raw_text(raw), reason=str(exc)))

    if unparsed:
        return ParsedLineItems(unparsed=unparsed)
    return ParsedLineItems(
        applications=parsed["applications"],
        services=parsed["standalone_services"],
    )
