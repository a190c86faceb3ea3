"""CRUD over the admin-managed tables.

Each table is described by a ``Resource``; ``EntityRepository`` turns that
description into list/get/create/update/delete with an update allow-list and
optional delete guard.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import Boolean, Integer, case, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from formations.errors import Conflict, InvalidInput, NotFound
from formations.models import (
    AdditionalService,
    Application,
    BankingJurisdiction,
    Jurisdiction,
    MailForwardingApplication,
    Order,
    OrderItem,
    ProfessionalService,
    TrustFormationApplication,
)


@dataclass(frozen=True)
class Resource:
    name: str
    label: str
    model: type
    updatable: tuple[str, ...]
    creatable: tuple[str, ...] = ()
    required: tuple[str, ...] = ()
    deletable: bool = False
    ordering: tuple[str, ...] = ("-created_at",)
    filters: tuple[str, ...] = ()
    search: tuple[str, ...] = ()
    slug_id: bool = False
    delete_guard: Optional[Callable[[Session, Any], Optional[str]]] = None

    @property
    def can_create(self) -> bool:
        return bool(self.creatable)


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def row_to_dict(row) -> dict:
    return {column.key: getattr(row, column.key) for column in row.__mapper__.column_attrs}


def _jurisdiction_in_use(session: Session, jurisdiction_id: Any) -> Optional[str]:
    count = session.scalar(
        select(func.count()).select_from(Application).where(Application.jurisdiction_id == jurisdiction_id)
    )
    if count:
        return "Cannot delete jurisdiction with existing applications. Set status to inactive instead."
    return None


JURISDICTIONS = Resource(
    name="jurisdictions",
    label="Jurisdiction",
    model=Jurisdiction,
    updatable=(
        "name", "country_code", "flag_url", "description", "formation_price",
        "currency", "processing_time", "features", "status",
    ),
    creatable=(
        "name", "country_code", "flag_url", "description", "formation_price",
        "currency", "processing_time", "features", "status",
    ),
    required=("name", "country_code", "formation_price", "currency"),
    deletable=True,
    ordering=("name",),
    filters=("status",),
    delete_guard=_jurisdiction_in_use,
)

SERVICES = Resource(
    name="services",
    label="Service",
    model=AdditionalService,
    updatable=("name", "description", "base_price", "currency", "note", "category", "active"),
    creatable=("id", "name", "description", "base_price", "currency", "note", "category", "active"),
    required=("name", "base_price", "category"),
    deletable=True,
    ordering=("name",),
    filters=("category", "active"),
    slug_id=True,
)

PROFESSIONAL_SERVICES = Resource(
    name="professional-services",
    label="Professional service",
    model=ProfessionalService,
    updatable=("name", "description", "short_description", "features", "category", "display_order", "active"),
    creatable=(
        "id", "name", "description", "short_description", "features",
        "category", "display_order", "active",
    ),
    required=("name",),
    deletable=True,
    ordering=("display_order", "name"),
    filters=("category", "active"),
    slug_id=True,
)

BANKING_JURISDICTIONS = Resource(
    name="banking-jurisdictions",
    label="Banking jurisdiction",
    model=BankingJurisdiction,
    updatable=("name", "description", "icon_url", "is_active", "sort_order"),
    creatable=("name", "description", "icon_url", "is_active", "sort_order"),
    required=("name",),
    deletable=True,
    ordering=("sort_order", "name"),
    filters=("is_active",),
)

APPLICATIONS = Resource(
    name="applications",
    label="Application",
    model=Application,
    updatable=("internal_status", "admin_notes", "assigned_to", "payment_status"),
    filters=("internal_status", "payment_status"),
    search=("contact_email", "contact_first_name", "contact_last_name", "company_proposed_name"),
)

ORDERS = Resource(
    name="orders",
    label="Order",
    model=Order,
    updatable=("payment_status", "customer_name", "customer_phone"),
    filters=("payment_status",),
    search=("customer_email", "customer_name", "order_id"),
)

MAIL_FORWARDING = Resource(
    name="mail-forwarding",
    label="Mail forwarding application",
    model=MailForwardingApplication,
    updatable=("status", "payment_status", "admin_notes"),
    filters=("status", "payment_status"),
    search=("email", "entity_name", "contact_person"),
)

TRUST_FORMATIONS = Resource(
    name="trust-formations",
    label="Trust formation",
    model=TrustFormationApplication,
    updatable=("status", "payment_status", "admin_notes"),
    filters=("status", "payment_status"),
    search=("contact_email", "trust_name"),
)

RESOURCES = (
    JURISDICTIONS,
    SERVICES,
    PROFESSIONAL_SERVICES,
    BANKING_JURISDICTIONS,
    APPLICATIONS,
    MAIL_FORWARDING,
    TRUST_FORMATIONS,
)


class EntityRepository:
    def __init__(self, session: Session, resource: Resource):
        self.session = session
        self.resource = resource
        self.model = resource.model

    def _column(self, name: str):
        return self.model.__table__.c[name]

    def _coerce_filter(self, name: str, value: Any) -> Any:
        column = self._column(name)
        if isinstance(column.type, Boolean) and isinstance(value, str):
            return value.lower() in ("1", "true", "yes")
        return value

    def _order_by(self):
        clauses = []
        for name in self.resource.ordering:
            if name.startswith("-"):
                clauses.append(self._column(name[1:]).desc())
            else:
                clauses.append(self._column(name).asc())
        return clauses

    def _where(self, filters: dict, search: Optional[str]) -> list:
        conditions = []
        for name in self.resource.filters:
            value = filters.get(name)
            if value is None or value == "" or value == "all":
                continue
            conditions.append(self._column(name) == self._coerce_filter(name, value))
        if search and self.resource.search:
            pattern = f"%{search}%"
            conditions.append(or_(*(self._column(name).ilike(pattern) for name in self.resource.search)))
        return conditions

    def list(self, filters: Optional[dict] = None, search: Optional[str] = None, page: int = 1, limit: int = 50) -> dict:
        conditions = self._where(filters or {}, search)
        total = self.session.scalar(select(func.count()).select_from(self.model).where(*conditions))
        rows = self.session.scalars(
            select(self.model)
            .where(*conditions)
            .order_by(*self._order_by())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return {
            "items": [row_to_dict(row) for row in rows],
            "total": total or 0,
            "page": page,
            "limit": limit,
        }

    def _coerce_id(self, entity_id: Any) -> Any:
        pk = self.model.__table__.primary_key.columns[0]
        if isinstance(pk.type, Integer):
            try:
                return int(entity_id)
            except (TypeError, ValueError):
                raise InvalidInput(f"Invalid {self.resource.label.lower()} ID") from None
        return str(entity_id)

    def _load(self, entity_id: Any):
        row = self.session.get(self.model, self._coerce_id(entity_id))
        if row is None:
            raise NotFound(f"{self.resource.label} not found")
        return row

    def get(self, entity_id: Any) -> dict:
        return row_to_dict(self._load(entity_id))

    def create(self, fields: dict) -> dict:
        missing = [name for name in self.resource.required if fields.get(name) in (None, "")]
        if missing:
            raise InvalidInput(f"Missing required fields: {', '.join(missing)}")

        values = {name: fields[name] for name in self.resource.creatable if name in fields}
        if self.resource.slug_id:
            values["id"] = values.get("id") or slugify(values["name"])
            if self.session.get(self.model, values["id"]) is not None:
                raise Conflict(f"{self.resource.label} with this ID already exists")

        row = self.model(**values)
        self.session.add(row)
        self._commit()
        self.session.refresh(row)
        return row_to_dict(row)

    def update(self, entity_id: Any, fields: dict) -> dict:
        changes = {name: value for name, value in fields.items() if name in self.resource.updatable}
        if not changes:
            raise InvalidInput("No valid fields to update")
        row = self._load(entity_id)
        for name, value in changes.items():
            setattr(row, name, value)
        self._commit()
        self.session.refresh(row)
        return row_to_dict(row)

    def delete(self, entity_id: Any) -> None:
        row = self._load(entity_id)
        if self.resource.delete_guard is not None:
            reason = self.resource.delete_guard(self.session, row.id)
            if reason:
                raise Conflict(reason)
        self.session.delete(row)
        self._commit()

    def _commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict(f"{self.resource.label} conflicts with an existing record") from exc


class OrderRepository(EntityRepository):
    """Orders are looked up by the checkout order id as well as the row id."""

    def __init__(self, session: Session):
        super().__init__(session, ORDERS)

    def _load(self, entity_id: Any) -> Order:
        conditions = [Order.order_id == str(entity_id)]
        if str(entity_id).isdigit():
            conditions.append(Order.id == int(entity_id))
        row = self.session.scalars(select(Order).where(or_(*conditions)).limit(1)).first()
        if row is None:
            raise NotFound("Order not found")
        return row

    def get(self, entity_id: Any) -> dict:
        order = self._load(entity_id)
        items = self.session.scalars(
            select(OrderItem).where(OrderItem.order_id == order.order_id).order_by(OrderItem.id)
        ).all()
        return dict(row_to_dict(order), items=[row_to_dict(item) for item in items])

    def create(self, fields: dict) -> dict:
        missing = [name for name in ("order_id", "total_amount") if fields.get(name) in (None, "")]
        if missing:
            raise InvalidInput("Missing required fields: order_id, total_amount")
        if self.session.scalar(select(Order.id).where(Order.order_id == fields["order_id"])) is not None:
            raise Conflict("Order already exists")
        order = Order(**fields)
        self.session.add(order)
        self._commit()
        self.session.refresh(order)
        return row_to_dict(order)

    def statistics(self, now: Optional[datetime] = None) -> dict:
        now = now or datetime.now(timezone.utc)
        paid = Order.payment_status == "paid"
        totals = self.session.execute(
            select(
                func.count(Order.id),
                func.count(case((paid, 1))),
                func.count(case((Order.payment_status == "pending", 1))),
                func.count(case((Order.payment_status == "failed", 1))),
                func.coalesce(func.sum(case((paid, Order.total_amount), else_=0)), 0),
                func.coalesce(func.avg(case((paid, Order.total_amount))), 0),
            )
        ).one()
        statistics = {
            "total_orders": totals[0],
            "paid_orders": totals[1],
            "pending_orders": totals[2],
            "failed_orders": totals[3],
            "total_revenue": float(totals[4] or 0),
            "average_order_value": float(totals[5] or 0),
        }

        recent = self.session.scalars(select(Order).order_by(Order.created_at.desc(), Order.id.desc()).limit(10)).all()
        recent_orders = [
            {
                key: getattr(order, key)
                for key in (
                    "order_id", "customer_email", "total_amount", "currency", "payment_status",
                    "applications_count", "services_count", "created_at", "paid_at",
                )
            }
            for order in recent
        ]

        year, month = now.year, now.month - 12
        if month <= 0:
            year, month = year - 1, month + 12
        cutoff = datetime(year, month, 1)
        monthly: dict[str, dict] = {}
        rows = self.session.execute(
            select(Order.created_at, Order.payment_status, Order.total_amount).where(Order.created_at >= cutoff)
        ).all()
        for created_at, status, amount in rows:
            bucket = monthly.setdefault(created_at.strftime("%Y-%m"), {"orders_count": 0, "revenue": 0.0})
            bucket["orders_count"] += 1
            if status == "paid":
                bucket["revenue"] += float(amount or 0)
        monthly_revenue = [{"month": month_key, **data} for month_key, data in sorted(monthly.items(), reverse=True)]

        return {
            "statistics": statistics,
            "recent_orders": recent_orders,
            "monthly_revenue": monthly_revenue,
        }

    def standalone_services(self, limit: int = 100, offset: int = 0) -> dict:
        """Service line items of every order, newest first, with the buying order's details."""
        base = select(OrderItem, Order).join(Order, Order.order_id == OrderItem.order_id).where(
            OrderItem.item_type == "service"
        )
        total = self.session.scalar(select(func.count()).select_from(base.subquery()))
        rows = self.session.execute(
            base.order_by(OrderItem.created_at.desc(), OrderItem.id.desc()).limit(limit).offset(offset)
        ).all()
        services = [
            {
                "id": item.id,
                "service_name": item.item_name,
                "jurisdiction_name": item.jurisdiction_name or "N/A",
                "unit_price": item.unit_price,
                "quantity": item.quantity,
                "total_price": item.total_price,
                "currency": item.currency,
                "customer_email": order.customer_email or "N/A",
                "customer_name": order.customer_name or "N/A",
                "customer_phone": order.customer_phone or "N/A",
                "payment_status": order.payment_status,
                "order_id": order.order_id,
                "order_total": order.total_amount,
                "metadata": item.item_metadata,
                "created_at": item.created_at,
                "order_created_at": order.created_at,
            }
            for item, order in rows
        ]
        return {"services": services, "total": total, "limit": limit, "offset": offset}
