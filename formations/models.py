from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from formations.database import Base

ORDER_STATUSES = ("pending", "paid", "failed", "refunded")


def _uuid() -> str:
    return str(uuid4())


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Order(TimestampMixin, Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(100), unique=True, index=True, nullable=False)  # checkout-supplied
    stripe_payment_intent_id = Column(String(100), index=True)
    customer_email = Column(String(255))
    customer_name = Column(String(255))
    customer_phone = Column(String(50))
    billing_name = Column(String(255))
    billing_address = Column(JSON)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="GBP")
    payment_status = Column(String(20), nullable=False, default="pending")  # pending | paid | failed | refunded
    payment_method = Column(String(50))
    applications_count = Column(Integer, nullable=False, default=0)
    services_count = Column(Integer, nullable=False, default=0)
    order_items = Column(JSON)  # snapshot of parsed line items
    stripe_metadata = Column(JSON)
    paid_at = Column(DateTime(timezone=True))

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(100), ForeignKey("orders.order_id"), index=True, nullable=False)
    item_type = Column(String(20), nullable=False)  # application | service
    item_name = Column(String(255), nullable=False)
    jurisdiction_name = Column(String(255))
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    quantity = Column(Integer, nullable=False, default=1)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="GBP")
    item_metadata = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="items")


class Jurisdiction(TimestampMixin, Base):
    __tablename__ = "jurisdictions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    country_code = Column(String(10), nullable=False)
    flag_url = Column(String(500))
    description = Column(Text)
    formation_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="GBP")
    processing_time = Column(String(100))
    features = Column(JSON, default=list)
    status = Column(String(20), nullable=False, default="active")  # active | inactive


class AdditionalService(TimestampMixin, Base):
    __tablename__ = "additional_services"

    id = Column(String(100), primary_key=True)  # slug of the name
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    base_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="GBP")
    note = Column(Text, default="")
    category = Column(String(100), nullable=False)
    active = Column(Boolean, nullable=False, default=True)


class ProfessionalService(TimestampMixin, Base):
    __tablename__ = "professional_services"

    id = Column(String(100), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    short_description = Column(String(500))
    features = Column(JSON, default=list)
    category = Column(String(100))
    display_order = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)


class BankingJurisdiction(TimestampMixin, Base):
    __tablename__ = "banking_jurisdictions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    icon_url = Column(String(500))
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)

class Application(TimestampMixin, Base):
    __tablename__ = "applications"

    id = Column(String(100), primary_key=True, default=_uuid)  # client-generated on the first step
    application_identifier = Column(String(150), unique=True)  # service_<order_id> for service-only orders
    jurisdiction_id = Column(Integer, ForeignKey("jurisdictions.id"), index=True)
    jurisdiction_name = Column(String(255))
    jurisdiction_price = Column(Numeric(12, 2))
    jurisdiction_currency = Column(String(3))
    contact_first_name = Column(String(255))
    contact_last_name = Column(String(255))
    contact_email = Column(String(255), index=True)
    contact_phone = Column(String(50))
    contact_address = Column(JSON)
    company_proposed_name = Column(String(255))
    company_alternative_name = Column(String(255))
    company_business_activity = Column(Text)
    company_authorized_capital = Column(Integer, default=50000)
    company_number_of_shares = Column(Integer, default=50000)
    registered_address = Column(JSON)
    use_contact_address = Column(Boolean, nullable=False, default=False)
    billing_name = Column(String(255))
    billing_address = Column(JSON)
    directors = Column(JSON)
    shareholders = Column(JSON)
    additional_services = Column(JSON)
    step_completed = Column(Integer, nullable=False, default=1)
    is_complete = Column(Boolean, nullable=False, default=False)
    payment_status = Column(String(20), nullable=False, default="pending")
    internal_status = Column(String(50), nullable=False, default="new")
    admin_notes = Column(Text)
    assigned_to = Column(String(255))
    order_id = Column(String(100), index=True)


class MailForwardingApplication(TimestampMixin, Base):
    __tablename__ = "mail_forwarding_applications"

    id = Column(String(100), primary_key=True, default=_uuid)
    entity_type = Column(String(100))
    entity_name = Column(String(255), nullable=False)
    contact_person = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50))
    address = Column(JSON)
    jurisdiction = Column(String(255), nullable=False)
    forwarding_frequency = Column(String(50))
    service_users = Column(JSON)
    additional_info = Column(Text)
    price = Column(Numeric(12, 2))
    currency = Column(String(3), nullable=False, default="GBP")
    status = Column(String(50), nullable=False, default="pending")
    payment_status = Column(String(20), nullable=False, default="pending")
    admin_notes = Column(Text)
    order_id = Column(String(100), index=True)


class TrustFormationApplication(TimestampMixin, Base):
    __tablename__ = "trust_formation_applications"

    id = Column(String(100), primary_key=True, default=_uuid)
    details_provided_now = Column(Boolean, nullable=False, default=True)
    contact_first_name = Column(String(255))
    contact_last_name = Column(String(255))
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(50))
    jurisdiction = Column(String(255))
    trust_name = Column(String(255))
    trust_type = Column(String(100))
    trust_purpose = Column(Text)
    settlor = Column(JSON)
    trustees = Column(JSON)
    beneficiaries = Column(JSON)
    additional_notes = Column(Text)
    special_instructions = Column(Text)
    price = Column(Numeric(12, 2))
    currency = Column(String(3), nullable=False, default="GBP")
    status = Column(String(50), nullable=False, default="pending")
    payment_status = Column(String(20), nullable=False, default="pending")
    admin_notes = Column(Text)
    order_id = Column(String(100), index=True)


class Inquiry(Base):
    __tablename__ = "inquiries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    company_name = Column(String(255), default="")
    country = Column(String(255), nullable=False)  # the jurisdiction asked about
    service_type = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AdminUser(TimestampMixin, Base):
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)  # bcrypt
    full_name = Column(String(255))
    role = Column(String(20), nullable=False, default="admin")  # super_admin | admin | editor
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True))
