from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PaymentIntentRequest(BaseModel):
    # Validated by the initiator so a bad amount maps to InvalidAmount.
    amount: Any = None
    currency: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    customer_email: Optional[str] = None
    description: Optional[str] = None


class PaymentIntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str


class OrderCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    order_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    total_amount: Optional[Decimal] = None
    currency: str = "GBP"
    payment_status: str = "pending"
    applications_count: int = 0
    services_count: int = 0
    order_items: Optional[Any] = None
    stripe_metadata: Optional[dict[str, Any]] = None


class OrderConfirmRequest(BaseModel):
    payment_intent_id: Optional[str] = None


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class OrderActionRequest(BaseModel):
    action: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True


class _FormModel(BaseModel):
    """Checkout forms post camelCase keys; snake_case is accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Address(_FormModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    state: Optional[str] = None
    postcode: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class JurisdictionRef(_FormModel):
    id: Optional[int] = None
    name: Optional[str] = None
    price: Optional[Decimal] = None
    currency: Optional[str] = None


class ContactDetails(_FormModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Address = Field(default_factory=Address)


class CompanyDetails(_FormModel):
    proposed_name: Optional[str] = None
    alternative_name: Optional[str] = None
    business_activity: Optional[str] = None
    authorized_capital: Optional[int] = None
    number_of_shares: Optional[int] = None


class RegisteredAddress(Address):
    use_contact_address: bool = False


class ApplicationSubmission(_FormModel):
    id: Optional[str] = None
    jurisdiction: JurisdictionRef
    contact_details: ContactDetails = Field(default_factory=ContactDetails)
    company_details: CompanyDetails = Field(default_factory=CompanyDetails)
    registered_address: RegisteredAddress = Field(default_factory=RegisteredAddress)
    directors: list[Any] = Field(default_factory=list)
    shareholders: list[Any] = Field(default_factory=list)
    additional_services: list[Any] = Field(default_factory=list)
    step_completed: int = 0
    is_complete: bool = False


class MailForwardingForm(_FormModel):
    entity_type: Optional[str] = None
    entity_name: Optional[str] = None
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Address = Field(default_factory=Address)
    jurisdiction: Optional[str] = None
    forwarding_frequency: Optional[str] = None
    service_users: Optional[Any] = None
    additional_info: Optional[str] = None


class MailForwardingSubmission(MailForwardingForm):
    # Current forms nest the fields under formData; older ones post them flat.
    form_data: Optional[MailForwardingForm] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    postcode: Optional[str] = None
    country: Optional[str] = None
    price: Optional[Decimal] = None
    currency: str = "GBP"


class Person(_FormModel):
    title: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None
    nationality: Optional[str] = None
    address: Address = Field(default_factory=Address)
    id_type: Optional[str] = None
    id_number: Optional[str] = None


class TrustFormationSubmission(_FormModel):
    provide_details_now: Optional[bool] = None
    contact_first_name: Optional[str] = None
    contact_last_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    jurisdiction: Optional[str] = None
    jurisdiction_price: Optional[Decimal] = None
    trust_name: Optional[str] = None
    trust_type: Optional[str] = None
    trust_purpose: Optional[str] = None
    settlor: Optional[Person] = None
    trustees: list[Any] = Field(default_factory=list)
    beneficiaries: list[Any] = Field(default_factory=list)
    additional_notes: Optional[str] = None
    special_instructions: Optional[str] = None
    price: Optional[Decimal] = None
    currency: str = "GBP"


class ContactInquiry(_FormModel):
    name: str = Field(min_length=2)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str = Field(min_length=10)
    company_name: Optional[str] = None
    jurisdiction: str = Field(min_length=1)
    service_type: str = Field(min_length=1)
    message: str = Field(min_length=10)
