"""Forms posted by the public site before checkout.

Every submission starts unpaid; payment status only moves through the order
flow or the admin console.
"""

import logging
from typing import Any
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy.orm import Session

from formations.database import upsert
from formations.errors import InvalidInput, NotFound, validation_details
from formations.models import Application, Inquiry, MailForwardingApplication, TrustFormationApplication
from formations.repository import row_to_dict
from formations.schemas import (
    Address,
    ApplicationSubmission,
    ContactInquiry,
    MailForwardingSubmission,
    TrustFormationSubmission,
)

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY = "United Kingdom"

# Fields the wizard may overwrite on every step; jurisdiction and payment state are fixed.
APPLICATION_STEP_FIELDS = (
    "contact_first_name",
    "contact_last_name",
    "contact_email",
    "contact_phone",
    "contact_address",
    "company_proposed_name",
    "company_alternative_name",
    "company_business_activity",
    "company_authorized_capital",
    "company_number_of_shares",
    "registered_address",
    "use_contact_address",
    "directors",
    "shareholders",
    "additional_services",
    "step_completed",
    "is_complete",
)

MAIL_FORWARDING_REQUIRED = ("entity_name", "contact_person", "email", "phone", "line1", "city", "postcode", "jurisdiction")


def _address(address: Address) -> dict:
    data = address.model_dump(exclude_none=True, exclude={"use_contact_address"})
    data.setdefault("country", DEFAULT_COUNTRY)
    return data


def save_application(session: Session, body: ApplicationSubmission) -> str:
    """Insert the application, or overwrite its wizard fields when the id exists."""
    contact = body.contact_details
    company = body.company_details
    values = {
        "id": body.id or str(uuid4()),
        "jurisdiction_id": body.jurisdiction.id,
        "jurisdiction_name": body.jurisdiction.name,
        "jurisdiction_price": body.jurisdiction.price,
        "jurisdiction_currency": (body.jurisdiction.currency or "GBP").upper(),
        "contact_first_name": contact.first_name or None,
        "contact_last_name": contact.last_name or None,
        "contact_email": contact.email or None,
        "contact_phone": contact.phone or None,
        "contact_address": _address(contact.address),
        "company_proposed_name": company.proposed_name or None,
        "company_alternative_name": company.alternative_name or None,
        "company_business_activity": company.business_activity or None,
        "company_authorized_capital": company.authorized_capital or 50000,
        "company_number_of_shares": company.number_of_shares or 50000,
        "registered_address": _address(body.registered_address),
        "use_contact_address": body.registered_address.use_contact_address,
        "directors": body.directors,
        "shareholders": body.shareholders,
        "additional_services": body.additional_services,
        "step_completed": body.step_completed,
        "is_complete": body.is_complete,
    }
    try:
        upsert(session, Application.__table__, values, list(APPLICATION_STEP_FIELDS), key="id")
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("application saved id=%s step=%s", values["id"], body.step_completed)
    return values["id"]


def application_view(session: Session, application_id: str) -> dict:
    """The application in the shape the wizard posts it."""
    row = session.get(Application, application_id)
    if row is None:
        raise NotFound("Application not found")
    contact_address = row.contact_address or {}
    registered = row.registered_address or {}
    return {
        "id": row.id,
        "jurisdiction": {
            "id": row.jurisdiction_id,
            "name": row.jurisdiction_name,
            "price": row.jurisdiction_price,
            "currency": row.jurisdiction_currency,
        },
        "contactDetails": {
            "firstName": row.contact_first_name or "",
            "lastName": row.contact_last_name or "",
            "email": row.contact_email or "",
            "phone": row.contact_phone or "",
            "address": contact_address,
        },
        "companyDetails": {
            "proposedName": row.company_proposed_name or "",
            "alternativeName": row.company_alternative_name or "",
            "businessActivity": row.company_business_activity or "",
            "authorizedCapital": row.company_authorized_capital or 50000,
            "numberOfShares": row.company_number_of_shares or 50000,
        },
        "registeredAddress": dict(registered, useContactAddress=bool(row.use_contact_address)),
        "directors": row.directors or [],
        "shareholders": row.shareholders or [],
        "additionalServices": row.additional_services or [],
        "stepCompleted": row.step_completed or 0,
        "isComplete": bool(row.is_complete),
        "paymentStatus": row.payment_status,
        "createdAt": row.created_at,
        "updatedAt": row.updated_at,
    }


def create_mail_forwarding(session: Session, body: MailForwardingSubmission) -> dict:
    if body.form_data is not None:
        form = body.form_data
        address = form.address
    else:
        form = body
        address = Address(
            line1=body.address_line1,
            line2=body.address_line2,
            city=body.city,
            county=body.county,
            postcode=body.postcode,
            country=body.country,
        )

    provided = dict(form.model_dump(exclude={"address", "form_data"}), **address.model_dump())
    missing = [name for name in MAIL_FORWARDING_REQUIRED if not provided.get(name)]
    if missing:
        raise InvalidInput("Missing required fields", details=missing)

    row = MailForwardingApplication(
        entity_type=form.entity_type,
        entity_name=form.entity_name,
        contact_person=form.contact_person,
        email=form.email,
        phone=form.phone,
        address=_address(address),
        jurisdiction=form.jurisdiction,
        forwarding_frequency=form.forwarding_frequency,
        service_users=form.service_users,
        additional_info=form.additional_info or None,
        price=body.price,
        currency=body.currency.upper(),
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    logger.info("mail forwarding application created id=%s", row.id)
    return row_to_dict(row)


def create_trust_formation(session: Session, body: TrustFormationSubmission) -> tuple[dict, str]:
    contact = (body.contact_first_name, body.contact_last_name, body.contact_email, body.contact_phone, body.jurisdiction)
    if not all(contact):
        raise InvalidInput("Missing required contact information")

    row = TrustFormationApplication(
        details_provided_now=True if body.provide_details_now is None else body.provide_details_now,
        contact_first_name=body.contact_first_name,
        contact_last_name=body.contact_last_name,
        contact_email=body.contact_email,
        contact_phone=body.contact_phone,
        jurisdiction=body.jurisdiction,
        price=body.price or body.jurisdiction_price,
        currency=body.currency.upper(),
    )
    if body.provide_details_now:
        if not body.trust_name or not body.trust_type:
            raise InvalidInput("Missing required trust details")
        row.trust_name = body.trust_name
        row.trust_type = body.trust_type
        row.trust_purpose = body.trust_purpose or None
        row.settlor = body.settlor.model_dump(exclude_none=True) if body.settlor else None
        row.trustees = body.trustees or None
        row.beneficiaries = body.beneficiaries or None
        row.additional_notes = body.additional_notes or None
        row.special_instructions = body.special_instructions or None
        message = "Trust formation application saved successfully"
    else:
        message = "Application saved - details to be provided after payment"

    session.add(row)
    session.commit()
    session.refresh(row)
    logger.info("trust formation application created id=%s details_now=%s", row.id, row.details_provided_now)
    return row_to_dict(row), message


def submit_inquiry(session: Session, payload: Any) -> None:
    try:
        inquiry = ContactInquiry.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInput("Validation failed", details=validation_details(exc.errors())) from None

    session.add(
        Inquiry(
            name=inquiry.name,
            email=inquiry.email,
            phone=inquiry.phone,
            company_name=inquiry.company_name or "",
            country=inquiry.jurisdiction,
            service_type=inquiry.service_type,
            message=inquiry.message,
        )
    )
    session.commit()
    logger.info("contact inquiry received service_type=%s", inquiry.service_type)
