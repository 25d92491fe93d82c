"""Request and response bodies for the JSON API.

Every response shares one envelope: ``{"success": true, ...}`` on success and
``{"success": false, "error": "..."}`` on failure. Keys are camelCase on the
wire; models are populated by their snake_case field names in Python.
"""
from __future__ import annotations

import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from .models import Contact, ContactStats, Payment, User

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6
MISSING_FIELDS_MESSAGE = "Missing required fields"

_MAX_AMOUNT = Decimal("100000000")


def _require_text(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError(MISSING_FIELDS_MESSAGE)
    return stripped


def _check_email(value: str) -> str:
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email format")
    return value


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----------------------------------------------------------------------
# Requests
# ----------------------------------------------------------------------
class RegisterRequest(CamelModel):
    name: str
    email: str
    password: str

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return _require_text(value)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return _check_email(_require_text(value))

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        if not value:
            raise ValueError(MISSING_FIELDS_MESSAGE)
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        return value


class LoginRequest(CamelModel):
    email: str
    password: str

    @field_validator("email", "password")
    @classmethod
    def _require_credentials(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Email and password are required")
        return value


class UpdateProfileRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: Optional[str]) -> Optional[str]:
        stripped = _blank_to_none(value)
        if stripped is None:
            return None
        return _check_email(stripped)


class CreateContactRequest(CamelModel):
    name: str
    email: str
    topic: str
    subject: str
    description: str

    @field_validator("name", "topic", "subject", "description")
    @classmethod
    def _require_fields(cls, value: str) -> str:
        return _require_text(value)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return _check_email(_require_text(value))


class UpdateContactRequest(CamelModel):
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _normalize_status(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        if not stripped:
            raise ValueError("Status must not be empty")
        return stripped


class CreatePaymentRequest(CamelModel):
    email: str
    service: str
    amount: Decimal
    qr_code_url: Optional[str] = None
    payment_id: Optional[str] = None
    status: Optional[str] = None

    @field_validator("email", "service")
    @classmethod
    def _require_fields(cls, value: str) -> str:
        return _require_text(value)

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: Decimal) -> Decimal:
        if value >= _MAX_AMOUNT:
            raise ValueError("Amount is too large")
        amount = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        return amount

    @field_validator("qr_code_url", "payment_id", "status")
    @classmethod
    def _normalize_optional(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)


class UpdatePaymentRequest(CamelModel):
    status: str

    @field_validator("status")
    @classmethod
    def _require_status(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Status is required")
        return stripped


# ----------------------------------------------------------------------
# Records
# ----------------------------------------------------------------------
class UserView(CamelModel):
    id: int
    name: str
    email: str
    created_at: datetime


class ContactView(CamelModel):
    id: int
    name: str
    email: str
    topic: str
    subject: str
    description: str
    status: str
    notes: str
    created_at: datetime
    updated_at: datetime


class PaymentView(CamelModel):
    id: int
    user_id: Optional[int]
    email: str
    amount: float
    currency: str
    service: str
    payment_id: str
    status: str
    qr_code_url: Optional[str]
    created_at: datetime
    updated_at: datetime


class ContactStatsView(CamelModel):
    total: int
    new: int
    in_progress: int
    resolved: int
    topic_breakdown: Dict[str, int]


def user_to_view(user: User) -> UserView:
    return UserView(id=user.id, name=user.name, email=user.email, created_at=user.created_at)


def contact_to_view(contact: Contact) -> ContactView:
    return ContactView(
        id=contact.id,
        name=contact.name,
        email=contact.email,
        topic=contact.topic,
        subject=contact.subject,
        description=contact.description,
        status=contact.status,
        notes=contact.notes,
        created_at=contact.created_at,
        updated_at=contact.updated_at,
    )


def payment_to_view(payment: Payment) -> PaymentView:
    return PaymentView(
        id=payment.id,
        user_id=payment.user_id,
        email=payment.email,
        amount=float(payment.amount),
        currency=payment.currency,
        service=payment.service,
        payment_id=payment.payment_id,
        status=payment.status,
        qr_code_url=payment.qr_code_url,
        created_at=payment.created_at,
        updated_at=payment.updated_at,
    )


def stats_to_view(stats: ContactStats) -> ContactStatsView:
    return ContactStatsView(
        total=stats.total,
        new=stats.new,
        in_progress=stats.in_progress,
        resolved=stats.resolved,
        topic_breakdown=dict(stats.topic_breakdown),
    )


# ----------------------------------------------------------------------
# Envelopes
# ----------------------------------------------------------------------
class Envelope(CamelModel):
    success: bool = True


class ErrorResponse(Envelope):
    success: bool = False
    error: str


class MessageResponse(Envelope):
    message: str


class PingResponse(BaseModel):
    message: str


class AuthResponse(Envelope):
    message: str
    token: str
    user: UserView


class ProfileResponse(Envelope):
    user: UserView


class ProfileUpdateResponse(ProfileResponse):
    message: str


class ContactCreatedResponse(Envelope):
    message: str
    contact_id: int
    contact: ContactView


class ContactResponse(Envelope):
    contact: ContactView


class ContactChangeResponse(ContactResponse):
    message: str


class ContactListResponse(Envelope):
    count: int
    total: int
    limit: int
    offset: int
    contacts: List[ContactView]


class ContactStatsResponse(Envelope):
    stats: ContactStatsView


class PaymentCreatedResponse(Envelope):
    payment_id: str
    message: str
    payment: PaymentView


class PaymentResponse(Envelope):
    payment: PaymentView


class PaymentChangeResponse(PaymentResponse):
    message: str


class PaymentListResponse(Envelope):
    count: int
    total: int
    limit: int
    offset: int
    payments: List[PaymentView]
