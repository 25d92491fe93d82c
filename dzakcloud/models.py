"""Domain models persisted by the site backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional


CONTACT_STATUSES = ("new", "in_progress", "resolved")


@dataclass(frozen=True)
class User:
    """A customer account created through registration."""

    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Payment:
    """A payment record created for a checkout attempt."""

    id: int
    user_id: Optional[int]
    email: str
    amount: Decimal
    currency: str
    service: str
    payment_id: str
    status: str
    qr_code_url: Optional[str]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Contact:
    """An inquiry submitted through the public contact form."""

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


@dataclass(frozen=True)
class ContactStats:
    total: int = 0
    new: int = 0
    in_progress: int = 0
    resolved: int = 0
    topic_breakdown: Dict[str, int] = field(default_factory=dict)


__all__ = ["CONTACT_STATUSES", "Contact", "ContactStats", "Payment", "User"]
