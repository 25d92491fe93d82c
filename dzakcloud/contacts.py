"""Contact form submission and the admin triage endpoints."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, status

from .database import Database
from .pagination import Page, Paginator
from .schemas import (
    ContactChangeResponse,
    ContactCreatedResponse,
    ContactListResponse,
    ContactResponse,
    ContactStatsResponse,
    CreateContactRequest,
    UpdateContactRequest,
    contact_to_view,
    stats_to_view,
)
from .security import AdminTokenAuth

logger = logging.getLogger("dzakcloud.contacts")


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")


def register_contact_routes(
    app: FastAPI,
    database: Database,
    *,
    admin: AdminTokenAuth,
    paginator: Paginator,
) -> None:
    """Expose the contact endpoints on the provided FastAPI application."""

    @app.post(
        "/api/contact",
        status_code=status.HTTP_201_CREATED,
        response_model=ContactCreatedResponse,
    )
    def create_contact(request: CreateContactRequest) -> ContactCreatedResponse:
        contact = database.create_contact(
            name=request.name,
            email=request.email,
            topic=request.topic,
            subject=request.subject,
            description=request.description,
        )
        logger.info("Received contact %s about %r", contact.id, contact.topic)
        return ContactCreatedResponse(
            message="Your message has been received. We'll get back to you soon!",
            contact_id=contact.id,
            contact=contact_to_view(contact),
        )

    @app.get(
        "/api/contacts/stats",
        response_model=ContactStatsResponse,
        dependencies=[Depends(admin)],
    )
    def contact_stats() -> ContactStatsResponse:
        return ContactStatsResponse(stats=stats_to_view(database.contact_stats()))

    @app.get(
        "/api/contacts",
        response_model=ContactListResponse,
        dependencies=[Depends(admin)],
    )
    def list_contacts(
        status_filter: Optional[str] = Query(default=None, alias="status"),
        page: Page = Depends(paginator),
    ) -> ContactListResponse:
        normalized = status_filter.strip().lower() if status_filter and status_filter.strip() else None
        contacts = database.list_contacts(status=normalized, limit=page.limit, offset=page.offset)
        return ContactListResponse(
            count=len(contacts),
            total=database.count_contacts(status=normalized),
            limit=page.limit,
            offset=page.offset,
            contacts=[contact_to_view(contact) for contact in contacts],
        )

    @app.get(
        "/api/contact/{contact_id}",
        response_model=ContactResponse,
        dependencies=[Depends(admin)],
    )
    def get_contact(contact_id: int) -> ContactResponse:
        contact = database.get_contact(contact_id)
        if contact is None:
            raise _not_found()
        return ContactResponse(contact=contact_to_view(contact))

    @app.patch(
        "/api/contact/{contact_id}",
        response_model=ContactChangeResponse,
        dependencies=[Depends(admin)],
    )
    def update_contact(contact_id: int, request: UpdateContactRequest) -> ContactChangeResponse:
        if database.get_contact(contact_id) is None:
            raise _not_found()

        if request.status is None and request.notes is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

        contact = database.update_contact(contact_id, status=request.status, notes=request.notes)
        if contact is None:
            raise _not_found()

        logger.info("Contact %s updated (status=%s)", contact.id, contact.status)
        return ContactChangeResponse(
            message="Contact updated successfully",
            contact=contact_to_view(contact),
        )

    @app.delete(
        "/api/contact/{contact_id}",
        response_model=ContactChangeResponse,
        dependencies=[Depends(admin)],
    )
    def delete_contact(contact_id: int) -> ContactChangeResponse:
        contact = database.delete_contact(contact_id)
        if contact is None:
            raise _not_found()

        logger.info("Contact %s deleted", contact.id)
        return ContactChangeResponse(
            message="Contact deleted successfully",
            contact=contact_to_view(contact),
        )


__all__ = ["register_contact_routes"]
