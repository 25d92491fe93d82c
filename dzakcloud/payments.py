"""Checkout payment records."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, status

from .database import DEFAULT_PAYMENT_STATUS, Database, DuplicateRecordError
from .models import User
from .pagination import Page, Paginator
from .schemas import (
    CreatePaymentRequest,
    PaymentChangeResponse,
    PaymentCreatedResponse,
    PaymentListResponse,
    PaymentResponse,
    UpdatePaymentRequest,
    payment_to_view,
)
from .security import AdminTokenAuth, BearerAuth

logger = logging.getLogger("dzakcloud.payments")


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")


def register_payment_routes(
    app: FastAPI,
    database: Database,
    *,
    auth: BearerAuth,
    admin: AdminTokenAuth,
    paginator: Paginator,
) -> None:
    """Expose the payment endpoints on the provided FastAPI application."""

    @app.post(
        "/api/payment",
        status_code=status.HTTP_201_CREATED,
        response_model=PaymentCreatedResponse,
    )
    def create_payment(
        request: CreatePaymentRequest,
        user: Optional[User] = Depends(auth.optional),
    ) -> PaymentCreatedResponse:
        try:
            payment = database.create_payment(
                email=request.email,
                service=request.service,
                amount=request.amount,
                payment_id=request.payment_id,
                status=request.status or DEFAULT_PAYMENT_STATUS,
                qr_code_url=request.qr_code_url,
                user_id=user.id if user is not None else None,
            )
        except DuplicateRecordError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

        logger.info(
            "Created payment %s for %s (%s %s)",
            payment.payment_id,
            payment.service,
            payment.amount,
            payment.currency,
        )
        return PaymentCreatedResponse(
            payment_id=payment.payment_id,
            message="Payment created successfully",
            payment=payment_to_view(payment),
        )

    @app.get("/api/payment/{payment_id}", response_model=PaymentResponse)
    def get_payment(payment_id: str) -> PaymentResponse:
        payment = database.get_payment(payment_id)
        if payment is None:
            raise _not_found()
        return PaymentResponse(payment=payment_to_view(payment))

    @app.get(
        "/api/payments",
        response_model=PaymentListResponse,
        dependencies=[Depends(admin)],
    )
    def list_payments(page: Page = Depends(paginator)) -> PaymentListResponse:
        payments = database.list_payments(limit=page.limit, offset=page.offset)
        return PaymentListResponse(
            count=len(payments),
            total=database.count_payments(),
            limit=page.limit,
            offset=page.offset,
            payments=[payment_to_view(payment) for payment in payments],
        )

    @app.patch(
        "/api/payment/{payment_id}",
        response_model=PaymentChangeResponse,
        dependencies=[Depends(admin)],
    )
    def update_payment(payment_id: str, request: UpdatePaymentRequest) -> PaymentChangeResponse:
        payment = database.update_payment_status(payment_id, request.status)
        if payment is None:
            raise _not_found()

        logger.info("Payment %s moved to status %s", payment.payment_id, payment.status)
        return PaymentChangeResponse(
            message="Payment updated successfully",
            payment=payment_to_view(payment),
        )


__all__ = ["register_payment_routes"]
