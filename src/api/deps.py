"""FastAPI dependency injection functions."""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.core.config import get_settings
from src.core.supabase import get_supabase_client
from src.services.checkout_service import CheckoutService
from src.services.coupon_service import CouponLedger
from src.services.email_service import EmailService
from src.services.order_service import OrderService
from src.services.reconciler_service import PaymentReconciler


def get_order_service() -> OrderService:
    """Build an order service on the shared Supabase client."""
    return OrderService(get_supabase_client())


def get_coupon_ledger() -> CouponLedger:
    """Build a coupon ledger on the shared Supabase client."""
    return CouponLedger(get_supabase_client())


def get_checkout_service(
    orders: Annotated[OrderService, Depends(get_order_service)],
) -> CheckoutService:
    """Build the checkout session adapter."""
    return CheckoutService(order_service=orders)


def get_reconciler(
    orders: Annotated[OrderService, Depends(get_order_service)],
) -> PaymentReconciler:
    """Build the payment reconciler with its collaborators injected."""
    return PaymentReconciler(
        order_service=orders,
        coupon_ledger=orders.coupon_ledger,
        email_service=EmailService(),
    )


async def require_admin(
    x_admin_password: Annotated[str | None, Header(description="Admin password")] = None,
) -> None:
    """Require the shared admin password on admin endpoints.

    Raises:
        HTTPException: 503 if no admin password is configured, 401 if missing or wrong.
    """
    expected = get_settings().admin_password
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin password not configured",
        )

    if not x_admin_password or not secrets.compare_digest(x_admin_password, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin password",
        )


Orders = Annotated[OrderService, Depends(get_order_service)]
Coupons = Annotated[CouponLedger, Depends(get_coupon_ledger)]
Checkout = Annotated[CheckoutService, Depends(get_checkout_service)]
Reconciler = Annotated[PaymentReconciler, Depends(get_reconciler)]
AdminAuth = Annotated[None, Depends(require_admin)]
