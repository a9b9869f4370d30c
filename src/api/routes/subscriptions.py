"""
Subscription management routes.
All self-serve - no support tickets needed.

Endpoints:
- GET /status - Active subscription check
- POST /checkout - Start subscription
- POST /confirm - Link subscription after checkout success
- POST /manage-url - Customer portal URL (update payment method)
- POST /cancel - Cancel at period end
- GET /transactions - Invoice history
- GET /transactions/stats - Invoice totals
- GET /prices - Configured price IDs
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...config import SITE_URL
from ...lib import SubscriptionService, get_current_user
from ...models import CheckoutRequest, ConfirmCheckoutRequest, ManageUrlRequest


router = APIRouter()


@router.get("/status")
async def check_subscription(
    user: dict = Depends(get_current_user)
):
    """
    Returns:
    - hasActiveSubscription: bool
    - subscription: {id, status, current_period_start_at, current_period_end_at} or null
    """
    service = SubscriptionService()
    return service.check_subscription(user["id"])


@router.post("/checkout")
async def create_checkout_session(
    body: CheckoutRequest,
    user: dict = Depends(get_current_user)
):
    """
    Create Stripe Checkout session for subscription.

    Body:
    - price_id: STRIPE_PRICE_MONTHLY or STRIPE_PRICE_YEARLY

    Returns:
    - checkout_url: Redirect user here to complete payment
    """
    service = SubscriptionService()
    checkout_url = service.create_checkout_session(
        user_id=user["id"],
        price_id=body.price_id,
        success_url=f"{SITE_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{SITE_URL}/pricing",
    )
    return {"checkout_url": checkout_url}


@router.post("/confirm")
async def confirm_checkout(
    body: ConfirmCheckoutRequest,
    user: dict = Depends(get_current_user)
):
    """
    Returns:
    - success, subscriptionId
    - redirect: where the UI goes next (/onboarding/processing)
    """
    service = SubscriptionService()
    return await service.confirm_checkout(user["id"], body.session_id)


@router.post("/manage-url")
async def get_management_url(
    body: ManageUrlRequest,
    user: dict = Depends(get_current_user)
):
    """
    Body:
    - subscription_id: must start with "sub_" and belong to the user

    Returns:
    - url: customer portal session
    """
    service = SubscriptionService()
    url = service.get_management_url(user["id"], body.subscription_id, f"{SITE_URL}/settings/billing")
    return {"url": url}


@router.post("/cancel")
async def cancel_subscription(
    user: dict = Depends(get_current_user)
):
    """
    Cancel subscription at end of billing period.

    Returns:
    - success
    - ends_at: When access ends
    """
    service = SubscriptionService()
    return service.cancel_subscription(user["id"])


@router.get("/transactions")
async def list_transactions(
    limit: int = Query(default=20, ge=1, le=100),
    status: Optional[str] = Query(default=None),
    user: dict = Depends(get_current_user)
):
    service = SubscriptionService()
    return {"transactions": service.list_transactions(user["id"], limit=limit, status=status)}


@router.get("/transactions/stats")
async def transaction_stats(
    days: int = Query(default=30, ge=1, le=365),
    user: dict = Depends(get_current_user)
):
    service = SubscriptionService()
    return {"stats": service.transaction_stats(user["id"], days=days)}


@router.get("/prices")
async def get_prices():
    """
    Get available subscription prices.
    Monthly or yearly, no tiers.
    """
    return SubscriptionService.get_prices()
