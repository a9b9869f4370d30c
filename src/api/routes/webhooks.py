"""
Webhook handlers.

Handles:
- POST /stripe - Billing events (customers + subscription lifecycle)
- POST /vapi - Voice-AI server messages (end-of-call reports, status updates)

Subscription state is managed from Stripe webhooks; the local table is a mirror.
"""

import json
import logging
import os

from fastapi import APIRouter, Request
import stripe

from ...lib import CallService, ConfigurationError, SubscriptionService, ValidationError
from ...lib.calls import verify_webhook_secret
from ...lib.subscriptions import CUSTOMER_EVENTS, SUBSCRIPTION_EVENTS

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe")
async def stripe_webhook(request: Request):
    """
    Handle Stripe webhook events.

    Verifies webhook signature for security.

    Events handled:
    - customer.created / customer.updated: mirror customer email
    - customer.subscription.*: upsert subscription (status mapped, user resolved)

    All other events are acknowledged but ignored.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    webhook_secret = os.environ.get("STRIPE_WEBHOOK_SECRET")

    if not webhook_secret:
        raise ConfigurationError("Webhook secret not configured")

    try:
        stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
    except ValueError as e:
        raise ValidationError("Invalid payload") from e
    except stripe.SignatureVerificationError as e:
        raise ValidationError("Invalid signature") from e

    # Signature checked; work on the plain JSON from here
    event = json.loads(payload)
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type in CUSTOMER_EVENTS:
        service = SubscriptionService()
        service.handle_customer_event(obj)

    elif event_type in SUBSCRIPTION_EVENTS:
        service = SubscriptionService()
        await service.handle_subscription_event(obj)

    else:
        logger.debug(f"Ignoring Stripe event {event_type}")

    return {"received": True}


@router.post("/vapi")
async def vapi_webhook(request: Request):
    """
    Voice-AI server messages.

    Authenticated by the shared secret in x-vapi-secret.
    end-of-call-report stores the analysis; status-update notifies open
    dashboards. Everything else is acknowledged.
    """
    secret = request.headers.get("x-vapi-secret")
    verify_webhook_secret(secret)

    try:
        envelope = await request.json()
    except json.JSONDecodeError as e:
        raise ValidationError("Invalid payload") from e

    service = CallService()
    return service.handle_end_of_call(secret, envelope)
