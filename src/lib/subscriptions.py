"""
Subscription management service.
Handles Stripe integration for billing.

Key design:
- Stripe webhooks are the source of truth; the subscriptions table mirrors them
- One active subscription per user (older rows are retired on activation)
- Subscriptions that can't be tied to a user yet are stored with user_id NULL
  and linked later by reconciliation
- Self-serve everything: checkout, customer portal, cancel at period end
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

import stripe

from ..db import get_admin_client, first_row
from ..models import SubscriptionStatus, TierType
from .errors import AppError, ForbiddenError, NotFoundError, ValidationError
from .logger import mask_user_id, sanitize_data

logger = logging.getLogger(__name__)

# Stripe status -> local status
STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE.value,
    "trialing": SubscriptionStatus.TRIALING.value,
    "past_due": SubscriptionStatus.PAST_DUE.value,
    "unpaid": SubscriptionStatus.PAST_DUE.value,
    "paused": SubscriptionStatus.PAUSED.value,
    "canceled": SubscriptionStatus.CANCELED.value,
    "incomplete_expired": SubscriptionStatus.CANCELED.value,
    "incomplete": SubscriptionStatus.PENDING.value,
}

SUBSCRIPTION_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "customer.subscription.paused",
    "customer.subscription.resumed",
)

CUSTOMER_EVENTS = ("customer.created", "customer.updated")

CHECKOUT_REDIRECT_PATH = "/onboarding/processing"


def map_status(stripe_status: Optional[str]) -> str:
    return STATUS_MAP.get(stripe_status or "", SubscriptionStatus.PENDING.value)


def is_active_subscription(row: Optional[dict]) -> bool:
    """Active or trialing, and not a free tier row."""
    if not row:
        return False
    return (
        row.get("status") in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value)
        and row.get("tier_type") != TierType.FREE.value
    )


def as_dict(obj) -> dict:
    """Stripe objects as plain dicts (StripeObject is not a dict in every SDK version)."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None) or getattr(obj, "to_dict_recursive", None)
    if to_dict:
        return to_dict()
    return dict(obj)


def _timestamp(value) -> Optional[str]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()


class SubscriptionService:
    """Handles all subscription and billing logic."""

    def __init__(
        self,
        client=None,
        provisioner: Optional[Callable[[str], Awaitable]] = None,
        deprovisioner: Optional[Callable[[str], Awaitable]] = None,
    ):
        self.client = client or get_admin_client()
        stripe.api_key = os.environ.get("STRIPE_SECRET_KEY")
        self._provisioner = provisioner
        self._deprovisioner = deprovisioner

    # --- Reads -----------------------------------------------------------

    def check_subscription(self, user_id: str) -> dict:
        """
        Is there an active subscription for this user?

        Returns:
        - hasActiveSubscription: bool
        - subscription: {id, status, current_period_start_at, current_period_end_at} or None
        """
        result = (
            self.client.table("subscriptions")
            .select("id, status, current_period_start_at, current_period_end_at")
            .eq("user_id", user_id)
            .eq("status", SubscriptionStatus.ACTIVE.value)
            .limit(1)
            .execute()
        )

        row = first_row(result)
        if not row:
            return {"hasActiveSubscription": False, "subscription": None}

        return {
            "hasActiveSubscription": True,
            "subscription": {
                "id": row["id"],
                "status": row["status"],
                "current_period_start_at": row.get("current_period_start_at"),
                "current_period_end_at": row.get("current_period_end_at"),
            },
        }

    @staticmethod
    def get_prices() -> dict:
        """Configured price IDs for the pricing page."""
        return {
            "monthly": {
                "price_id": os.environ.get("STRIPE_PRICE_MONTHLY"),
                "interval": "month",
            },
            "yearly": {
                "price_id": os.environ.get("STRIPE_PRICE_YEARLY"),
                "interval": "year",
            },
        }

    def _allowed_price_ids(self) -> set:
        return {p["price_id"] for p in self.get_prices().values() if p["price_id"]}

    def _get_profile(self, user_id: str) -> dict:
        result = (
            self.client.table("profiles")
            .select("id, email, stripe_customer_id")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        profile = first_row(result)
        if not profile:
            raise NotFoundError("User not found")
        return profile

    # --- Checkout --------------------------------------------------------

    def create_checkout_session(self, user_id: str, price_id: str, success_url: str, cancel_url: str) -> str:
        """
        Create a Stripe Checkout session for subscription.
        Returns the checkout URL.
        """
        if price_id not in self._allowed_price_ids():
            raise ValidationError("Invalid price")

        profile = self._get_profile(user_id)
        customer_id = profile.get("stripe_customer_id")

        if not customer_id:
            customer = stripe.Customer.create(
                email=profile["email"],
                metadata={"user_id": user_id}
            )
            customer_id = customer.id

            self.client.table("profiles").update({
                "stripe_customer_id": customer_id
            }).eq("id", user_id).execute()

        session = stripe.checkout.Session.create(
            customer=customer_id,
            mode="subscription",
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            client_reference_id=user_id,
            metadata={"user_id": user_id},
            subscription_data={"metadata": {"user_id": user_id}},
        )

        return session.url

    async def confirm_checkout(self, user_id: str, session_id: str) -> dict:
        """
        Called from the checkout success page.
        Links the new subscription right away instead of waiting for the webhook.
        """
        if not session_id or not session_id.startswith("cs_"):
            raise ValidationError("Invalid checkout session")

        session = as_dict(stripe.checkout.Session.retrieve(session_id))
        owner = session.get("client_reference_id") or (session.get("metadata") or {}).get("user_id")

        if owner != user_id:
            logger.warning(f"Checkout session owner mismatch for {mask_user_id(user_id)}")
            raise ForbiddenError("Checkout session does not belong to this user")

        if session.get("status") != "complete":
            raise ValidationError("Checkout not completed")

        subscription_id = session.get("subscription")
        if isinstance(subscription_id, dict):
            subscription_id = subscription_id.get("id")
        if not subscription_id:
            raise ValidationError("Checkout session has no subscription")

        subscription = as_dict(stripe.Subscription.retrieve(subscription_id))
        await self.handle_subscription_event(subscription, user_id=user_id)

        return {
            "success": True,
            "subscriptionId": subscription_id,
            "redirect": CHECKOUT_REDIRECT_PATH,
        }

    # --- Self-serve management ------------------------------------------

    def get_management_url(self, user_id: str, subscription_id, return_url: str) -> str:
        """
        Customer portal URL for a subscription the user owns.
        Tries the "update payment method" flow first, then the plain portal.
        """
        if not isinstance(subscription_id, str) or not subscription_id.startswith("sub_"):
            raise ValidationError("Invalid subscription ID")

        result = (
            self.client.table("subscriptions")
            .select("id, stripe_customer_id")
            .eq("id", subscription_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        row = first_row(result)
        if not row:
            raise NotFoundError("Subscription not found")

        customer_id = row.get("stripe_customer_id") or self._get_profile(user_id).get("stripe_customer_id")
        if not customer_id:
            raise NotFoundError("No billing account found")

        url = None
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
                flow_data={
                    "type": "payment_method_update",
                    "after_completion": {
                        "type": "redirect",
                        "redirect": {"return_url": return_url},
                    },
                },
            )
            url = session.url
        except stripe.InvalidRequestError as e:
            logger.info(f"Payment method flow rejected, falling back to portal: {e.user_message or e}")

        if not url:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
            )
            url = session.url

        if not url:
            raise AppError("Could not create management URL", status_code=500)

        return url

    def cancel_subscription(self, user_id: str) -> dict:
        """
        Cancel subscription at end of billing period.
        The user keeps access until the paid period ends.
        """
        result = (
            self.client.table("subscriptions")
            .select("id, current_period_end_at")
            .eq("user_id", user_id)
            .eq("status", SubscriptionStatus.ACTIVE.value)
            .limit(1)
            .execute()
        )
        row = first_row(result)
        if not row:
            raise NotFoundError("No active subscription")

        subscription = as_dict(stripe.Subscription.modify(row["id"], cancel_at_period_end=True))

        self.client.table("subscriptions").update({
            "cancel_at_period_end": True,
        }).eq("id", row["id"]).execute()

        return {
            "success": True,
            "ends_at": _timestamp(self._period_bounds(subscription)[1]) or row.get("current_period_end_at"),
        }

    # --- Transactions ----------------------------------------------------

    def list_transactions(self, user_id: str, limit: int = 20, status: Optional[str] = None) -> list[dict]:
        customer_id = self._get_profile(user_id).get("stripe_customer_id")
        if not customer_id:
            return []

        params = {"customer": customer_id, "limit": max(1, min(limit, 100))}
        if status:
            params["status"] = status

        invoices = stripe.Invoice.list(**params)
        return [self._invoice_summary(as_dict(invoice)) for invoice in invoices.data]

    def transaction_stats(self, user_id: str, days: int = 30) -> dict:
        """Counts and totals of the user's invoices over the last `days` days."""
        stats = {"total_count": 0, "paid_count": 0, "total_revenue": 0.0, "currencies": {}}

        customer_id = self._get_profile(user_id).get("stripe_customer_id")
        if not customer_id:
            return stats

        since = datetime.now(timezone.utc) - timedelta(days=days)
        invoices = stripe.Invoice.list(
            customer=customer_id,
            created={"gte": int(since.timestamp())},
            limit=100,
        )

        for invoice in invoices.data:
            invoice = as_dict(invoice)
            stats["total_count"] += 1
            if invoice.get("status") != "paid":
                continue
            amount = (invoice.get("amount_paid") or 0) / 100
            currency = (invoice.get("currency") or "usd").upper()
            stats["paid_count"] += 1
            stats["total_revenue"] += amount
            stats["currencies"][currency] = stats["currencies"].get(currency, 0) + amount

        return stats

    @staticmethod
    def _invoice_summary(invoice: dict) -> dict:
        return {
            "id": invoice.get("id"),
            "status": invoice.get("status"),
            "amount": (invoice.get("amount_paid") or invoice.get("amount_due") or 0) / 100,
            "currency": (invoice.get("currency") or "usd").upper(),
            "created_at": _timestamp(invoice.get("created")),
            "hosted_invoice_url": invoice.get("hosted_invoice_url"),
            "invoice_pdf": invoice.get("invoice_pdf"),
        }

    # --- Webhooks --------------------------------------------------------

    def handle_customer_event(self, customer: dict) -> None:
        """customer.created / customer.updated: mirror the customer's email."""
        customer_id = customer.get("id")
        email = (customer.get("email") or "").strip().lower()

        if not customer_id or not email:
            logger.info(f"Customer event without id or email; skipped: {sanitize_data(customer)}")
            return

        self.client.table("customers").upsert({
            "customer_id": customer_id,
            "email": email,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }, on_conflict="customer_id").execute()

    async def handle_subscription_event(self, subscription: dict, user_id: Optional[str] = None) -> dict:
        """
        Upsert the local mirror of a Stripe subscription.

        User resolution order: existing row, metadata.user_id, then the
        profile holding this Stripe customer. Unresolved rows keep user_id NULL.
        """
        subscription_id = subscription.get("id")
        if not subscription_id:
            raise ValidationError("Subscription event without id")

        row = self.subscription_row(subscription)

        existing = first_row(
            self.client.table("subscriptions")
            .select("id, user_id, status, current")
            .eq("id", subscription_id)
            .limit(1)
            .execute()
        )

        user_id = (
            user_id
            or (existing or {}).get("user_id")
            or (subscription.get("metadata") or {}).get("user_id")
            or self._user_for_customer(row["stripe_customer_id"])
        )
        row["user_id"] = user_id

        is_active = row["status"] == SubscriptionStatus.ACTIVE.value
        was_active = bool(existing) and existing.get("status") == SubscriptionStatus.ACTIVE.value
        was_canceled = bool(existing) and existing.get("status") == SubscriptionStatus.CANCELED.value

        if is_active:
            row["current"] = True
            if user_id:
                self._retire_other_subscriptions(user_id, subscription_id)
        elif existing is None:
            row["current"] = True

        self.client.table("subscriptions").upsert(row, on_conflict="id").execute()

        if user_id is None:
            logger.warning(f"Subscription {subscription_id} stored without a user; awaiting reconciliation")
        else:
            logger.info(f"Subscription {subscription_id} -> {row['status']} for {mask_user_id(user_id)}")

        if is_active and not was_active and user_id:
            await self._provision(user_id)
        elif row["status"] == SubscriptionStatus.CANCELED.value and not was_canceled and user_id:
            await self._release(user_id)

        return {"subscription_id": subscription_id, "user_id": user_id, "status": row["status"]}

    def subscription_row(self, subscription: dict) -> dict:
        """Map a Stripe subscription onto the subscriptions table columns."""
        items = ((subscription.get("items") or {}).get("data")) or []
        first_item = items[0] if items else {}
        price = first_item.get("price") or {}
        period_start, period_end = self._period_bounds(subscription)

        tier = TierType.PAID.value
        if price.get("unit_amount") == 0:
            tier = TierType.FREE.value

        customer = subscription.get("customer")
        if isinstance(customer, dict):
            customer = customer.get("id")

        return {
            "id": subscription["id"],
            "stripe_customer_id": customer,
            "status": map_status(subscription.get("status")),
            "price_id": price.get("id"),
            "quantity": first_item.get("quantity") or 1,
            "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
            "current_period_start_at": _timestamp(period_start),
            "current_period_end_at": _timestamp(period_end),
            "cancel_at": _timestamp(subscription.get("cancel_at")),
            "canceled_at": _timestamp(subscription.get("canceled_at")),
            "ended_at": _timestamp(subscription.get("ended_at")),
            "trial_end_at": _timestamp(subscription.get("trial_end")),
            "tier_type": tier,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    def _period_bounds(subscription: dict) -> tuple:
        # Newer API versions carry the period on the subscription items
        start = subscription.get("current_period_start")
        end = subscription.get("current_period_end")
        if start and end:
            return start, end
        items = ((subscription.get("items") or {}).get("data")) or []
        if items:
            return items[0].get("current_period_start"), items[0].get("current_period_end")
        return None, None

    def _user_for_customer(self, customer_id: Optional[str]) -> Optional[str]:
        if not customer_id:
            return None
        profile = first_row(
            self.client.table("profiles")
            .select("id")
            .eq("stripe_customer_id", customer_id)
            .limit(1)
            .execute()
        )
        return profile["id"] if profile else None

    def _retire_other_subscriptions(self, user_id: str, keep_id: str) -> None:
        """One active subscription per user: everything else stops being current."""
        (
            self.client.table("subscriptions")
            .update({"current": False})
            .eq("user_id", user_id)
            .neq("id", keep_id)
            .execute()
        )
        retired = (
            self.client.table("subscriptions")
            .update({"status": SubscriptionStatus.CANCELED.value})
            .eq("user_id", user_id)
            .eq("status", SubscriptionStatus.ACTIVE.value)
            .neq("id", keep_id)
            .execute()
        )
        if retired.data:
            logger.info(f"Canceled {len(retired.data)} older active subscription(s) for {mask_user_id(user_id)}")

    async def _provision(self, user_id: str) -> None:
        """Best effort: a failed phone number purchase never fails the webhook."""
        try:
            provisioner = self._provisioner
            if provisioner is None:
                from .telephony import TelephonyService
                provisioner = TelephonyService(client=self.client).provision_for_user

            await provisioner(user_id)
        except Exception:
            logger.exception(f"Phone number provisioning failed for {mask_user_id(user_id)}")

    async def _release(self, user_id: str) -> None:
        """Best effort: give the number back once no active subscription is left."""
        remaining = first_row(
            self.client.table("subscriptions")
            .select("id")
            .eq("user_id", user_id)
            .eq("status", SubscriptionStatus.ACTIVE.value)
            .limit(1)
            .execute()
        )
        if remaining:
            return

        try:
            deprovisioner = self._deprovisioner
            if deprovisioner is None:
                from .telephony import TelephonyService
                deprovisioner = TelephonyService(client=self.client).release_for_user

            await deprovisioner(user_id)
        except Exception:
            logger.exception(f"Phone number release failed for {mask_user_id(user_id)}")
