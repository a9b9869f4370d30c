"""
Subscription reconciliation.

Webhooks can arrive before the profile exists (checkout with a new email,
sign-up finished later), leaving subscriptions with user_id NULL. These
jobs link them back by customer email and fill in missing customer IDs on
profiles. Safe to run repeatedly; one bad row never stops the batch.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional

import stripe

from ..db import get_admin_client, first_row
from ..models import SubscriptionStatus, TierType
from .errors import NotFoundError
from .logger import mask_email, mask_user_id
from .subscriptions import as_dict

logger = logging.getLogger(__name__)


class ReconciliationService:

    def __init__(self, client=None):
        self.client = client or get_admin_client()
        stripe.api_key = os.environ.get("STRIPE_SECRET_KEY")

    def recover_subscription_linking(self) -> dict:
        """
        Link every unlinked subscription to the profile with its customer's email.

        Returns:
        - processed: subscriptions linked
        - errors: subscriptions that could not be linked
        - total: unlinked subscriptions found
        - profiles_linked: profiles that got their customer ID filled in
        """
        result = (
            self.client.table("subscriptions")
            .select("id, stripe_customer_id, status, tier_type, created_at")
            .is_("user_id", "null")
            .order("created_at")
            .execute()
        )
        pending = result.data or []
        logger.info(f"Reconciliation: {len(pending)} unlinked subscription(s)")

        processed = 0
        errors = 0

        for subscription in pending:
            try:
                email = self._customer_email(subscription.get("stripe_customer_id"))
                if not email:
                    logger.warning(f"No customer email for subscription {subscription['id']}")
                    errors += 1
                    continue

                profile = self._profile_by_email(email)
                if not profile:
                    logger.warning(f"No profile for {mask_email(email)} (subscription {subscription['id']})")
                    errors += 1
                    continue

                self._link(subscription, profile["id"])
                processed += 1
                logger.info(f"Linked subscription {subscription['id']} to {mask_user_id(profile['id'])}")
            except Exception:
                logger.exception(f"Failed to link subscription {subscription['id']}")
                errors += 1

        profiles_linked = self.backfill_profile_customer_ids()

        summary = {
            "processed": processed,
            "errors": errors,
            "total": len(pending),
            "profiles_linked": profiles_linked,
        }
        logger.info(f"Reconciliation finished: {summary}")
        return summary

    def backfill_profile_customer_ids(self) -> int:
        """Fill profiles.stripe_customer_id from the customers table by email."""
        result = (
            self.client.table("profiles")
            .select("id, email")
            .is_("stripe_customer_id", "null")
            .execute()
        )

        linked = 0
        for profile in result.data or []:
            email = (profile.get("email") or "").strip().lower()
            if not email:
                continue
            try:
                customer = first_row(
                    self.client.table("customers")
                    .select("customer_id")
                    .eq("email", email)
                    .limit(1)
                    .execute()
                )
                if not customer:
                    continue
                (
                    self.client.table("profiles")
                    .update({"stripe_customer_id": customer["customer_id"]})
                    .eq("id", profile["id"])
                    .is_("stripe_customer_id", "null")
                    .execute()
                )
                linked += 1
            except Exception:
                logger.exception(f"Failed to backfill customer ID for {mask_user_id(profile['id'])}")

        return linked

    def recover_user_subscription(self, email: str) -> dict:
        """Run the linking steps for a single user, by email."""
        email = (email or "").strip().lower()
        profile = self._profile_by_email(email)
        if not profile:
            raise NotFoundError("User not found")

        customer_ids = {
            row["customer_id"]
            for row in (
                self.client.table("customers")
                .select("customer_id")
                .eq("email", email)
                .execute()
            ).data or []
        }
        if profile.get("stripe_customer_id"):
            customer_ids.add(profile["stripe_customer_id"])

        if not customer_ids:
            return {"linked": 0, "message": "No billing customer found for this email"}

        pending = (
            self.client.table("subscriptions")
            .select("id, stripe_customer_id, status, tier_type, created_at")
            .is_("user_id", "null")
            .in_("stripe_customer_id", sorted(customer_ids))
            .order("created_at")
            .execute()
        ).data or []

        for subscription in pending:
            self._link(subscription, profile["id"])

        logger.info(f"Recovered {len(pending)} subscription(s) for {mask_email(email)}")
        return {"linked": len(pending), "subscriptions": [s["id"] for s in pending]}

    def subscription_health(self) -> dict:
        """Counts that should all be zero on a healthy system."""
        unlinked = (
            self.client.table("subscriptions")
            .select("id", count="exact")
            .is_("user_id", "null")
            .execute()
        )
        missing_customer = (
            self.client.table("profiles")
            .select("id", count="exact")
            .is_("stripe_customer_id", "null")
            .execute()
        )
        active = (
            self.client.table("subscriptions")
            .select("user_id")
            .eq("status", SubscriptionStatus.ACTIVE.value)
            .execute()
        )

        per_user = {}
        for row in active.data or []:
            if row.get("user_id"):
                per_user[row["user_id"]] = per_user.get(row["user_id"], 0) + 1

        return {
            "unlinked_subscriptions": unlinked.count if unlinked.count is not None else len(unlinked.data or []),
            "profiles_missing_customer_id": (
                missing_customer.count if missing_customer.count is not None else len(missing_customer.data or [])
            ),
            "users_with_multiple_active": sum(1 for count in per_user.values() if count > 1),
        }

    def _customer_email(self, customer_id: Optional[str]) -> Optional[str]:
        """Customers table first, then the Stripe API."""
        if not customer_id:
            return None

        customer = first_row(
            self.client.table("customers")
            .select("email")
            .eq("customer_id", customer_id)
            .limit(1)
            .execute()
        )
        if customer and customer.get("email"):
            return customer["email"].strip().lower()

        try:
            remote = as_dict(stripe.Customer.retrieve(customer_id))
        except stripe.StripeError as e:
            logger.warning(f"Stripe customer lookup failed for {customer_id}: {e}")
            return None

        email = (remote.get("email") or "").strip().lower()
        if not email:
            return None

        self.client.table("customers").upsert({
            "customer_id": customer_id,
            "email": email,
        }, on_conflict="customer_id").execute()
        return email

    def _profile_by_email(self, email: str) -> Optional[dict]:
        return first_row(
            self.client.table("profiles")
            .select("id, email, stripe_customer_id")
            .eq("email", email)
            .limit(1)
            .execute()
        )

    def _link(self, subscription: dict, user_id: str) -> None:
        # Free placeholder rows give way to the real subscription
        (
            self.client.table("subscriptions")
            .delete()
            .eq("user_id", user_id)
            .eq("tier_type", TierType.FREE.value)
            .execute()
        )

        if subscription.get("status") == SubscriptionStatus.ACTIVE.value:
            # Keep the one-active-per-user index satisfied
            (
                self.client.table("subscriptions")
                .update({"status": SubscriptionStatus.CANCELED.value, "current": False})
                .eq("user_id", user_id)
                .eq("status", SubscriptionStatus.ACTIVE.value)
                .execute()
            )

        (
            self.client.table("subscriptions")
            .update({
                "user_id": user_id,
                "current": True,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })
            .eq("id", subscription["id"])
            .execute()
        )

        if subscription.get("stripe_customer_id"):
            (
                self.client.table("profiles")
                .update({"stripe_customer_id": subscription["stripe_customer_id"]})
                .eq("id", user_id)
                .is_("stripe_customer_id", "null")
                .execute()
            )
