#!/usr/bin/env python3
"""
Admin utilities for the Spoqen API.

Commands:
    python scripts/admin.py stats                - Show database stats
    python scripts/admin.py users                - List recent users
    python scripts/admin.py subscription EMAIL   - Show a user's subscriptions
    python scripts/admin.py recover [EMAIL]      - Link unlinked subscriptions (all, or one user)
    python scripts/admin.py health               - Subscription consistency counts
    python scripts/admin.py check-config         - List missing environment variables
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import LOG_LEVEL, validate_config
from src.db import get_admin_client, first_row
from src.lib.logger import configure_logging
from src.lib.reconciliation import ReconciliationService


def cmd_stats(client, args):
    """Show database statistics."""
    print("\n📊 Database Statistics")
    print("=" * 40)

    profiles = client.table("profiles").select("id", count="exact").execute()
    print(f"Users: {profiles.count or 0}")

    active = (
        client.table("subscriptions")
        .select("id", count="exact")
        .eq("status", "active")
        .execute()
    )
    print(f"Active subscriptions: {active.count or 0}")

    assistants = (
        client.table("ai_settings")
        .select("user_id", count="exact")
        .not_.is_("vapi_assistant_id", "null")
        .execute()
    )
    print(f"Assistants: {assistants.count or 0}")

    numbers = (
        client.table("phone_numbers")
        .select("id", count="exact")
        .eq("status", "active")
        .execute()
    )
    print(f"Phone numbers: {numbers.count or 0}")

    analyses = client.table("call_analysis").select("id", count="exact").execute()
    print(f"Analyzed calls: {analyses.count or 0}")


def cmd_users(client, args):
    """List recent users."""
    print("\n👤 Recent Users")
    print("=" * 60)

    result = (
        client.table("profiles")
        .select("id, email, full_name, created_at")
        .order("created_at", desc=True)
        .limit(20)
        .execute()
    )

    for user in result.data or []:
        email = (user.get("email") or "")[:30]
        name = (user.get("full_name") or "")[:20]
        created = (user.get("created_at") or "")[:10]
        print(f"  {email:30} {name:20} ({created})")


def cmd_subscription(client, args):
    """Show every subscription row for one user."""
    email = args.email.strip().lower()
    profile = first_row(
        client.table("profiles")
        .select("id, email, stripe_customer_id")
        .eq("email", email)
        .limit(1)
        .execute()
    )

    if not profile:
        print(f"✗ No user with email {email}")
        return

    print(f"\n💳 Subscriptions for {email}")
    print(f"  Customer: {profile.get('stripe_customer_id') or '-'}")
    print("=" * 60)

    result = (
        client.table("subscriptions")
        .select("id, status, tier_type, current, current_period_end_at")
        .eq("user_id", profile["id"])
        .order("created_at", desc=True)
        .execute()
    )

    if not result.data:
        print("  (none)")
    for sub in result.data or []:
        marker = "*" if sub.get("current") else " "
        ends = (sub.get("current_period_end_at") or "")[:10]
        print(f" {marker}[{sub['status']:9}] {sub['id']:32} {sub.get('tier_type') or '':5} ends {ends}")


def cmd_recover(client, args):
    """Link unlinked subscriptions."""
    service = ReconciliationService(client=client)

    if args.email:
        result = service.recover_user_subscription(args.email)
        print(f"✓ Linked {result['linked']} subscription(s) for {args.email}")
        return

    result = service.recover_subscription_linking()
    print(f"✓ Processed {result['processed']}/{result['total']} "
          f"({result['errors']} errors, {result['profiles_linked']} profiles linked)")


def cmd_health(client, args):
    """Subscription consistency counts."""
    service = ReconciliationService(client=client)
    health = service.subscription_health()

    print("\n🩺 Subscription Health")
    print("=" * 40)
    for key, value in health.items():
        flag = "✓" if value == 0 else "⚠"
        print(f"  {flag} {key}: {value}")


def cmd_check_config(args):
    missing = validate_config()
    if not missing:
        print("✓ All required environment variables are set")
        return 0

    print("✗ Missing environment variables:")
    for name in missing:
        print(f"  - {name}")
    return 1


def main():
    parser = argparse.ArgumentParser(description="Admin utilities")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("stats", help="Show database statistics")
    subparsers.add_parser("users", help="List recent users")

    subscription_parser = subparsers.add_parser("subscription", help="Show a user's subscriptions")
    subscription_parser.add_argument("email", help="User email")

    recover_parser = subparsers.add_parser("recover", help="Link unlinked subscriptions")
    recover_parser.add_argument("email", nargs="?", help="Only this user")

    subparsers.add_parser("health", help="Subscription consistency counts")
    subparsers.add_parser("check-config", help="List missing environment variables")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(LOG_LEVEL)

    if args.command == "check-config":
        return cmd_check_config(args)

    client = get_admin_client()

    commands = {
        "stats": cmd_stats,
        "users": cmd_users,
        "subscription": cmd_subscription,
        "recover": cmd_recover,
        "health": cmd_health,
    }

    commands[args.command](client, args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
