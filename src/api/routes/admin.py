"""
Admin routes. Guarded by the X-Admin-Token header.

Endpoints:
- POST /recover-subscriptions - Link unlinked subscriptions
- POST /recover-subscriptions/{email} - Same, for one user
- GET /subscription-health - Consistency counts
"""

from fastapi import APIRouter, Depends

from ...lib import ReconciliationService, require_admin_token


router = APIRouter(dependencies=[Depends(require_admin_token)])


@router.post("/recover-subscriptions")
async def recover_subscriptions():
    """
    Returns:
    - processed, errors, total, profiles_linked
    """
    service = ReconciliationService()
    return service.recover_subscription_linking()


@router.post("/recover-subscriptions/{email}")
async def recover_user_subscription(email: str):
    service = ReconciliationService()
    return service.recover_user_subscription(email)


@router.get("/subscription-health")
async def subscription_health():
    """
    Returns:
    - unlinked_subscriptions
    - profiles_missing_customer_id
    - users_with_multiple_active
    """
    service = ReconciliationService()
    return service.subscription_health()
