"""
Authentication routes.
Thin layer over Supabase Auth - the API never sees password hashes.

Endpoints:
- POST /signup - Create account + default assistant settings
- POST /signin - Email/password sign-in
- POST /signout - Revoke the current session
- POST /reset-password - Send reset email
- POST /update-password - Set a new password (signed in)
"""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials

from ...lib import AuthService, NotAuthenticatedError, get_current_user
from ...lib.auth import security
from ...models import SignUpRequest, SignInRequest, ResetPasswordRequest, UpdatePasswordRequest


router = APIRouter()


@router.post("/signup")
async def sign_up(body: SignUpRequest):
    """
    Create an account.

    Seeds one profile, one AI settings row (assistant "Ava" with a greeting
    naming the agent) and three default qualification questions.

    Returns:
    - user: {id, email}
    - session: tokens, or null when email confirmation is required
    - requiresConfirmation: bool
    """
    service = AuthService()
    return service.sign_up(
        email=body.email,
        password=body.password,
        full_name=body.full_name,
        phone_number=body.phone_number,
        business_name=body.business_name,
    )


@router.post("/signin")
async def sign_in(body: SignInRequest):
    """
    Returns:
    - user: {id, email}
    - session: {access_token, refresh_token, expires_at}
    """
    service = AuthService()
    return service.sign_in(body.email, body.password)


@router.post("/signout")
async def sign_out(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    user: dict = Depends(get_current_user),
):
    if not credentials:
        raise NotAuthenticatedError()
    service = AuthService()
    return service.sign_out(credentials.credentials)


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest):
    """
    Send a password reset link to {SITE_URL}/auth/reset-password.
    Responds the same whether or not the account exists.
    """
    service = AuthService()
    return service.reset_password(body.email)


@router.post("/update-password")
async def update_password(
    body: UpdatePasswordRequest,
    user: dict = Depends(get_current_user),
):
    service = AuthService()
    return service.update_password(user["id"], body.password)
