"""
Data models for the Spoqen dashboard API.
Request bodies and the enums shared by services and routes.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, EmailStr


class SubscriptionStatus(str, Enum):
    """Local subscription states. Billing statuses map onto these."""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    PAUSED = "paused"
    CANCELED = "canceled"
    PENDING = "pending"


class TierType(str, Enum):
    PAID = "paid"
    FREE = "free"


class FeedbackValue(str, Enum):
    HELPFUL = "helpful"
    NOT_HELPFUL = "not_helpful"


class SignUpRequest(BaseModel):
    """New account - profile fields seed the default assistant."""
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)
    business_name: Optional[str] = None


class SignInRequest(BaseModel):
    email: EmailStr
    password: str


class ResetPasswordRequest(BaseModel):
    email: EmailStr


class UpdatePasswordRequest(BaseModel):
    password: str = Field(..., min_length=8)


class ProfileUpdate(BaseModel):
    """Only the fields sent are updated."""
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    business_name: Optional[str] = None


class QuestionCreate(BaseModel):
    question_text: str = Field(..., min_length=1)


class QuestionUpdate(BaseModel):
    question_text: str = Field(..., min_length=1)


class AISettingsUpdate(BaseModel):
    ai_name: Optional[str] = None
    greeting_script: Optional[str] = None
    summary_email: Optional[EmailStr] = None
    timezone: Optional[str] = None
    email_notifications: Optional[bool] = None


class CheckoutRequest(BaseModel):
    """Start a subscription - monthly or yearly price."""
    price_id: str


class ConfirmCheckoutRequest(BaseModel):
    session_id: str


class ManageUrlRequest(BaseModel):
    # Validated in the service so a bad id gets a 400 with a clear message
    subscription_id: Optional[str] = None


class AssistantUpdateRequest(BaseModel):
    assistant_id: str
    first_message: str = Field(..., min_length=1)
    voice_id: Optional[str] = None


class KnowledgeAttachRequest(BaseModel):
    file_ids: list[str] = Field(default_factory=list)


class GeocodeAutocompleteRequest(BaseModel):
    text: str
    limit: Optional[int] = Field(default=None, ge=1, le=20)
    type: Optional[str] = None
    countrycode: Optional[str] = None


class FeedbackRequest(BaseModel):
    """
    FAQ "was this helpful?" vote.
    Presence and value are checked by the service so errors read the same
    for every client.
    """
    questionId: Optional[str] = None
    feedback: Optional[str] = None
    timestamp: Optional[str] = None
    userAgent: Optional[str] = None
    sessionId: Optional[str] = None
