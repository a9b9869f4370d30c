from .errors import (
    AppError,
    ValidationError,
    NotAuthenticatedError,
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    ConfigurationError,
    UpstreamError,
)
from .auth import (
    AuthService,
    get_current_user,
    get_current_user_for_stream,
    verify_subscription,
    require_admin_token,
)
from .profiles import ProfileService
from .questions import QuestionService
from .ai_settings import AISettingsService
from .subscriptions import SubscriptionService
from .reconciliation import ReconciliationService
from .vapi import VapiClient
from .assistants import AssistantService
from .calls import CallService
from .events import CallEventBus, call_events
from .realtime import CallUpdatesClient
from .geocoding import GeocodingService
from .telephony import TelephonyService
from .feedback import FeedbackService

__all__ = [
    "AppError",
    "ValidationError",
    "NotAuthenticatedError",
    "ForbiddenError",
    "NotFoundError",
    "RateLimitedError",
    "ConfigurationError",
    "UpstreamError",
    "AuthService",
    "get_current_user",
    "get_current_user_for_stream",
    "verify_subscription",
    "require_admin_token",
    "ProfileService",
    "QuestionService",
    "AISettingsService",
    "SubscriptionService",
    "ReconciliationService",
    "VapiClient",
    "AssistantService",
    "CallService",
    "CallEventBus",
    "call_events",
    "CallUpdatesClient",
    "GeocodingService",
    "TelephonyService",
    "FeedbackService",
]
