from .schemas import (
    SubscriptionStatus,
    TierType,
    FeedbackValue,
    SignUpRequest,
    SignInRequest,
    ResetPasswordRequest,
    UpdatePasswordRequest,
    ProfileUpdate,
    QuestionCreate,
    QuestionUpdate,
    AISettingsUpdate,
    CheckoutRequest,
    ConfirmCheckoutRequest,
    ManageUrlRequest,
    AssistantUpdateRequest,
    KnowledgeAttachRequest,
    GeocodeAutocompleteRequest,
    FeedbackRequest,
)

__all__ = [
    "SubscriptionStatus",
    "TierType",
    "FeedbackValue",
    "SignUpRequest",
    "SignInRequest",
    "ResetPasswordRequest",
    "UpdatePasswordRequest",
    "ProfileUpdate",
    "QuestionCreate",
    "QuestionUpdate",
    "AISettingsUpdate",
    "CheckoutRequest",
    "ConfirmCheckoutRequest",
    "ManageUrlRequest",
    "AssistantUpdateRequest",
    "KnowledgeAttachRequest",
    "GeocodeAutocompleteRequest",
    "FeedbackRequest",
]
