"""API schemas."""

from leadhunter_core.api.schemas.hunting import (
    HuntingSessionResponse,
    PauseSessionRequest,
    RunQueuedResponse,
    UpdateSessionConfigRequest,
)
from leadhunter_core.api.schemas.leads import (
    ConversationMessageResponse,
    ConversationResponse,
    LeadResponse,
    ListLeadsResponse,
    OutreachResponse,
    SetDmMessageRequest,
)
from leadhunter_core.api.schemas.notifications import (
    ListNotificationsResponse,
    NotificationResponse,
)

__all__ = [
    # Hunting schemas
    "HuntingSessionResponse",
    "PauseSessionRequest",
    "RunQueuedResponse",
    "UpdateSessionConfigRequest",
    # Lead schemas
    "ConversationMessageResponse",
    "ConversationResponse",
    "LeadResponse",
    "ListLeadsResponse",
    "OutreachResponse",
    "SetDmMessageRequest",
    # Notification schemas
    "ListNotificationsResponse",
    "NotificationResponse",
]
