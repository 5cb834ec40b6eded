"""Domain services for LeadHunter."""

from leadhunter_core.domain.services.credentials import CredentialManager
from leadhunter_core.domain.services.drafting import OutreachDrafter
from leadhunter_core.domain.services.hunting import HuntingContext, HuntingOrchestrator
from leadhunter_core.domain.services.hunting_sessions import HuntingSessionService
from leadhunter_core.domain.services.lead_lifecycle import LeadLifecycleService
from leadhunter_core.domain.services.leads import LeadsService
from leadhunter_core.domain.services.notifications import NotificationDispatcher
from leadhunter_core.domain.services.quota import limits_for
from leadhunter_core.domain.services.response_monitor import ResponseMonitor
from leadhunter_core.domain.services.scheduler import HuntingScheduler

__all__ = [
    "CredentialManager",
    "HuntingContext",
    "HuntingOrchestrator",
    "HuntingScheduler",
    "HuntingSessionService",
    "LeadLifecycleService",
    "LeadsService",
    "NotificationDispatcher",
    "OutreachDrafter",
    "ResponseMonitor",
    "limits_for",
]
