"""API dependencies for dependency injection."""

from typing import Annotated, Optional

from celery import Celery
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from leadhunter_core.config import get_settings
from leadhunter_core.domain.models import Tenant
from leadhunter_core.domain.services.credentials import CredentialManager, get_credential_manager
from leadhunter_core.domain.services.drafting import OutreachDrafter
from leadhunter_core.domain.services.hunting_sessions import HuntingSessionService
from leadhunter_core.domain.services.inference import InferenceClient, get_inference_client
from leadhunter_core.domain.services.lead_lifecycle import LeadLifecycleService
from leadhunter_core.domain.services.leads import LeadsService
from leadhunter_core.domain.services.conversations import ConversationService
from leadhunter_core.domain.services.notifications import NotificationDispatcher
from leadhunter_core.infra.db import get_sync_session_factory


def get_db() -> Session:
    """Get a database session."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


DBSession = Annotated[Session, Depends(get_db)]


def get_current_tenant(
    db: DBSession,
    x_tenant_id: Annotated[Optional[str], Header()] = None,
) -> Tenant:
    """Resolve the tenant from the X-Tenant-ID header.

    Raises:
        HTTPException: If the header is missing or names no tenant.
    """
    if not x_tenant_id or not x_tenant_id.strip().isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-Tenant-ID header",
        )

    tenant = db.query(Tenant).filter(Tenant.id == int(x_tenant_id)).first()
    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown tenant",
        )
    return tenant


CurrentTenant = Annotated[Tenant, Depends(get_current_tenant)]


def get_notification_dispatcher(db: DBSession) -> NotificationDispatcher:
    settings = get_settings()
    return NotificationDispatcher(
        db,
        webhook_url=settings.push_webhook_url,
        timeout=settings.push_webhook_timeout_seconds,
    )


def get_credentials(db: DBSession) -> CredentialManager:
    """Get the credential manager used for outreach calls."""
    return get_credential_manager(db)


def get_inference() -> InferenceClient:
    """Get the inference client used for drafting.

    Raises:
        HTTPException: If no inference endpoint is configured.
    """
    try:
        return get_inference_client()
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


def get_drafter(
    inference: Annotated[InferenceClient, Depends(get_inference)],
) -> OutreachDrafter:
    return OutreachDrafter(inference)


def get_leads_service(db: DBSession) -> LeadsService:
    return LeadsService(db)


def get_conversation_service(db: DBSession) -> ConversationService:
    return ConversationService(db)


def get_lifecycle_service(
    db: DBSession,
    credentials: Annotated[CredentialManager, Depends(get_credentials)],
) -> LeadLifecycleService:
    return LeadLifecycleService(db, credentials=credentials)


def get_hunting_session_service(
    db: DBSession,
    notifications: Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)],
) -> HuntingSessionService:
    return HuntingSessionService(db, notifications=notifications)


# Type aliases for cleaner route signatures
NotificationDispatcherDep = Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)]
LeadsServiceDep = Annotated[LeadsService, Depends(get_leads_service)]
ConversationServiceDep = Annotated[ConversationService, Depends(get_conversation_service)]
LifecycleServiceDep = Annotated[LeadLifecycleService, Depends(get_lifecycle_service)]
HuntingSessionServiceDep = Annotated[HuntingSessionService, Depends(get_hunting_session_service)]
DrafterDep = Annotated[OutreachDrafter, Depends(get_drafter)]


def get_celery_app() -> Celery:
    """Get a Celery app instance for queueing worker tasks."""
    settings = get_settings()
    return Celery(broker=settings.celery_broker_url, backend=settings.celery_result_backend)


CeleryAppDep = Annotated[Celery, Depends(get_celery_app)]
