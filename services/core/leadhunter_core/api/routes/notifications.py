"""Notification feed API routes."""

from fastapi import APIRouter, Query

from leadhunter_core.api.deps import CurrentTenant, NotificationDispatcherDep
from leadhunter_core.api.schemas.leads import ensure_utc
from leadhunter_core.api.schemas.notifications import (
    ListNotificationsResponse,
    NotificationResponse,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get(
    "",
    response_model=ListNotificationsResponse,
    summary="List notifications",
)
async def list_notifications(
    tenant: CurrentTenant,
    dispatcher: NotificationDispatcherDep,
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
):
    items = []
    for notification in dispatcher.list_for_tenant(tenant.id, unread_only=unread_only, limit=limit):
        item = NotificationResponse.model_validate(notification)
        item.created_at = ensure_utc(item.created_at)
        item.read_at = ensure_utc(item.read_at)
        items.append(item)

    return ListNotificationsResponse(
        notifications=items,
        unread=dispatcher.count_unread(tenant.id),
    )


@router.post(
    "/read",
    summary="Mark notifications read",
)
async def mark_all_read(tenant: CurrentTenant, dispatcher: NotificationDispatcherDep) -> dict:
    return {"updated": dispatcher.mark_all_read(tenant.id)}
