"""Leads API routes.

Provides endpoints for:
- GET /leads - List the tenant's leads
- GET /leads/{id} - Get lead by ID
- POST /leads/{id}/approve - Approve a pending lead
- POST /leads/{id}/reject - Reject a lead
- POST /leads/{id}/dm - Author the outreach DM
- POST /leads/{id}/draft-dm - Draft the outreach DM with the LLM
- POST /leads/{id}/send - Send the DM and follow-up comment
- POST /leads/{id}/retry-comment - Retry a failed follow-up comment
- GET /leads/{id}/conversation - Get the lead's conversation
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from leadhunter_core.api.deps import (
    ConversationServiceDep,
    CurrentTenant,
    DrafterDep,
    LeadsServiceDep,
    LifecycleServiceDep,
)
from leadhunter_core.api.schemas.leads import (
    ConversationMessageResponse,
    ConversationResponse,
    LeadResponse,
    ListLeadsResponse,
    OutreachResponse,
    SetDmMessageRequest,
    ensure_utc,
)
from leadhunter_core.domain.models import LeadStatus

router = APIRouter(prefix="/leads", tags=["leads"])
logger = logging.getLogger(__name__)

LEAD_STATUSES = {
    LeadStatus.PENDING,
    LeadStatus.APPROVED,
    LeadStatus.REJECTED,
    LeadStatus.DM_READY,
    LeadStatus.DM_SENT,
    LeadStatus.CONTACTED,
    LeadStatus.RESPONDED,
}


# =============================================================================
# LIST / GET
# =============================================================================


@router.get(
    "",
    response_model=ListLeadsResponse,
    summary="List leads",
    description="List the tenant's leads, newest first, optionally filtered by status.",
)
async def list_leads(
    tenant: CurrentTenant,
    leads_service: LeadsServiceDep,
    lead_status: str | None = Query(default=None, alias="status", description="Filter by status"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    limit: int = Query(default=20, ge=1, le=100, description="Maximum results"),
):
    """List leads for the current tenant."""
    if lead_status is not None and lead_status not in LEAD_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid status: {lead_status}",
        )

    leads = leads_service.list_leads(tenant.id, status=lead_status, offset=offset, limit=limit)
    total = leads_service.count_leads(tenant.id, status=lead_status)

    return ListLeadsResponse(
        leads=[LeadResponse.from_lead(lead) for lead in leads],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get(
    "/{lead_id}",
    response_model=LeadResponse,
    summary="Get lead by ID",
)
async def get_lead(lead_id: int, tenant: CurrentTenant, leads_service: LeadsServiceDep):
    lead = leads_service.require_lead(tenant.id, lead_id)
    return LeadResponse.from_lead(lead)


# =============================================================================
# LIFECYCLE ACTIONS
# =============================================================================


@router.post(
    "/{lead_id}/approve",
    response_model=LeadResponse,
    summary="Approve lead",
    description="Move a pending lead to approved.",
)
async def approve_lead(lead_id: int, tenant: CurrentTenant, lifecycle: LifecycleServiceDep):
    lead = lifecycle.approve(tenant.id, lead_id)
    return LeadResponse.from_lead(lead)


@router.post(
    "/{lead_id}/reject",
    response_model=LeadResponse,
    summary="Reject lead",
    description="Reject a lead. Rejected leads are never contacted.",
)
async def reject_lead(lead_id: int, tenant: CurrentTenant, lifecycle: LifecycleServiceDep):
    lead = lifecycle.reject(tenant.id, lead_id)
    return LeadResponse.from_lead(lead)


@router.post(
    "/{lead_id}/dm",
    response_model=LeadResponse,
    summary="Set DM message",
    description="Store the outreach DM for an approved lead, moving it to dm_ready.",
)
async def set_dm_message(
    lead_id: int,
    request: SetDmMessageRequest,
    tenant: CurrentTenant,
    lifecycle: LifecycleServiceDep,
):
    try:
        lead = lifecycle.set_dm_message(tenant.id, lead_id, request.message)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return LeadResponse.from_lead(lead)


@router.post(
    "/{lead_id}/draft-dm",
    response_model=LeadResponse,
    summary="Draft DM message",
    description="Draft the outreach DM in the session's comment style and store it "
                "for review, moving the lead to dm_ready. Nothing is sent.",
)
async def draft_dm_message(
    lead_id: int,
    tenant: CurrentTenant,
    lifecycle: LifecycleServiceDep,
    drafter: DrafterDep,
):
    lead = await lifecycle.draft_dm_message(tenant.id, lead_id, drafter)
    return LeadResponse.from_lead(lead)


@router.post(
    "/{lead_id}/send",
    response_model=OutreachResponse,
    summary="Send outreach",
    description="Send the DM and post the follow-up comment. "
                "A failed comment is reported as a partial failure; the DM is not resent.",
)
async def send_outreach(lead_id: int, tenant: CurrentTenant, lifecycle: LifecycleServiceDep):
    result = await lifecycle.send_outreach(tenant.id, lead_id)
    logger.info(
        f"Outreach for lead {lead_id}: dm_sent={result.dm_sent} "
        f"comment_posted={result.comment_posted}"
    )
    return OutreachResponse(
        lead=LeadResponse.from_lead(result.lead),
        dm_sent=result.dm_sent,
        comment_posted=result.comment_posted,
        partial_failure=result.partial_failure,
    )


@router.post(
    "/{lead_id}/retry-comment",
    response_model=LeadResponse,
    summary="Retry follow-up comment",
)
async def retry_comment(lead_id: int, tenant: CurrentTenant, lifecycle: LifecycleServiceDep):
    lead = await lifecycle.retry_comment(tenant.id, lead_id)
    return LeadResponse.from_lead(lead)


# =============================================================================
# CONVERSATION
# =============================================================================


@router.get(
    "/{lead_id}/conversation",
    response_model=ConversationResponse,
    summary="Get lead conversation",
    description="Messages exchanged with the lead's author, oldest first. "
                "Includes pending and failed outreach attempts.",
)
async def get_conversation(
    lead_id: int,
    tenant: CurrentTenant,
    leads_service: LeadsServiceDep,
    conversations: ConversationServiceDep,
):
    lead = leads_service.require_lead(tenant.id, lead_id)
    conversation = conversations.get_for_lead(tenant.id, lead.id)
    if conversation is None:
        return ConversationResponse(lead_id=lead.id, recipient_username=lead.author)

    return ConversationResponse(
        lead_id=lead.id,
        recipient_username=conversation.recipient_username,
        has_unread=conversation.has_unread,
        messages=[
            ConversationMessageResponse(
                id=m.id,
                body=m.body,
                is_from_user=m.is_from_user,
                sent_at=ensure_utc(m.sent_at),
                delivery_state=m.delivery_state,
                error_message=m.error_message,
            )
            for m in conversations.messages(conversation)
        ],
    )
