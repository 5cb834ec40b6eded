"""Outreach drafter for approved leads.

Asks the LLM for a short DM addressed to the lead's author, written in
the hunting session's comment style. Drafts are never sent from here:
the caller stores them on the lead for the user to review.

Usage:
    drafter = OutreachDrafter(inference_client=client)

    result = await drafter.draft_dm(
        DraftInput(lead=lead, business=BusinessContext(description="...")),
        style=hunting.comment_style,
    )

    if result.success:
        lifecycle.set_dm_message(tenant_id, lead.id, result.draft.message)
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from leadhunter_core.domain.models import Lead
from leadhunter_core.domain.services.inference import InferenceClient, InferenceError
from leadhunter_core.domain.services.qualification import BusinessContext, extract_json_object

logger = logging.getLogger(__name__)

DRAFT_TEMPERATURE = 0.7
DRAFT_MAX_TOKENS = 500
MAX_BODY_CHARS = 1000


class CommentStyle:
    FRIENDLY = "friendly"
    PROFESSIONAL = "professional"
    EXPERT = "expert"


DEFAULT_COMMENT_STYLE = CommentStyle.FRIENDLY

STYLE_GUIDES = {
    CommentStyle.FRIENDLY: "Be warm, casual, and approachable. Use conversational language.",
    CommentStyle.PROFESSIONAL: "Be helpful and informative. Maintain a professional but not stiff tone.",
    CommentStyle.EXPERT: "Demonstrate deep expertise. Be authoritative but not condescending.",
}

COMMENT_STYLES = frozenset(STYLE_GUIDES)


# =============================================================================
# OUTPUT SCHEMA
# =============================================================================


class DmDraft(BaseModel):
    """A draft DM ready for review."""

    message: str = Field(..., description="The DM body text")
    confidence: float = Field(default=0.0, description="Model confidence 0-1")

    @field_validator("message")
    @classmethod
    def not_blank(cls, v: str) -> str:
        text = v.strip()
        if not text:
            raise ValueError("message is blank")
        return text

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        return min(1.0, max(0.0, value))


# =============================================================================
# INPUT DATA
# =============================================================================


@dataclass
class DraftInput:
    """The lead being contacted and the tenant's business context."""

    lead: Lead
    business: BusinessContext

    def to_prompt(self, style: str) -> str:
        lead = self.lead
        body = (lead.post_body or "").strip()[:MAX_BODY_CHARS] or "(no body text)"
        guide = STYLE_GUIDES.get(style, STYLE_GUIDES[DEFAULT_COMMENT_STYLE])

        parts = [DRAFT_SYSTEM_PROMPT, ""]

        parts.append("## Business Context")
        parts.append(self.business.to_prompt())
        parts.append("")

        parts.append("## Reddit Post")
        parts.append(f"Subreddit: r/{lead.subreddit}")
        parts.append(f"Author: u/{lead.author}")
        parts.append(f"Title: {lead.post_title}")
        parts.append(f"Content:\n{body}")
        parts.append("")

        if lead.reasoning:
            parts.append("## Why This Post Qualified")
            parts.append(lead.reasoning)
            parts.append("")

        parts.append("## Style")
        parts.append(guide)
        parts.append("")
        parts.append(
            'Respond with ONLY a JSON object: {"message": "<the DM text>", "confidence": <0-1>}'
        )
        return "\n".join(parts)


@dataclass
class DraftResult:
    """Result from drafting one DM."""

    success: bool
    draft: Optional[DmDraft] = None
    error: Optional[str] = None


# =============================================================================
# DRAFTER
# =============================================================================


DRAFT_SYSTEM_PROMPT = """You are writing a private Reddit message to the author of the post below, on behalf of the business described.

Guidelines:
- Reference what the author actually asked about
- Offer genuine help first; mention the business only where it fits
- Keep it under 120 words, no links, no hashtags, no signature
- Never pretend to be a customer or hide that you represent the business"""


class OutreachDrafter:
    """Drafts outreach DMs with the inference client."""

    def __init__(
        self,
        inference_client: InferenceClient,
        temperature: float = DRAFT_TEMPERATURE,
        max_tokens: int = DRAFT_MAX_TOKENS,
    ):
        self.inference_client = inference_client
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def draft_dm(self, data: DraftInput, style: str = DEFAULT_COMMENT_STYLE) -> DraftResult:
        """Draft a DM for one lead. Never raises."""
        prompt = data.to_prompt(style)

        try:
            response = await self.inference_client.complete(
                prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except InferenceError as e:
            logger.warning(f"Drafting failed for lead {data.lead.id}: {e}")
            return DraftResult(success=False, error=f"Inference failed: {e}")

        payload = extract_json_object(response.content or "")
        if payload is None:
            logger.warning(f"No JSON draft in model output for lead {data.lead.id}")
            return DraftResult(success=False, error="No JSON object in model output")

        try:
            draft = DmDraft.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Invalid draft for lead {data.lead.id}: {e}")
            return DraftResult(success=False, error=f"Invalid draft: {e}")

        return DraftResult(success=True, draft=draft)


__all__ = [
    "COMMENT_STYLES",
    "CommentStyle",
    "DEFAULT_COMMENT_STYLE",
    "DmDraft",
    "DraftInput",
    "DraftResult",
    "OutreachDrafter",
    "STYLE_GUIDES",
]
