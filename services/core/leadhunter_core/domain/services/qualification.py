"""Qualification scorer for candidate posts.

Sends the tenant's business context and one post to the LLM, pulls the
first JSON object out of the free-form reply and normalizes it into a
verdict on the 0-100 scale.

The scorer never raises: transport failures and unusable replies both
produce the degraded verdict (score 0, intent none, no engagement), so a
broken model endpoint rejects posts instead of crashing the hunting run.

Usage:
    scorer = QualificationScorer(inference_client=client)
    verdict = await scorer.score(post, BusinessContext(description="..."))

    if qualifies(verdict, tier_min=limits.min_score, session_min=70):
        ...
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from leadhunter_core.domain.errors import ScoringDegradedError
from leadhunter_core.domain.models import BuyingIntent
from leadhunter_core.domain.services.inference import InferenceClient, InferenceError
from leadhunter_core.providers.base import CandidatePost

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 2000
SCORING_TEMPERATURE = 0.3
SCORING_MAX_TOKENS = 300

VALID_INTENTS = {BuyingIntent.HIGH, BuyingIntent.MEDIUM, BuyingIntent.LOW, BuyingIntent.NONE}


# =============================================================================
# OUTPUT SCHEMA
# =============================================================================


class QualificationVerdict(BaseModel):
    """Normalized scorer verdict.

    Accepts the camelCase keys the prompt asks for (``buyingIntent``,
    ``shouldEngage``) as well as snake_case ones.
    """

    score: int = Field(default=0, description="Qualification score 0-100")
    reasoning: str = Field(default="")
    intent: str = Field(default=BuyingIntent.NONE)
    should_engage: bool = Field(default=False)
    degraded: bool = Field(default=False)

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> int:
        if isinstance(v, bool):
            raise ValueError("score must be a number")
        if isinstance(v, str):
            v = v.strip()
        value = float(v)
        if value != value:  # NaN
            raise ValueError("score must be a number")
        return int(round(min(100.0, max(0.0, value))))

    @field_validator("reasoning", mode="before")
    @classmethod
    def coerce_reasoning(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("intent", mode="before")
    @classmethod
    def normalize_intent(cls, v: Any) -> str:
        value = str(v).strip().lower() if v is not None else ""
        return value if value in VALID_INTENTS else BuyingIntent.NONE

    @field_validator("should_engage", mode="before")
    @classmethod
    def coerce_should_engage(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "1")
        return bool(v)

    @classmethod
    def from_model_output(cls, data: dict) -> "QualificationVerdict":
        """Build a verdict from the parsed JSON the model returned.

        Raises:
            ValidationError: If the score is missing or not numeric.
        """
        if "score" not in data:
            raise ScoringDegradedError("model output has no score")
        return cls.model_validate(
            {
                "score": data["score"],
                "reasoning": data.get("reasoning"),
                "intent": data.get("intent", data.get("buyingIntent")),
                "should_engage": data.get("should_engage", data.get("shouldEngage", False)),
            }
        )

    @classmethod
    def degraded_verdict(cls, reason: str) -> "QualificationVerdict":
        return cls(
            score=0,
            reasoning=reason,
            intent=BuyingIntent.NONE,
            should_engage=False,
            degraded=True,
        )


# =============================================================================
# INPUT DATA
# =============================================================================


@dataclass
class BusinessContext:
    """Tenant context embedded in the scoring prompt."""

    description: Optional[str] = None
    target_customer: Optional[str] = None

    def to_prompt(self) -> str:
        parts = [self.description or "General business services"]
        if self.target_customer:
            parts.append(f"Target customer: {self.target_customer}")
        return "\n".join(parts)


def build_scoring_prompt(post: CandidatePost, context: BusinessContext) -> str:
    """Compose the scoring prompt for one post."""
    body = (post.body_text or "").strip() or "(no body text)"

    return f"""You are a lead scoring AI. Analyze this Reddit post to determine if the author might be interested in products/services related to the business context below.

Business Context:
{context.to_prompt()}

Reddit Post:
Subreddit: r/{post.subreddit}
Title: {post.title}
Content: {body[:MAX_BODY_CHARS]}
Author: u/{post.author_username}
Upvotes: {post.score}
Comments: {post.num_comments}

Score this post from 0-100 based on:
- Buying intent signals (asking for recommendations, comparing options, expressing frustration with current solution)
- Relevance to the business context
- Engagement potential (post activity, author history)

Respond in JSON format:
{{
  "score": <number 0-100>,
  "reasoning": "<brief explanation>",
  "buyingIntent": "<high|medium|low|none>",
  "shouldEngage": <true|false>
}}"""


# =============================================================================
# JSON EXTRACTION
# =============================================================================


def extract_json_object(text: str) -> Optional[dict]:
    """Return the first balanced JSON object found in free-form text.

    Braces inside JSON strings are ignored, so reasoning text such as
    ``"uses {curly} braces"`` does not end the object early. Candidates
    that fail to parse are skipped and the scan continues after them.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1

        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue

            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break

        if end == -1:
            return None

        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return data

        start = text.find("{", start + 1)

    return None


# =============================================================================
# SCORER
# =============================================================================


class QualificationScorer:
    """Scores candidate posts against a tenant's business context."""

    def __init__(
        self,
        inference_client: InferenceClient,
        temperature: float = SCORING_TEMPERATURE,
        max_tokens: int = SCORING_MAX_TOKENS,
    ):
        self.inference_client = inference_client
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def score(self, post: CandidatePost, context: BusinessContext) -> QualificationVerdict:
        """Score one post. Never raises."""
        prompt = build_scoring_prompt(post, context)

        try:
            response = await self.inference_client.complete(
                prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except InferenceError as e:
            logger.warning(f"Scoring failed for post {post.external_id}: {e}")
            return QualificationVerdict.degraded_verdict("AI scoring failed")

        try:
            return self.parse(response.content)
        except ScoringDegradedError as e:
            logger.warning(f"Unusable scoring output for post {post.external_id}: {e}")
            return QualificationVerdict.degraded_verdict("Failed to parse response")

    @staticmethod
    def parse(content: str) -> QualificationVerdict:
        """Parse model output into a verdict.

        Raises:
            ScoringDegradedError: If no usable JSON verdict is present.
        """
        data = extract_json_object(content or "")
        if data is None:
            raise ScoringDegradedError("no JSON object in model output")

        try:
            return QualificationVerdict.from_model_output(data)
        except (ValidationError, ValueError, TypeError) as e:
            raise ScoringDegradedError(f"invalid verdict: {e}") from e


def qualifies(verdict: QualificationVerdict, tier_min: int, session_min: int) -> bool:
    """Whether a verdict clears both the tier's and the session's minimum.

    Both minimums are on the 0-100 scale.
    """
    return verdict.should_engage and verdict.score >= max(tier_min, session_min)


__all__ = [
    "BusinessContext",
    "QualificationScorer",
    "QualificationVerdict",
    "build_scoring_prompt",
    "extract_json_object",
    "qualifies",
]
