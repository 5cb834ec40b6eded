"""Inference client for LLM completions.

Talks to an OpenAI-compatible completion endpoint (llama.cpp server, vLLM
or a hosted API). Only completion mode is used: the qualification scorer
sends a single prompt and parses a JSON verdict out of the generated text.

Usage:
    config = InferenceConfig(base_url="http://localhost:8080")
    client = InferenceClient(config=config)

    response = await client.complete(prompt, temperature=0.3, max_tokens=300)
    print(response.content)
    print(response.model_info.to_dict())
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class InferenceError(Exception):
    """Base exception for inference errors."""

    pass


class ConnectionInferenceError(InferenceError):
    """Connection error during inference."""

    pass


class TimeoutInferenceError(InferenceError):
    """Timeout during inference."""

    pass


class ResponseInferenceError(InferenceError):
    """Invalid or malformed response from inference server."""

    pass


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class InferenceConfig:
    """Configuration for the inference client.

    Attributes:
        base_url: URL of the inference server (e.g., http://localhost:8080)
        model_name: Name of the model to use
        timeout: Request timeout in seconds
        max_tokens: Maximum tokens to generate
        temperature: Sampling temperature
        api_key: Optional API key for authentication
    """

    base_url: str
    model_name: str = "default"
    timeout: float = 60.0
    max_tokens: int = 300
    temperature: float = 0.3
    api_key: Optional[str] = None


@dataclass
class ModelInfo:
    """Information about the model and inference run."""

    model_name: str
    temperature: float
    max_tokens: int
    input_tokens: int
    output_tokens: int
    latency_ms: int
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "model_name": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "latency_ms": self.latency_ms,
            **self.extra,
        }


@dataclass
class CompletionResponse:
    """Response from a completion request.

    Attributes:
        content: The generated text
        model_info: Information about the model and run
        finish_reason: Why generation stopped (stop, length, etc.)
    """

    content: str
    model_info: ModelInfo
    finish_reason: str


# =============================================================================
# INFERENCE CLIENT
# =============================================================================


class InferenceClient:
    """Client for LLM completion requests."""

    def __init__(self, config: InferenceConfig):
        self.config = config

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def _make_completion_request(
        self,
        prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> dict:
        """Make a completion request to the server.

        Raises:
            InferenceError: On connection, timeout, or HTTP status errors
        """
        payload = {
            "model": self.config.model_name,
            "prompt": prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        logger.debug(
            f"Completion request to {self.config.base_url}: model={self.config.model_name}, "
            f"prompt_chars={len(prompt)}"
        )

        try:
            async with httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                headers=self._headers(),
            ) as client:
                response = await client.post("/v1/completions", json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.ConnectError as e:
            raise ConnectionInferenceError(f"Connection error: {e}") from e
        except httpx.TimeoutException as e:
            raise TimeoutInferenceError(f"Timeout error: {e}") from e
        except httpx.HTTPStatusError as e:
            raise InferenceError(f"HTTP error: {e}") from e
        except httpx.HTTPError as e:
            raise ConnectionInferenceError(f"Request error: {e}") from e
        except ValueError as e:
            raise ResponseInferenceError(f"Response is not JSON: {e}") from e

    async def complete(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> CompletionResponse:
        """Send a completion request to the LLM.

        Args:
            prompt: The prompt text
            temperature: Override default temperature
            max_tokens: Override default max_tokens

        Returns:
            CompletionResponse with content and model info

        Raises:
            InferenceError: On errors during inference
        """
        temp = temperature if temperature is not None else self.config.temperature
        tokens = max_tokens if max_tokens is not None else self.config.max_tokens

        start_time = time.monotonic()
        response_data = await self._make_completion_request(
            prompt=prompt,
            temperature=temp,
            max_tokens=tokens,
        )
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        # Check for error response from LLM server
        if "error" in response_data:
            error_info = response_data["error"]
            if isinstance(error_info, dict):
                error_msg = error_info.get("message", str(error_info))
            else:
                error_msg = str(error_info)
            logger.error(f"LLM server returned error: {error_msg}")
            raise ResponseInferenceError(f"LLM server error: {error_msg}")

        try:
            choices = response_data.get("choices", [])
            if not choices:
                raise ResponseInferenceError("Invalid response: no choices")

            choice = choices[0]
            content = choice.get("text") or ""
            finish_reason = choice.get("finish_reason", "unknown")

            usage = response_data.get("usage") or {}
            input_tokens = usage.get("prompt_tokens", 0)
            output_tokens = usage.get("completion_tokens", 0)
        except (AttributeError, KeyError, IndexError, TypeError) as e:
            raise ResponseInferenceError(f"Invalid response format: {e}") from e

        model_info = ModelInfo(
            model_name=self.config.model_name,
            temperature=temp,
            max_tokens=tokens,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=elapsed_ms,
        )

        return CompletionResponse(
            content=content,
            model_info=model_info,
            finish_reason=finish_reason,
        )


# =============================================================================
# FACTORY FUNCTION
# =============================================================================


def get_inference_client() -> InferenceClient:
    """Create an InferenceClient from settings.

    Raises:
        RuntimeError: If inference_url is not configured.
    """
    from leadhunter_core.config import get_settings

    settings = get_settings()

    if not settings.inference_url:
        raise RuntimeError("INFERENCE_URL not configured")

    config = InferenceConfig(
        base_url=settings.inference_url,
        model_name=settings.inference_model or "default",
        timeout=settings.inference_timeout,
        api_key=settings.inference_api_key,
    )

    return InferenceClient(config=config)


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "InferenceClient",
    "InferenceConfig",
    "CompletionResponse",
    "ModelInfo",
    "InferenceError",
    "ConnectionInferenceError",
    "TimeoutInferenceError",
    "ResponseInferenceError",
    "get_inference_client",
]
