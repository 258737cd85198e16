"""AI inference client for the LiteLLM proxy.

All model calls (source discovery and report analysis) go through one
OpenAI-compatible endpoint. LiteLLM handles provider selection, fallbacks
and budget tracking; this client adds timeouts and error mapping.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from openai import OpenAI, APIConnectionError, APIStatusError, APITimeoutError

from voc_pipeline.ai.task_router import get_model_for_task
from voc_pipeline.exceptions import (
    AIProviderError,
    QuotaExhaustedError,
    TransientError,
)

logger = logging.getLogger(__name__)

# LiteLLM proxy defaults (overridable via env)
_DEFAULT_BASE_URL = "http://litellm:4000"
_DEFAULT_TIMEOUT = 120


@dataclass
class InferenceResult:
    """Text returned by one completion call."""

    text: str
    model: str
    total_tokens: Optional[int] = None


class InferenceClient:
    """Thin wrapper around the OpenAI SDK pointed at LiteLLM.

        result = client.execute(task_type="analysis", prompt="...", max_tokens=4000)
        result.text
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        """Initialize the inference client.

        Args:
            base_url: LiteLLM proxy origin (default: http://litellm:4000)
            api_key: LiteLLM master key (default: from LITELLM_MASTER_KEY env)
            timeout: Request timeout in seconds (default: 120)
        """
        self._base_url = base_url or os.getenv("LITELLM_BASE_URL", _DEFAULT_BASE_URL)
        self._api_key = api_key or os.getenv("LITELLM_MASTER_KEY", "")
        self._timeout = timeout or int(os.getenv("LITELLM_TIMEOUT", str(_DEFAULT_TIMEOUT)))

        self._client = OpenAI(
            base_url=f"{self._base_url.rstrip('/')}/v1",
            api_key=self._api_key or "unset",
            timeout=self._timeout,
            max_retries=0,
        )

    @property
    def timeout(self) -> int:
        return self._timeout

    def execute(
        self,
        task_type: str,
        prompt: str,
        model_override: Optional[str] = None,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
    ) -> InferenceResult:
        """Run one completion through LiteLLM.

        Args:
            task_type: Task type ("discovery", "analysis")
            prompt: The user prompt
            model_override: Override the task router's model selection
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature
            system_prompt: Optional system message

        Returns:
            InferenceResult with response text and metadata

        Raises:
            QuotaExhaustedError: LiteLLM returned 429 (rate/budget limit)
            TransientError: Timeout or connection failure
            AIProviderError: Other API errors
        """
        model = model_override or get_model_for_task(task_type)
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except APITimeoutError as e:
            raise TransientError(
                f"LiteLLM request timed out after {self._timeout}s",
                provider="litellm",
            ) from e
        except APIConnectionError as e:
            raise TransientError(
                f"Could not connect to LiteLLM proxy at {self._base_url}: {e}",
                provider="litellm",
            ) from e
        except APIStatusError as e:
            status = e.status_code
            body = str(e.body) if e.body else str(e)
            if status == 429:
                raise QuotaExhaustedError(
                    f"LiteLLM rate/budget limit: {body}",
                    provider="litellm",
                    reset_info="check LiteLLM budget settings",
                ) from e
            raise AIProviderError(f"LiteLLM API error (HTTP {status}): {body}") from e
        except Exception as e:
            raise AIProviderError(f"Unexpected error calling LiteLLM: {e}") from e

        if not response.choices:
            raise AIProviderError(f"LiteLLM returned no choices for model {model}")

        text = response.choices[0].message.content or ""
        actual_model = response.model or model
        total_tokens = getattr(response.usage, "total_tokens", None)

        logger.info(
            "LiteLLM call succeeded: task=%s model=%s tokens=%s",
            task_type,
            actual_model,
            total_tokens if total_tokens is not None else "?",
        )

        return InferenceResult(text=text, model=actual_model, total_tokens=total_tokens)
