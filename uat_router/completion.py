"""
Azure OpenAI completion client for routing recommendations.

Sends the assembled prompt with fixed sampling parameters and returns the
raw completion text. Parsing of that text lives in ``normalizer``.
"""

import logging
from typing import Any, Optional

from openai import AzureOpenAI, OpenAIError

from .config import LLMConfig
from .errors import UpstreamError
from .models import CompletionResult, RoutingResult, TokenUsage
from .normalizer import normalize_completion


logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a deterministic UAT Router that provides technical, machine-readable "
    "routing recommendations for Microsoft support workflows. Always follow the "
    "routing rules strictly and output valid JSON."
)


def _usage_from(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        total_tokens=getattr(usage, "total_tokens", 0) or 0,
    )


class CompletionClient:
    """
    Chat completion client for an Azure OpenAI deployment.

    Requests are never retried: the SDK's built-in retries are disabled
    and failures reach the caller as UpstreamError.
    """

    def __init__(self, config: LLMConfig, client: Optional[AzureOpenAI] = None):
        """
        Initialize the completion client.

        Args:
            config: Deployment and sampling configuration.
            client: Optional preconfigured SDK client (used by tests).
        """
        self._config = config
        self._client = client or AzureOpenAI(
            azure_endpoint=config.endpoint,
            api_key=config.api_key,
            api_version=config.api_version,
            max_retries=0,
        )

        logger.info(f"Initialized completion client for deployment: {config.deployment}")

    def _create(self, messages: list[dict[str, str]], **params: Any) -> Any:
        return self._client.chat.completions.create(
            model=self._config.deployment,
            messages=messages,
            **params,
        )

    def complete(self, prompt: str) -> CompletionResult:
        """
        Request a routing completion for a prompt.

        Args:
            prompt: Fully assembled routing prompt.

        Returns:
            CompletionResult with the raw text and token usage.

        Raises:
            UpstreamError: If the call fails or returns no completion.
        """
        try:
            response = self._create(
                [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                top_p=self._config.top_p,
                frequency_penalty=self._config.frequency_penalty,
                presence_penalty=self._config.presence_penalty,
            )
        except OpenAIError as e:
            logger.error(f"Azure OpenAI API error: {e}")
            raise UpstreamError(f"Azure OpenAI API failed: {e}") from e

        choices = getattr(response, "choices", None) if response is not None else None
        if not choices:
            logger.error(f"Azure OpenAI returned no choices: {response!r}")
            raise UpstreamError("Azure OpenAI API failed: Invalid response from Azure OpenAI")

        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if content is None:
            raise UpstreamError("Azure OpenAI API failed: completion contained no content")

        usage = _usage_from(response)
        logger.debug(
            f"Completion received: {len(content)} chars, {usage.total_tokens} tokens"
        )
        return CompletionResult(text=content, usage=usage)

    def generate_routing_recommendation(self, prompt: str) -> tuple[CompletionResult, RoutingResult]:
        """
        Request a completion and normalize it into a routing result.

        Returns:
            Tuple of (raw completion, parsed routing result).
        """
        completion = self.complete(prompt)
        return completion, normalize_completion(completion.text)

    def test_connection(self) -> bool:
        """Check that the deployment answers a minimal request."""
        try:
            self._create([{"role": "user", "content": "test"}], max_tokens=10)
            return True
        except OpenAIError as e:
            logger.error(f"Azure OpenAI connection test failed: {e}")
            return False
