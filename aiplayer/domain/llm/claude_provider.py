from typing import Dict, Any, Optional

import httpx
import structlog

from aiplayer.domain.llm.base_provider import CONNECT_TIMEOUT_SECONDS, READ_TIMEOUT_SECONDS, LLMProvider
from aiplayer.domain.llm.errors import CognitionError, RequestFailureError
from aiplayer.domain.llm.options import LLMOptions

logger = structlog.get_logger(__name__)


ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_CLAUDE_MODEL = "claude-3-5-sonnet-20240620"


class ClaudeProvider(LLMProvider):
    """Messages API with key and version headers"""

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        read_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(
            name="claude",
            model=model or DEFAULT_CLAUDE_MODEL,
            base_url=base_url or ANTHROPIC_BASE_URL,
            read_timeout=read_timeout or READ_TIMEOUT_SECONDS,
            connect_timeout=connect_timeout,
            transport=transport
        )
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json"
        }

    def _build_payload(self, prompt: str, options: LLMOptions) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": options.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.temperature,
            "top_p": options.top_p
        }
        # System prompt is a top-level field here, not a message
        if options.system_prompt:
            payload["system"] = options.system_prompt
        if options.stop_sequences:
            payload["stop_sequences"] = list(options.stop_sequences)
        return payload

    async def complete(self, prompt: str, options: Optional[LLMOptions] = None) -> str:
        options = options or LLMOptions()
        data = await self._post_json("/messages", self._build_payload(prompt, options), self._headers())

        try:
            return data["content"][0]["text"].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise RequestFailureError(self.name, f"unexpected response shape: {e}") from e

    async def is_available(self) -> bool:
        if not self.api_key:
            return False
        try:
            await self.complete("test", LLMOptions(max_tokens=5))
            return True
        except CognitionError as e:
            logger.warning("Claude availability check failed", model=self.model, error=str(e))
            return False
