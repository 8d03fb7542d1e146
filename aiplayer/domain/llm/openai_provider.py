from typing import Dict, Any, List, Optional

import httpx
import structlog

from aiplayer.domain.llm.base_provider import CONNECT_TIMEOUT_SECONDS, READ_TIMEOUT_SECONDS, LLMProvider
from aiplayer.domain.llm.errors import CognitionError, RequestFailureError
from aiplayer.domain.llm.options import LLMOptions

logger = structlog.get_logger(__name__)


OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-4-turbo"


class OpenAIProvider(LLMProvider):
    """Chat completions over the OpenAI HTTP API"""

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
            name="openai",
            model=model or DEFAULT_OPENAI_MODEL,
            base_url=base_url or OPENAI_BASE_URL,
            read_timeout=read_timeout or READ_TIMEOUT_SECONDS,
            connect_timeout=connect_timeout,
            transport=transport
        )
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _build_payload(self, prompt: str, options: LLMOptions) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "top_p": options.top_p
        }
        if options.stop_sequences:
            payload["stop"] = list(options.stop_sequences)
        return payload

    async def complete(self, prompt: str, options: Optional[LLMOptions] = None) -> str:
        options = options or LLMOptions()
        data = await self._post_json("/chat/completions", self._build_payload(prompt, options), self._headers())

        try:
            return data["choices"][0]["message"]["content"].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise RequestFailureError(self.name, f"unexpected response shape: {e}") from e

    async def is_available(self) -> bool:
        if not self.api_key:
            return False
        try:
            await self.complete("test", LLMOptions(max_tokens=5))
            return True
        except CognitionError as e:
            logger.warning("OpenAI availability check failed", model=self.model, error=str(e))
            return False
