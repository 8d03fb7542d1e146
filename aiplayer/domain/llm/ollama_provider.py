from typing import Dict, Any, List, Optional
import json
import time

import httpx
import structlog

from aiplayer.domain.llm.base_provider import CONNECT_TIMEOUT_SECONDS, LLMProvider
from aiplayer.domain.llm.errors import CognitionError, RequestFailureError
from aiplayer.domain.llm.options import LLMOptions
from aiplayer.domain.models.memory import utcnow

logger = structlog.get_logger(__name__)


OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "mistral"
LOCAL_READ_TIMEOUT_SECONDS = 120.0  # local models can be slow


class OllamaProvider(LLMProvider):
    """Local Ollama server; replies stream as newline-delimited JSON"""

    def __init__(
        self,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        read_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(
            name="ollama",
            model=model or DEFAULT_OLLAMA_MODEL,
            base_url=base_url or OLLAMA_BASE_URL,
            read_timeout=read_timeout or LOCAL_READ_TIMEOUT_SECONDS,
            connect_timeout=connect_timeout,
            transport=transport
        )

    def _build_payload(self, prompt: str, options: LLMOptions) -> Dict[str, Any]:
        full_prompt = prompt
        if options.system_prompt:
            full_prompt = f"{options.system_prompt}\n\n{prompt}"

        generation: Dict[str, Any] = {
            "temperature": options.temperature,
            "top_p": options.top_p,
            "num_predict": options.max_tokens
        }
        if options.stop_sequences:
            generation["stop"] = list(options.stop_sequences)

        return {
            "model": self.model,
            "prompt": full_prompt,
            "stream": True,
            "options": generation
        }

    async def complete(self, prompt: str, options: Optional[LLMOptions] = None) -> str:
        """Concatenate streamed response fields until the done marker"""

        options = options or LLMOptions()
        payload = self._build_payload(prompt, options)
        start = time.perf_counter()
        chunks: List[str] = []

        try:
            async with self._get_client().stream(
                "POST", f"{self.base_url}/api/generate", json=payload
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.error("Ollama API error", status_code=response.status_code, body=body)
                    raise RequestFailureError(
                        self.name, "non-success status", status_code=response.status_code, body=body
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise RequestFailureError(self.name, f"malformed stream chunk: {e}") from e
                    if "response" in chunk:
                        chunks.append(str(chunk["response"]))
                    if chunk.get("done"):
                        break
        except httpx.HTTPError as e:
            logger.error("Failed to complete Ollama request", model=self.model, error=str(e))
            raise RequestFailureError(self.name, str(e) or type(e).__name__) from e
        finally:
            self.last_active = utcnow()

        logger.debug(
            "Ollama completion finished",
            model=self.model,
            chunks=len(chunks),
            duration_ms=round((time.perf_counter() - start) * 1000.0, 1)
        )
        return "".join(chunks).strip()

    async def complete_batch(self, prompts: List[str], options: Optional[LLMOptions] = None) -> List[str]:
        """Sequential to spare the local GPU; a failed item yields an empty string"""

        results: List[str] = []
        for prompt in prompts:
            try:
                results.append(await self.complete(prompt, options))
            except RequestFailureError as e:
                logger.error("Failed to complete batch item", model=self.model, error=str(e))
                results.append("")
        return results

    async def is_available(self) -> bool:
        """Server answers on /api/tags and lists the configured model"""

        try:
            response = await self._get_client().get(f"{self.base_url}/api/tags")
            if not response.is_success:
                return False
            models = response.json().get("models")
            if not isinstance(models, list):
                return False
            return any(
                _same_model(self.model, str(entry.get("name", ""))) for entry in models if isinstance(entry, dict)
            )
        except (httpx.HTTPError, ValueError, AttributeError, CognitionError) as e:
            logger.warning("Ollama availability check failed", base_url=self.base_url, error=str(e))
            return False

    async def pull_model(self) -> bool:
        """Ask the server to download the configured model"""

        try:
            response = await self._get_client().post(
                f"{self.base_url}/api/pull", json={"name": self.model}
            )
            return response.is_success
        except httpx.HTTPError as e:
            logger.error("Failed to pull model", model=self.model, error=str(e))
            return False


def _same_model(wanted: str, installed: str) -> bool:
    """An untagged name matches any tag of that model, a tagged one only itself"""
    if ":" in wanted:
        return installed == wanted
    return installed.split(":", 1)[0] == wanted
