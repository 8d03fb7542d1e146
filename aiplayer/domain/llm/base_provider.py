from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
from datetime import datetime
import asyncio
import time

import httpx
import structlog

from aiplayer.domain.llm.errors import RequestFailureError
from aiplayer.domain.llm.options import LLMOptions
from aiplayer.domain.models.memory import utcnow
from aiplayer.infrastructure.observability.logging import AgentLogger

logger = structlog.get_logger(__name__)


CONNECT_TIMEOUT_SECONDS = 30.0
READ_TIMEOUT_SECONDS = 60.0


class LLMProvider(ABC):
    """Base class for LLM backends: async complete, batch and availability probe"""

    def __init__(
        self,
        name: str,
        model: str,
        base_url: str,
        read_timeout: float = READ_TIMEOUT_SECONDS,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.name = name
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.created_at = utcnow()
        self.last_active: Optional[datetime] = None
        self._timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._call_logger = AgentLogger(__name__)

    @property
    def provider_name(self) -> str:
        return self.name

    @property
    def model_name(self) -> str:
        return self.model

    @abstractmethod
    async def complete(self, prompt: str, options: Optional[LLMOptions] = None) -> str:
        """Generate one completion; failures raise RequestFailureError"""
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        """Minimal real request or capability probe; never raises"""
        pass

    async def complete_batch(self, prompts: List[str], options: Optional[LLMOptions] = None) -> List[str]:
        """Run all prompts concurrently; the first failure fails the batch"""

        return list(await asyncio.gather(*(self.complete(p, options) for p in prompts)))

    def _get_client(self) -> httpx.AsyncClient:
        # Bound lazily so the client belongs to the loop that first awaits it
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post_json(
        self,
        path: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """POST a JSON body and return the decoded JSON reply"""

        start = time.perf_counter()
        error: Optional[str] = None
        try:
            response = await self._get_client().post(
                f"{self.base_url}{path}", json=payload, headers=headers or {}
            )
            if not response.is_success:
                raise RequestFailureError(
                    self.name,
                    "non-success status",
                    status_code=response.status_code,
                    body=response.text
                )
            try:
                return response.json()
            except ValueError as e:
                raise RequestFailureError(self.name, f"invalid JSON reply: {e}") from e
        except httpx.HTTPError as e:
            error = str(e) or type(e).__name__
            raise RequestFailureError(self.name, error) from e
        except RequestFailureError as e:
            error = str(e)
            raise
        finally:
            self.last_active = utcnow()
            self._call_logger.log_llm_call(
                provider=self.name,
                model=self.model,
                prompt_chars=len(str(payload)),
                duration_ms=round((time.perf_counter() - start) * 1000.0, 1),
                success=error is None,
                error=error
            )

    def get_info(self) -> Dict[str, Any]:
        return {
            "provider": self.name,
            "model": self.model,
            "base_url": self.base_url,
            "created_at": self.created_at.isoformat(),
            "last_active": self.last_active.isoformat() if self.last_active else None
        }

    def __str__(self) -> str:
        return f"{type(self).__name__}(model={self.model})"
