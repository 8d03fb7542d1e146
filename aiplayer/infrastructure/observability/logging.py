import structlog
import logging
import sys
import threading
import time
from contextlib import contextmanager
from typing import Dict, Any, Iterator, List, Optional
from datetime import datetime, timezone
import os


SLOW_OPERATION_MS = 100.0
SLOW_LLM_CALL_MS = 10_000.0  # remote completions routinely take seconds

# Per-request INFO lines from the HTTP stack drown out agent events
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "aiplayer"
) -> None:
    """Route structlog through stdlib logging with JSON or console rendering"""

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=_shared_processors() + [renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("AIPLAYER_ENVIRONMENT", "development"),
        host_pid=os.getpid()
    )


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_agent_context,
    ]


def add_agent_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in agent and goal ids bound for the current planning cycle"""

    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())

    bound = structlog.contextvars.get_contextvars()
    for key in ("agent_id", "goal_id"):
        if bound.get(key) and key not in event_dict:
            event_dict[key] = bound[key]

    return event_dict


class AgentLogger:
    """Typed helpers for the cognition events worth querying later"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_agent_event(
        self,
        event_type: str,
        agent_id: str,
        data: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """Lifecycle events: started, stopped, attached"""

        self.logger.info(
            "agent_event",
            event_type=event_type,
            agent_id=agent_id,
            data=data or {},
            **kwargs
        )

    def log_llm_call(
        self,
        provider: str,
        model: str,
        prompt_chars: int,
        duration_ms: Optional[float] = None,
        cached: bool = False,
        success: bool = True,
        error: Optional[str] = None
    ):
        log = self.logger.info if success else self.logger.warning
        log(
            "llm_call",
            provider=provider,
            model=model,
            prompt_chars=prompt_chars,
            duration_ms=duration_ms,
            cached=cached,
            success=success,
            error=error
        )

    def log_goal_transition(
        self,
        agent_id: str,
        goal_id: str,
        from_status: str,
        to_status: str,
        description: Optional[str] = None
    ):
        self.logger.info(
            "goal_transition",
            agent_id=agent_id,
            goal_id=goal_id,
            from_status=from_status,
            to_status=to_status,
            description=description
        )

    def log_memory_update(
        self,
        agent_id: str,
        memory_type: str,
        action: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Bulk memory changes such as consolidation; single stores stay at debug"""

        self.logger.debug(
            "memory_update",
            agent_id=agent_id,
            memory_type=memory_type,
            action=action,
            details=details or {}
        )


class LatencyStats:
    """Running count/sum/min/max for one timed operation"""

    def __init__(self):
        self.count = 0
        self.total_ms = 0.0
        self.min_ms: Optional[float] = None
        self.max_ms = 0.0

    def observe(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    def summary(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": self.total_ms / self.count if self.count else 0,
            "min": self.min_ms or 0,
            "max": self.max_ms
        }


class MetricsCollector:
    """Per-application metrics; one instance is shared through the ApplicationContext"""

    def __init__(self, name: str = "metrics"):
        self.latencies: Dict[str, LatencyStats] = {}
        self.counters: Dict[str, int] = {}
        self.gauges: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._logger = structlog.get_logger(name)

    def record_latency(
        self,
        operation: str,
        duration_ms: float,
        tags: Optional[Dict[str, str]] = None,
        slow_ms: float = SLOW_OPERATION_MS
    ):
        with self._lock:
            self.latencies.setdefault(operation, LatencyStats()).observe(duration_ms)

        if duration_ms > slow_ms:
            self._logger.warning(
                "Slow operation detected",
                operation=operation,
                duration_ms=round(duration_ms, 1),
                tags=tags or {}
            )
        else:
            self._logger.debug("metric", metric_type="latency", operation=operation, duration_ms=duration_ms)

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + value

        self._logger.debug("metric", metric_type="counter", name=name, value=value, tags=tags or {})

    def set_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        with self._lock:
            self.gauges[name] = value

        self._logger.debug("metric", metric_type="gauge", name=name, value=value, tags=tags or {})

    def get_counter(self, name: str) -> int:
        with self._lock:
            return self.counters.get(name, 0)

    @contextmanager
    def timed(
        self,
        operation: str,
        tags: Optional[Dict[str, str]] = None,
        slow_ms: float = SLOW_OPERATION_MS
    ) -> Iterator[None]:
        """Time the enclosed block, failures included"""

        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_latency(operation, (time.perf_counter() - start) * 1000.0, tags, slow_ms)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Flat view: latency.<operation> summaries plus raw counters and gauges"""

        with self._lock:
            summary: Dict[str, Any] = {
                f"latency.{operation}": stats.summary()
                for operation, stats in self.latencies.items()
            }
            summary.update(self.counters)
            summary.update(self.gauges)
        return summary
