import structlog
import logging
import os
import sys
import time
from dataclasses import dataclass
from typing import Dict, Any, List, Optional


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "percify-avatar-agent"
) -> None:
    """Route structlog through stdlib logging with JSON or console output"""

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )

    renderer = structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=_shared_processors() + [renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
    )


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


class AgentLogger:
    """Event-style log lines for the step loop, tools and state writes"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_tool_execution(
        self,
        tool_name: str,
        tool_call_id: str,
        arguments: Dict[str, Any],
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        log = self.logger.info if success else self.logger.warning
        log(
            "tool_execution",
            tool_name=tool_name,
            tool_call_id=tool_call_id,
            arguments=arguments,
            duration_ms=duration_ms,
            success=success,
            error=error
        )

    def log_step_transition(self, from_node: str, to_node: str, step: int, condition: Optional[str] = None):
        self.logger.debug("step_transition", from_node=from_node, to_node=to_node, step=step, condition=condition)

    def log_state_mutation(self, action: str, details: Optional[Dict[str, Any]] = None):
        """Avatar and memory writes, one line each"""
        self.logger.info("state_mutation", action=action, details=details or {})


agent_logger = AgentLogger("agent")


@dataclass
class LatencyStats:
    count: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0

    def add(self, duration_ms: float):
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    def summary(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": self.total_ms / self.count if self.count else 0,
            "min": self.min_ms or 0,
            "max": self.max_ms,
        }


class MetricsCollector:
    """In-process counters and latencies, reported by /health and mirrored to the log"""

    def __init__(self):
        self.counters: Dict[str, int] = {}
        self.latencies: Dict[str, LatencyStats] = {}

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        self.latencies.setdefault(operation, LatencyStats()).add(duration_ms)
        agent_logger.logger.debug("metric", kind="latency", operation=operation,
                                  duration_ms=round(duration_ms, 2), tags=tags or {})

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        self.counters[name] = self.counters.get(name, 0) + value
        agent_logger.logger.debug("metric", kind="counter", name=name, value=value, tags=tags or {})

    def timer(self, operation: str, tags: Optional[Dict[str, str]] = None) -> "_Timer":
        """Context manager recording the wall time of its block"""
        return _Timer(self, operation, tags)

    def get_metrics_summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = dict(self.counters)
        for operation, stats in self.latencies.items():
            summary[f"latency.{operation}"] = stats.summary()
        return summary

    def reset(self):
        self.counters.clear()
        self.latencies.clear()


class _Timer:
    def __init__(self, collector: MetricsCollector, operation: str, tags: Optional[Dict[str, str]]):
        self.collector = collector
        self.operation = operation
        self.tags = tags
        self.started = 0.0

    def __enter__(self):
        self.started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.collector.record_latency(self.operation, (time.perf_counter() - self.started) * 1000, self.tags)
        return False


metrics = MetricsCollector()
