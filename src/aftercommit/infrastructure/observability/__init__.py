"""
Observability
Logging and metrics
"""
from aftercommit.infrastructure.observability.logger import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    log_context,
    unbind_context,
)
from aftercommit.infrastructure.observability.metrics import (
    MetricsCollector,
    configure_metrics,
    get_metrics,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "log_context",
    "clear_context",
    "MetricsCollector",
    "configure_metrics",
    "get_metrics",
]
