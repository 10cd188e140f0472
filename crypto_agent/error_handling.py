"""
Error taxonomy, retry policy and error bookkeeping for the agent toolset
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import structlog

from tenacity import (
    retry, stop_after_attempt, wait_exponential,
    retry_if_exception_type, before_sleep_log
)

logger = structlog.get_logger()


class CryptoAgentError(Exception):
    """Base class for errors surfaced to tool callers"""
    pass


class ValidationError(CryptoAgentError):
    """Raised when caller input is invalid (thresholds, addresses, parameters)"""
    pass


class UnsupportedChainError(ValidationError):
    """Raised for chains outside the supported set"""

    def __init__(self, chain: str):
        self.chain = chain
        super().__init__(f"Blockchain {chain} is not supported")


class ProviderError(CryptoAgentError):
    """Raised when a market-data or holdings provider call fails"""
    pass


class AlertNotFoundError(CryptoAgentError):
    """Raised when an alert id is not in the registry"""

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"Alert with ID {alert_id} not found")


class EmailDeliveryFailure(CryptoAgentError):
    """Raised inside the email client; never escapes send_price_alert"""
    pass


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    exceptions: tuple = (Exception,)
):
    """Retry decorator with exponential backoff"""
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay, max=max_delay),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )


class ErrorCollector:
    """Collects recent errors for status reporting"""

    def __init__(self, max_errors: int = 1000):
        self.errors: List[Dict] = []
        self.max_errors = max_errors

    def record_error(self, error: Exception, context: Optional[Dict[str, Any]] = None):
        """Record an error with context"""
        error_info = {
            "timestamp": datetime.now(timezone.utc),
            "type": type(error).__name__,
            "message": str(error),
            "context": context or {},
        }

        self.errors.append(error_info)

        # Maintain size limit
        if len(self.errors) > self.max_errors:
            self.errors = self.errors[-self.max_errors:]

        error_type = type(error).__name__

        logger.warning(
            "Error recorded",
            error_type=error_type,
            error_message=str(error),
            context=context
        )

    def count_since(self, hours: float = 1) -> int:
        cutoff_time = datetime.now(timezone.utc) - timedelta(hours=hours)
        return sum(1 for error in self.errors if error["timestamp"] > cutoff_time)

    def get_error_summary(self, hours: float = 24) -> Dict:
        """Get error summary for the last N hours"""
        cutoff_time = datetime.now(timezone.utc) - timedelta(hours=hours)

        recent_errors = [
            error for error in self.errors
            if error["timestamp"] > cutoff_time
        ]

        error_types: Dict[str, Dict] = {}
        for error in recent_errors:
            error_type = error["type"]
            if error_type not in error_types:
                error_types[error_type] = {"count": 0, "examples": []}

            error_types[error_type]["count"] += 1
            if len(error_types[error_type]["examples"]) < 3:
                error_types[error_type]["examples"].append({
                    "message": error["message"],
                    "timestamp": error["timestamp"].isoformat(),
                    "context": error["context"]
                })

        return {
            "time_window_hours": hours,
            "total_errors": len(recent_errors),
            "error_types": error_types,
        }


# Global error collector
error_collector = ErrorCollector()
