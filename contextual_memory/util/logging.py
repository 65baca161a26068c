"""
Structured operation logging for the contextual memory subsystem.
Every record names the operation and the owner it concerns.
"""

import logging
from typing import Any, Dict, List, Optional

SENSITIVE_FIELDS = ['text', 'message', 'content', 'user_text', 'assistant_text', 'payload']


class StructuredLogger:
    """Structured logger for vector storage, retrieval and profile operations."""

    def __init__(self, name: str = "contextual_memory"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None,
                      level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def _level_for(self, status: str) -> int:
        if status in ("failed", "error"):
            return logging.ERROR
        if status in ("degraded", "skipped"):
            return logging.WARNING
        return logging.INFO

    def log_vector_operation(self, operation: str, owner_id: str, details: Dict[str, Any] = None,
                             status: str = "success"):
        """Log a vector upsert or query."""
        log_details = {"owner_id": owner_id}
        if details:
            log_details.update(sanitize_payload(details))

        self.log_operation(f"vector.{operation}", status, log_details, self._level_for(status))

    def log_storage_operation(self, operation: str, owner_id: str, index_name: str,
                              status: str = "success", details: Dict[str, Any] = None):
        """Log index provisioning, existence checks and teardown."""
        log_details = {"owner_id": owner_id, "index_name": index_name}
        if details:
            log_details.update(details)

        self.log_operation(f"storage.{operation}", status, log_details, self._level_for(status))

    def log_retrieval(self, owner_id: str, top_k: int, returned: int, status: str = "success",
                      error: Optional[str] = None):
        """Log a retrieval pipeline run."""
        log_details = {"owner_id": owner_id, "top_k": top_k, "returned": returned}
        if error:
            log_details["error"] = error[:200]

        self.log_operation("retrieval.context", status, log_details, self._level_for(status))

    def log_profile_operation(self, operation: str, owner_id: str, status: str = "success",
                              details: Dict[str, Any] = None):
        """Log a profile store read, write or delete."""
        log_details = {"owner_id": owner_id}
        if details:
            log_details.update(details)

        self.log_operation(f"profile.{operation}", status, log_details, self._level_for(status))

    def log_enrichment(self, stage: str, owner_id: str, start_time: float, end_time: float,
                       status: str = "success", details: Dict[str, Any] = None):
        """Log a background enrichment step with its duration."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"owner_id": owner_id, "duration_ms": duration_ms}
        if details:
            log_details.update(sanitize_payload(details))

        self.log_operation(f"enrichment.{stage}", status, log_details, self._level_for(status))

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Truncate free text and mask message bodies before they reach the log."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
