"""
Structured logging for index operations.
"""

import logging
from typing import Any, Dict, List, Optional


def _truncate(text: str, limit: int = 50) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class StructuredLogger:
    """Structured logger for ingestion, vector, contradiction and purge operations."""

    def __init__(self, name: str = "lore"):
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

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error"):
            self.logger.error(message)
        else:
            self.logger.info(message)

    def log_ingest(self, source: str, title: str, chunks: int, status: str = "success"):
        """Log an entry written by the ingestion context."""
        details = {"source": source, "title": _truncate(title), "chunks": chunks}
        self.log_operation("ingest.insert", status, details)

    def log_indexer_run(self, source: str, status: str = "success", details: Dict[str, Any] = None):
        """Log one collector run."""
        log_details = {"source": source}
        if details:
            log_details.update(details)
        self.log_operation("indexer.run", status, log_details)

    def log_vector_operation(self, operation: str, record_id: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a vector operation."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update(details)

        self.log_operation(f"vector.{operation}", status, log_details)

    def log_contradiction_decision(self, action: str, source: str, topic: str,
                                   deleted_row_id: Optional[int] = None, error: Optional[str] = None):
        """Log the outcome of a contradiction check."""
        log_details = {"action": action, "source": source, "topic": topic}
        if deleted_row_id is not None:
            log_details["deleted_row_id"] = deleted_row_id
        if error:
            log_details["error"] = _truncate(error, 100)
        status = "fail_open" if error else "decided"
        self.log_operation("contradiction.decision", status, log_details)

    def log_purge(self, row_ids: List[int], log_entries_removed: int, status: str = "success"):
        """Log a purge."""
        log_details = {
            "row_ids": row_ids,
            "deleted": len(row_ids),
            "log_entries_removed": log_entries_removed
        }
        self.log_operation("purge.delete", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
