#!/usr/bin/env python3
"""
Structured logging for the Linear issue-tree importer.

Provides context-aware logging with rotation, sanitization, and debug mode.
"""

import os
import sys
import json
import logging
import logging.handlers
from pathlib import Path
from urllib.parse import urlparse
from typing import Dict, Any, Optional


SENSITIVE_KEYS = ('key', 'token', 'password', 'secret', 'authorization')


class ImportLogger:
    """Structured logger for import runs."""

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        debug: bool = False,
        console_output: bool = True
    ):
        """
        Initialize import logger.

        Args:
            log_dir: Directory for log files (default: .sync/logs/)
            debug: Enable debug mode with verbose logging
            console_output: Also output to console
        """
        # Determine log directory
        if log_dir is None:
            current_dir = Path.cwd()
            while current_dir != current_dir.parent:
                if (current_dir / '.sync').exists():
                    log_dir = current_dir / '.sync' / 'logs'
                    break
                current_dir = current_dir.parent

            if log_dir is None:
                log_dir = Path('.sync/logs')

        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.log_file = self.log_dir / 'import.log'
        self.debug_enabled = debug or os.getenv('DEBUG', '').lower() in ('true', '1', 'yes')

        self.logger = logging.getLogger('linear_import')
        self.logger.setLevel(logging.DEBUG if self.debug_enabled else logging.INFO)
        self.logger.propagate = False

        # Remove handlers left by a previous instance
        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()

        # File handler with rotation (10MB max, keep 30 backups)
        file_handler = logging.handlers.RotatingFileHandler(
            self.log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=30
        )
        file_handler.setLevel(logging.DEBUG if self.debug_enabled else logging.INFO)

        if console_output:
            # stderr keeps stdout clean for --json reports
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(logging.DEBUG if self.debug_enabled else logging.INFO)
            console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
            self.logger.addHandler(console_handler)

        file_formatter = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(file_formatter)
        self.logger.addHandler(file_handler)

    def _format_context(self, context: Dict[str, Any]) -> str:
        """Format context dictionary as structured data."""
        if not context:
            return ''

        sanitized = {}
        for key, value in context.items():
            if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
                sanitized[key] = '<REDACTED>'
            else:
                sanitized[key] = value

        return ' | ' + json.dumps(sanitized, separators=(',', ':'), default=str)

    def info(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log an informational message with optional context."""
        self.logger.info(message + self._format_context(context or {}))

    def debug(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log a message only when debug mode is on."""
        if self.debug_enabled:
            self.logger.debug(message + self._format_context(context or {}))

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log warning message."""
        self.logger.warning(message + self._format_context(context or {}))

    def error(
        self,
        message: str,
        error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log error message with exception details.

        Args:
            message: Log message
            error: Optional exception object
            context: Optional context data (dict)
        """
        msg = message
        if error:
            msg += f" | Error: {type(error).__name__}: {error}"

        msg += self._format_context(context or {})
        self.logger.error(msg, exc_info=error if self.debug_enabled else None)

    def log_operation(
        self,
        operation: str,
        result: str,
        duration: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an import operation with structured metadata.

        Args:
            operation: Operation name (e.g., 'import_run', 'create_issue')
            result: Result status ('success', 'failure')
            duration: Operation duration in seconds
            context: Optional context data (dict)
        """
        ctx = dict(context or {})
        ctx['operation'] = operation
        ctx['result'] = result

        if duration is not None:
            ctx['duration_sec'] = round(duration, 3)

        level = logging.INFO if result == 'success' else logging.ERROR
        msg = f"Operation: {operation} | Result: {result}"

        if duration is not None:
            msg += f" | Duration: {duration:.3f}s"

        msg += self._format_context(ctx)
        self.logger.log(level, msg)

    def log_http_request(
        self,
        method: str,
        url: str,
        status_code: Optional[int] = None,
        duration: Optional[float] = None
    ) -> None:
        """
        Log HTTP request details (debug mode only).

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request URL (query string is dropped)
            status_code: Response status code
            duration: Request duration in seconds
        """
        if not self.debug_enabled:
            return

        parsed = urlparse(url)
        sanitized_url = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"

        context = {
            'method': method,
            'url': sanitized_url,
            'status_code': status_code,
            'duration_sec': round(duration, 3) if duration else None
        }

        self.debug(f"HTTP {method} {sanitized_url}", context)


_logger: Optional[ImportLogger] = None


def configure_logger(
    log_dir: Optional[Path] = None,
    debug: bool = False,
    console_output: bool = True
) -> ImportLogger:
    """
    Replace the shared logger once CLI flags and config are known.

    Args:
        log_dir: Directory for import.log (default: nearest .sync/logs/)
        debug: Enable debug mode with verbose logging
        console_output: Also echo to stderr

    Returns:
        The new shared ImportLogger
    """
    global _logger

    _logger = ImportLogger(log_dir=log_dir, debug=debug, console_output=console_output)
    return _logger


def get_logger(**kwargs) -> ImportLogger:
    """Return the shared logger, creating it with configure_logger(**kwargs) on first use."""
    if _logger is None:
        return configure_logger(**kwargs)
    return _logger


if __name__ == '__main__':
    log = get_logger(debug=True)
    log.info("Logger ready", {'log_file': str(log.log_file), 'api_key': 'redacted'})
