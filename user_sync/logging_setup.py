"""
Logging setup and configuration for External User Sync.

Provides file logging with daily rotation and retention, optional console output,
and scrubbing of credentials (placeholder passwords, API keys, tokens) from every
record before it is written.
"""

import os
import re
import glob
import logging
import logging.handlers
from datetime import datetime, timedelta
from typing import Dict, Any, List, Optional

LOG_FILE_NAME = 'app.log'


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub sensitive data from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'placeholder_password', 'password_hash', 'api_key', 'x-api-key',
        'token', 'access_token', 'secret', 'authorization', 'credential',
    ]

    MASK = '****'

    def __init__(self, name: str = ''):
        super().__init__(name)
        keywords = '|'.join(re.escape(k) for k in sorted(self.SENSITIVE_KEYWORDS, key=len, reverse=True))
        self._patterns = [
            # "key": "value"
            (re.compile(rf'("(?:{keywords})"\s*:\s*")[^"]*(")', re.IGNORECASE), rf'\1{self.MASK}\2'),
            # 'key': 'value'
            (re.compile(rf"('(?:{keywords})'\s*:\s*')[^']*(')", re.IGNORECASE), rf'\1{self.MASK}\2'),
            # Authorization: Bearer xyz / Basic xyz
            (re.compile(r'(Authorization:\s*(?:Bearer|Basic)\s+)\S+', re.IGNORECASE), rf'\1{self.MASK}'),
            # key=value
            (re.compile(rf'\b((?:{keywords})\s*=\s*)[^\s,}}\]]+', re.IGNORECASE), rf'\1{self.MASK}'),
        ]

    def scrub(self, message: str) -> str:
        for pattern, replacement in self._patterns:
            message = pattern.sub(replacement, message)
        return message

    def filter(self, record):
        """Mask sensitive values in the fully formatted message."""
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            message = str(record.msg)
        record.msg = self.scrub(message)
        record.args = None
        return True


class LoggingManager:
    """
    Manages logging configuration for the sync job.

    Configuration is applied once per process; call reset() to reconfigure.
    """

    def __init__(self):
        self.configured = False
        self.log_dir = None
        self.retention_days = 7

    def setup_logging(self, config: Optional[Dict[str, Any]]) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: The 'logging' configuration section
        """
        if self.configured:
            return

        logging_config = config or {}

        log_level = str(logging_config.get('level', 'INFO')).upper()
        self.log_dir = logging_config.get('log_dir', 'logs')
        rotation = str(logging_config.get('rotation', 'daily'))
        self.retention_days = int(logging_config.get('retention_days', 7))
        console_enabled = logging_config.get('console_output', True)
        console_level = str(logging_config.get('console_level', 'WARNING')).upper()

        self._ensure_log_directory()

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level, logging.INFO))
        root_logger.handlers.clear()

        sensitive_filter = SensitiveDataFilter()

        file_handler = self._create_file_handler(rotation)
        file_handler.setLevel(getattr(logging, log_level, logging.INFO))
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        file_handler.addFilter(sensitive_filter)
        root_logger.addHandler(file_handler)

        if console_enabled:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(getattr(logging, console_level, logging.WARNING))
            console_handler.setFormatter(logging.Formatter(
                '%(asctime)s [%(levelname)s] %(message)s',
                datefmt='%H:%M:%S'
            ))
            console_handler.addFilter(sensitive_filter)
            root_logger.addHandler(console_handler)

        self._cleanup_old_logs()

        self.configured = True

        logging.getLogger(__name__).info(
            f"Logging configured: level={log_level}, dir={self.log_dir}, "
            f"retention={self.retention_days} days, console={console_enabled}"
        )

    def reset(self) -> None:
        """Close installed handlers so logging can be configured again."""
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()
        self.configured = False

    def _ensure_log_directory(self) -> None:
        try:
            os.makedirs(self.log_dir, exist_ok=True)
        except OSError as e:
            logging.getLogger(__name__).warning(
                f"Could not create log directory {self.log_dir}: {e}; logging to current directory"
            )
            self.log_dir = '.'

    def _create_file_handler(self, rotation: str) -> logging.Handler:
        """
        Create the file handler for the rotation setting.

        Args:
            rotation: 'daily' or 'midnight' for timed rotation, anything else for a plain file
        """
        log_file = os.path.join(self.log_dir, LOG_FILE_NAME)

        if rotation.lower() in ('daily', 'midnight'):
            handler = logging.handlers.TimedRotatingFileHandler(
                filename=log_file,
                when='midnight',
                interval=1,
                backupCount=self.retention_days,
                encoding='utf-8'
            )
            handler.suffix = '%Y-%m-%d'
            return handler

        return logging.FileHandler(log_file, encoding='utf-8')

    def _cleanup_old_logs(self) -> None:
        """Delete rotated log files older than the retention period."""
        if not self.log_dir or self.retention_days <= 0:
            return

        cutoff = datetime.now() - timedelta(days=self.retention_days)
        for log_file in self.get_log_files():
            if os.path.basename(log_file) == LOG_FILE_NAME:
                continue
            try:
                if datetime.fromtimestamp(os.path.getmtime(log_file)) < cutoff:
                    os.remove(log_file)
            except OSError as e:
                logging.getLogger(__name__).warning(f"Could not remove old log file {log_file}: {e}")

    def get_log_files(self) -> List[str]:
        if not self.log_dir:
            return []
        return sorted(glob.glob(os.path.join(self.log_dir, f'{LOG_FILE_NAME}*')))


_logging_manager = LoggingManager()


def setup_logging(config: Optional[Dict[str, Any]]) -> None:
    """
    Convenience function to set up logging.

    Args:
        config: The 'logging' configuration section
    """
    _logging_manager.setup_logging(config)


def reset_logging() -> None:
    _logging_manager.reset()
