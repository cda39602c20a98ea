import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Iterable, List, Optional

# Context variables for correlation
phase_var: ContextVar[Optional[str]] = ContextVar('phase', default=None)
playlist_var: ContextVar[Optional[str]] = ContextVar('playlist', default=None)

ROOT_LOGGER = 'tunesync'
TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class SecretMasker:
    """Masks access tokens in log messages."""

    def __init__(self, secrets: Iterable[str] = ()):
        """Initialize secret masker with patterns and known literal secrets."""
        self.patterns = [
            # key=value style tokens
            r'(?i)(token|secret|password|auth)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Authorization headers
            r'(?i)(bearer)[\s]+([a-zA-Z0-9\-_\.]{20,})',
        ]
        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]
        self._secrets: List[str] = []
        for secret in secrets:
            self.add_secret(secret)

    def add_secret(self, secret: Optional[str]) -> None:
        """Mask every literal occurrence of ``secret`` from now on."""
        if secret and len(secret) >= 8 and secret not in self._secrets:
            self._secrets.append(secret)

    @staticmethod
    def _mask(secret: str) -> str:
        # Keep first 4 and last 4 characters
        if len(secret) > 8:
            return secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
        return '*' * len(secret)

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text
        for secret in self._secrets:
            masked_text = masked_text.replace(secret, self._mask(secret))

        for pattern in self.compiled_patterns:
            masked_text = pattern.sub(
                lambda m: f"{m.group(1)}: {self._mask(m.group(2))}", masked_text
            )

        return masked_text


class MaskingFormatter(logging.Formatter):
    """Plain text formatter that masks secrets and appends the migration context."""

    def __init__(self, masker: SecretMasker, fmt: str = TEXT_FORMAT):
        super().__init__(fmt)
        self.masker = masker

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = []
        if phase_var.get():
            context.append(f"phase={phase_var.get()}")
        if playlist_var.get():
            context.append(f"playlist={playlist_var.get()}")
        if context:
            message = f"{message} [{' '.join(context)}]"
        return self.masker.mask_secrets(message)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, masker: Optional[SecretMasker] = None):
        """Initialize formatter."""
        super().__init__()
        self.masker = masker or SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.masker.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add correlation fields if available
        phase = phase_var.get()
        playlist = playlist_var.get()
        if phase:
            log_entry['phase'] = phase
        if playlist:
            log_entry['playlist'] = playlist

        if record.exc_info:
            log_entry['exception'] = self.masker.mask_secrets(self.formatException(record.exc_info))

        return json.dumps(log_entry, ensure_ascii=False)


class MigrationContext:
    """Context manager tagging log records with the current phase and playlist."""

    def __init__(self, phase: Optional[str] = None, playlist: Optional[str] = None):
        self.phase = phase
        self.playlist = playlist
        self._tokens = []

    def __enter__(self):
        """Set correlation context."""
        if self.phase is not None:
            self._tokens.append((phase_var, phase_var.set(self.phase)))
        if self.playlist is not None:
            self._tokens.append((playlist_var, playlist_var.set(self.playlist)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def setup_logging(level: str = 'INFO',
                  log_file: Optional[str] = None,
                  log_format: str = 'text',
                  secrets: Iterable[str] = ()) -> logging.Logger:
    """Configure the ``tunesync`` logger.

    Args:
        level: Logging level name
        log_file: Optional path of a rotating log file
        log_format: ``text`` or ``json``
        secrets: Literal values (access tokens) to mask in every record

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    masker = SecretMasker(secrets)
    if log_format == 'json':
        formatter: logging.Formatter = StructuredFormatter(masker)
    else:
        formatter = MaskingFormatter(masker)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Rotate at ~10MB with up to 5 backups
    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024,
                                           backupCount=5, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger

