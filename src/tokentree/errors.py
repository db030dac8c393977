# src/tokentree/errors.py
"""
Exception hierarchy.

Two families live here:

* ``TokentreeError`` and subclasses are fatal. They are raised before any
  tokenization is dispatched and map one-to-one onto a process exit code.
* ``TokenizerError`` and subclasses are scoped to a single (file, tokenizer)
  cell. The dispatcher recovers from them, logs a warning and records the
  cell as failed.
"""
from typing import Optional

from tokentree.config import EXIT_IOERR, EXIT_NOINPUT, EXIT_UNAVAILABLE, EXIT_USAGE


class TokentreeError(Exception):
    """Base class for errors that abort the run."""

    exit_code = EXIT_USAGE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(TokentreeError):
    """Invalid option combination or unknown tokenizer name."""


class TokenizerUnavailableError(ConfigurationError):
    """An explicitly requested tokenizer cannot run (no credential, or offline)."""

    exit_code = EXIT_UNAVAILABLE


class NoEligibleTokenizersError(ConfigurationError):
    """Nothing is left to count with."""


class PathNotFoundError(TokentreeError):
    exit_code = EXIT_NOINPUT

    def __init__(self, path: str):
        super().__init__(f"path not found: {path}")
        self.path = path


class RootUnreadableError(TokentreeError):
    exit_code = EXIT_IOERR

    def __init__(self, path: str, reason: str):
        super().__init__(f"cannot read {path}: {reason}")
        self.path = path


class TokenizerError(Exception):
    """A single tokenization call failed."""


class TokenizerTransientFailure(TokenizerError):
    """The service asked us to slow down; the call may be retried."""


class TokenizerPermanentFailure(TokenizerError):
    """The call failed for good (non-retryable error, or retries exhausted)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
