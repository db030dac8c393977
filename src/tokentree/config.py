# src/tokentree/config.py
import os
from typing import Optional

# --- Walking / classification ---
MAX_FILE_SIZE = 3 * 1024 * 1024   # larger files are shown as [too large]
SNIFF_BYTES = 8 * 1024            # prefix read for UTF-8 sniffing

# Dotfiles and dot-directories are never walked; .git is one of them
HIDDEN_PREFIX = "."
GIT_DIR = ".git"
GIT_EXCLUDE_FILE = "info/exclude"
IGNORE_FILE_NAMES = (".gitignore", ".ignore")

STDIN_PATH = "-"
STDIN_LABEL = "<stdin>"

# --- Networked tokenizer (Anthropic count_tokens) ---
COUNT_TOKENS_URL = "https://api.anthropic.com/v1/messages/count_tokens"
CLAUDE_MODEL = "claude-sonnet-4-6"
ANTHROPIC_VERSION = "2023-06-01"
REQUEST_TIMEOUT = 30.0  # seconds

# Retry discipline for rate-limited remote calls
MAX_ATTEMPTS = 3
BASE_RETRY_DELAY = 1.0  # seconds, doubled after every failed attempt

# Outstanding remote requests at any one time
REMOTE_CONCURRENCY = 20

# Credentials, in lookup order
API_KEY_ENV_VARS = ("TOKENTREE_API_KEY", "ANTHROPIC_API_KEY")
NO_COLOR_ENV_VAR = "NO_COLOR"

# --- Exit codes (sysexits.h) ---
EXIT_OK = 0
EXIT_USAGE = 64
EXIT_NOINPUT = 66
EXIT_UNAVAILABLE = 69
EXIT_IOERR = 74


def load_api_key(environ=None) -> Optional[str]:
    """Returns the first non-empty credential from API_KEY_ENV_VARS, or None."""
    environ = os.environ if environ is None else environ
    for name in API_KEY_ENV_VARS:
        value = environ.get(name)
        if value:
            return value
    return None


def color_disabled_by_env(environ=None) -> bool:
    # Presence alone disables colour, whatever the value.
    environ = os.environ if environ is None else environ
    return NO_COLOR_ENV_VAR in environ
