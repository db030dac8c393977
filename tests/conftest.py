# tests/conftest.py
import logging

import pytest

from tokentree.config import API_KEY_ENV_VARS, NO_COLOR_ENV_VAR
from tokentree.errors import TokenizerPermanentFailure, TokenizerTransientFailure
from tokentree.models import TokenizerDescriptor
from tokentree.tokenizers import registry
from tokentree.tokenizers.base import Tokenizer
from tokentree.tokenizers.local import O200K_DESCRIPTOR
from tokentree.tokenizers.remote import CLAUDE_DESCRIPTOR


class WordTokenizer(Tokenizer):
    """Deterministic stand-in: one token per whitespace-separated word, times ``scale``."""

    def __init__(self, descriptor: TokenizerDescriptor = O200K_DESCRIPTOR, scale: int = 1):
        self.descriptor = descriptor
        self.scale = scale
        self.calls = 0
        self.closed = False

    async def count_tokens(self, text: str) -> int:
        self.calls += 1
        return len(text.split()) * self.scale

    async def aclose(self):
        self.closed = True


class ScriptedTokenizer(Tokenizer):
    """
    Plays back a script of outcomes, one per call. Ints are returned,
    the strings "429" and "500" raise transient / permanent failures.
    A dict maps file text to its own script, so the outcome does not depend
    on which file reaches the tokenizer first.
    """

    def __init__(self, script, descriptor: TokenizerDescriptor = CLAUDE_DESCRIPTOR):
        self.descriptor = descriptor
        if isinstance(script, dict):
            self.script = {text: list(steps) for text, steps in script.items()}
        else:
            self.script = list(script)
        self.calls = 0

    async def count_tokens(self, text: str) -> int:
        self.calls += 1
        steps = self.script[text] if isinstance(self.script, dict) else self.script
        step = steps.pop(0)
        if step == "429":
            raise TokenizerTransientFailure("rate limited")
        if step == "500":
            raise TokenizerPermanentFailure("server error", status=500)
        return step


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """No test may see a real credential or an inherited NO_COLOR."""
    for name in API_KEY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv(NO_COLOR_ENV_VAR, raising=False)
    monkeypatch.delenv("FORCE_COLOR", raising=False)


@pytest.fixture(autouse=True)
def reset_logging():
    """The CLI installs its own stderr handler; put the package logger back afterwards."""
    logger = logging.getLogger("tokentree")
    handlers, level = logger.handlers[:], logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


@pytest.fixture
def stub_tokenizers(monkeypatch):
    """
    Replaces the real tokenizers with word counters so tests need neither the
    tiktoken vocabulary download nor the network. "claude" counts double.
    """
    made = {}

    def o200k(api_key):
        made["o200k"] = WordTokenizer(O200K_DESCRIPTOR)
        return made["o200k"]

    def claude(api_key):
        made["claude"] = WordTokenizer(CLAUDE_DESCRIPTOR, scale=2)
        return made["claude"]

    monkeypatch.setitem(registry.DEFAULT_FACTORIES, "o200k", o200k)
    monkeypatch.setitem(registry.DEFAULT_FACTORIES, "claude", claude)
    return made


@pytest.fixture
def sample_project(tmp_path):
    """
    a.txt     50 words
    b.txt     60 words
    img.png   binary
    """
    (tmp_path / "a.txt").write_text("word " * 50, encoding="utf-8")
    (tmp_path / "b.txt").write_text("word " * 60, encoding="utf-8")
    (tmp_path / "img.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\xff\xfe")
    return tmp_path


@pytest.fixture
def nested_project(tmp_path):
    """
    A small tree with ignored paths, a nested directory and an empty directory.
    """
    src = tmp_path / "src"
    (src / "utils").mkdir(parents=True)
    (tmp_path / "logs").mkdir()
    (tmp_path / "empty").mkdir()
    (tmp_path / ".git").mkdir()

    (src / "main.py").write_text("print ( 'main' )", encoding="utf-8")
    (src / "utils" / "helper.py").write_text("def helper ( ) : pass", encoding="utf-8")
    (tmp_path / "README.md").write_text("# Project", encoding="utf-8")
    (tmp_path / "logs" / "app.log").write_text("error ...", encoding="utf-8")
    (tmp_path / ".git" / "HEAD").write_text("ref: refs/heads/main", encoding="utf-8")
    (tmp_path / ".gitignore").write_text("logs/\n", encoding="utf-8")
    return tmp_path
