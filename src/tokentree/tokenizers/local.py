# src/tokentree/tokenizers/local.py
import asyncio
import threading

import tiktoken

from tokentree.errors import TokenizerPermanentFailure
from tokentree.models import Availability, CostClass, TokenizerDescriptor
from tokentree.tokenizers.base import Tokenizer

O200K_DESCRIPTOR = TokenizerDescriptor("o200k", Availability.ALWAYS_OFFLINE, CostClass.LOCAL)


class TiktokenTokenizer(Tokenizer):
    """
    Offline tokenizer backed by a tiktoken BPE encoding.

    The encoding is loaded on first use and shared between worker threads;
    counting runs in the event loop's executor so several files are encoded
    at once.
    """

    def __init__(self, descriptor: TokenizerDescriptor = O200K_DESCRIPTOR, encoding_name: str = "o200k_base"):
        self.descriptor = descriptor
        self.encoding_name = encoding_name
        self._encoding = None
        self._lock = threading.Lock()

    def get_encoding(self):
        if self._encoding is None:
            with self._lock:
                if self._encoding is None:
                    self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    def count(self, text: str) -> int:
        """Synchronous count; special-token text is treated as ordinary text."""
        if not text:
            return 0
        try:
            return len(self.get_encoding().encode_ordinary(text))
        except Exception as e:
            raise TokenizerPermanentFailure(f"{self.encoding_name}: {e}") from e

    async def count_tokens(self, text: str) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.count, text)
