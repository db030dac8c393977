# src/tokentree/tokenizers/base.py
from abc import ABC, abstractmethod

from tokentree.models import TokenizerDescriptor


class Tokenizer(ABC):
    """
    Common interface for every token counter.

    The dispatcher only ever calls ``count_tokens`` and reads ``descriptor``;
    whether the count is computed in-process or over the network is the
    implementation's business.
    """

    descriptor: TokenizerDescriptor

    @property
    def name(self) -> str:
        return self.descriptor.name

    @abstractmethod
    async def count_tokens(self, text: str) -> int:
        """
        Returns the token count for ``text``.

        Raises TokenizerTransientFailure when the call may succeed if retried,
        TokenizerPermanentFailure otherwise.
        """

    async def aclose(self) -> None:
        """Releases any resources held across calls."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
