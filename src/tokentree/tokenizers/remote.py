# src/tokentree/tokenizers/remote.py
"""
Networked tokenizer that asks Anthropic's ``count_tokens`` endpoint.

One request per file; the file text is sent as a single user message and the
response's ``input_tokens`` is the count. HTTP 429 is the only status worth
retrying and is reported as ``TokenizerTransientFailure``; retry timing is the
dispatcher's job.
"""
from typing import Optional

import httpx

from tokentree.config import ANTHROPIC_VERSION, CLAUDE_MODEL, COUNT_TOKENS_URL, REQUEST_TIMEOUT
from tokentree.errors import TokenizerPermanentFailure, TokenizerTransientFailure
from tokentree.models import Availability, CostClass, TokenizerDescriptor
from tokentree.tokenizers.base import Tokenizer

CLAUDE_DESCRIPTOR = TokenizerDescriptor(
    "claude", Availability.REQUIRES_CREDENTIAL_AND_NETWORK, CostClass.REMOTE
)

# Response bodies can be large HTML error pages; keep warnings readable
_MAX_ERROR_BODY = 200


class ClaudeTokenizer(Tokenizer):
    descriptor = CLAUDE_DESCRIPTOR

    def __init__(
        self,
        api_key: str,
        model: str = CLAUDE_MODEL,
        url: str = COUNT_TOKENS_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("Claude tokenizer requires an API key")
        self.model = model
        self.url = url
        self.headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        # Created lazily so the client binds to the running event loop
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport)
        return self._client

    def build_payload(self, text: str) -> dict:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": text}],
        }

    async def count_tokens(self, text: str) -> int:
        client = self._get_client()
        try:
            response = await client.post(self.url, headers=self.headers, json=self.build_payload(text))
        except httpx.HTTPError as e:
            raise TokenizerPermanentFailure(f"Claude API network error: {e}") from e

        if response.status_code == 429:
            raise TokenizerTransientFailure("Claude API rate limit exceeded")

        if response.status_code != 200:
            body = response.text[:_MAX_ERROR_BODY].strip()
            raise TokenizerPermanentFailure(
                f"Claude API error (HTTP {response.status_code}): {body}",
                status=response.status_code,
            )

        try:
            count = int(response.json()["input_tokens"])
        except (ValueError, KeyError, TypeError) as e:
            raise TokenizerPermanentFailure(f"Claude API response parse error: {e}") from e

        if count < 0:
            raise TokenizerPermanentFailure(f"Claude API returned a negative count: {count}")
        return count

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
