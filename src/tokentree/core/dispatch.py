# src/tokentree/core/dispatch.py
"""
Runs every (text file, tokenizer) pair exactly once.

Local tokenizers and file loading run on a thread pool sized to the machine.
Remote tokenizers run as asyncio tasks, at most ``remote_limit`` in flight,
and are retried on rate limiting by an explicit state machine
(``ATTEMPTING`` -> ``SUCCEEDED`` | ``PERMANENTLY_FAILED``).

Results are keyed by (rel_path, tokenizer name); completion order carries no
meaning and is discarded by the aggregator.
"""
import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from tokentree.config import BASE_RETRY_DELAY, MAX_ATTEMPTS, REMOTE_CONCURRENCY
from tokentree.errors import TokenizerError, TokenizerTransientFailure
from tokentree.models import CostClass, FileEntry, TokenCountResult
from tokentree.tokenizers.base import Tokenizer

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
ResultKey = Tuple[str, str]


class AttemptState(Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    PERMANENTLY_FAILED = "permanently_failed"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = MAX_ATTEMPTS
    base_delay: float = BASE_RETRY_DELAY

    def backoff(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based): 1s, 2s, 4s, ..."""
        return self.base_delay * (2 ** (attempt - 1))


@dataclass
class AttemptOutcome:
    state: AttemptState
    attempts: int
    count: Optional[int] = None
    error: Optional[str] = None


async def count_with_retry(
    tokenizer: Tokenizer,
    text: str,
    policy: RetryPolicy,
    sleep: Sleep = asyncio.sleep,
) -> AttemptOutcome:
    """
    Drives one tokenization to a terminal state.

    Only TokenizerTransientFailure is retried; any other TokenizerError ends
    the machine immediately.
    """
    state = AttemptState.ATTEMPTING
    attempt = 0
    count: Optional[int] = None
    error: Optional[str] = None

    while state is AttemptState.ATTEMPTING:
        attempt += 1
        try:
            count = await tokenizer.count_tokens(text)
            state = AttemptState.SUCCEEDED
        except TokenizerTransientFailure as e:
            if attempt >= policy.max_attempts:
                error = f"{e} (gave up after {attempt} attempts)"
                state = AttemptState.PERMANENTLY_FAILED
            else:
                delay = policy.backoff(attempt)
                logger.debug("%s: %s, retrying in %.1fs (attempt %d/%d)",
                             tokenizer.name, e, delay, attempt, policy.max_attempts)
                await sleep(delay)
        except TokenizerError as e:
            error = str(e)
            state = AttemptState.PERMANENTLY_FAILED

    return AttemptOutcome(state=state, attempts=attempt, count=count, error=error)


class ResultStore:
    """Insert-only map from (rel_path, tokenizer) to its single result."""

    def __init__(self):
        self._results: Dict[ResultKey, TokenCountResult] = {}

    def put(self, result: TokenCountResult):
        if result.key in self._results:
            raise RuntimeError(f"duplicate result for {result.key}")
        self._results[result.key] = result

    def get(self, rel_path: str, tokenizer: str) -> Optional[TokenCountResult]:
        return self._results.get((rel_path, tokenizer))

    def __len__(self) -> int:
        return len(self._results)


def load_text(entry: FileEntry) -> str:
    """Reads the full content of a Text entry; the classifier only sniffed a prefix."""
    data = entry.data if entry.data is not None else entry.path.read_bytes()
    return data.decode("utf-8")


class Dispatcher:
    def __init__(
        self,
        tokenizers: Sequence[Tokenizer],
        remote_limit: int = REMOTE_CONCURRENCY,
        max_workers: Optional[int] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.tokenizers = list(tokenizers)
        self.remote_limit = remote_limit
        self.max_workers = max_workers or os.cpu_count() or 1
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def dispatch(self, entries: Iterable[FileEntry]) -> ResultStore:
        """Tokenizes every Text entry with every tokenizer; blocks until done."""
        text_entries = [e for e in entries if e.is_text]
        return asyncio.run(self._dispatch_all(text_entries))

    async def _dispatch_all(self, entries: List[FileEntry]) -> ResultStore:
        store = ResultStore()
        loop = asyncio.get_running_loop()
        loop.set_default_executor(ThreadPoolExecutor(max_workers=self.max_workers))

        # Only remote calls are capped; local work is bounded by the executor
        limits = {CostClass.REMOTE: asyncio.Semaphore(self.remote_limit)}

        try:
            await asyncio.gather(*(self._process_file(entry, store, limits) for entry in entries))
        finally:
            for tokenizer in self.tokenizers:
                await tokenizer.aclose()
        return store

    async def _process_file(self, entry: FileEntry, store: ResultStore, limits):
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, load_text, entry)
        except (OSError, UnicodeDecodeError) as e:
            reason = getattr(e, "strerror", None) or str(e)
            logger.warning("%s: %s", entry.rel_path, reason)
            for tokenizer in self.tokenizers:
                store.put(TokenCountResult(entry.rel_path, tokenizer.name, error=reason, attempts=0))
            return

        await asyncio.gather(*(
            self._run_cell(entry, tokenizer, text, store, limits.get(tokenizer.descriptor.cost))
            for tokenizer in self.tokenizers
        ))

    async def _run_cell(self, entry: FileEntry, tokenizer: Tokenizer, text: str, store: ResultStore, limit):
        async with limit if limit is not None else nullcontext():
            outcome = await count_with_retry(tokenizer, text, self.policy, self.sleep)

        if outcome.state is AttemptState.SUCCEEDED:
            result = TokenCountResult(entry.rel_path, tokenizer.name, count=outcome.count,
                                      attempts=outcome.attempts)
        else:
            logger.warning("%s [%s]: %s", entry.rel_path, tokenizer.name, outcome.error)
            result = TokenCountResult(entry.rel_path, tokenizer.name, error=outcome.error,
                                      attempts=outcome.attempts)
        store.put(result)
