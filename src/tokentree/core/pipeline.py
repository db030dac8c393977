# src/tokentree/core/pipeline.py
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional

from tokentree.config import STDIN_LABEL
from tokentree.core.aggregate import aggregate
from tokentree.core.classifier import classify_file, classify_stdin
from tokentree.core.dispatch import Dispatcher
from tokentree.core.walker import PathWalker, display_path
from tokentree.errors import PathNotFoundError, RootUnreadableError
from tokentree.models import Aggregation, FileEntry
from tokentree.tokenizers.registry import ResolvedTokenizers


def check_roots(roots: Iterable[str]):
    """Fails fast, before anything is tokenized, on a missing or unreadable root."""
    for root in roots:
        path = Path(root)
        if not path.exists():
            raise PathNotFoundError(root)
        if path.is_dir():
            if not os.access(path, os.R_OK | os.X_OK):
                raise RootUnreadableError(root, "permission denied")
        elif not os.access(path, os.R_OK):
            raise RootUnreadableError(root, "permission denied")


def collect_entries(root: Path, walker: PathWalker, max_workers: Optional[int] = None) -> List[FileEntry]:
    """Walks ``root`` and classifies every candidate on a thread pool, keeping walk order."""
    with ThreadPoolExecutor(max_workers=max_workers or os.cpu_count()) as pool:
        return list(pool.map(lambda candidate: classify_file(*candidate), walker.walk(root)))


class Pipeline:
    """Walk -> classify -> dispatch -> aggregate, one root at a time."""

    def __init__(self, walker: PathWalker, resolved: ResolvedTokenizers, dispatcher: Optional[Dispatcher] = None):
        self.walker = walker
        self.resolved = resolved
        self.dispatcher = dispatcher or Dispatcher(resolved.tokenizers)

    def _finish(self, label: str, entries: List[FileEntry]) -> Aggregation:
        results = self.dispatcher.dispatch(entries)
        return aggregate(label, entries, results, self.resolved.names, self.resolved.mode)

    def run_root(self, root: str) -> Aggregation:
        entries = collect_entries(Path(root), self.walker, self.dispatcher.max_workers)
        return self._finish(display_path(root), entries)

    def run_stdin(self, data: bytes) -> Aggregation:
        return self._finish(STDIN_LABEL, [classify_stdin(data)])
