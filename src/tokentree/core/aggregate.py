# src/tokentree/core/aggregate.py
from typing import Dict, Iterable, List, Optional, Sequence

from tokentree.core.dispatch import ResultStore
from tokentree.models import (
    AggregatedFile,
    Aggregation,
    CountMode,
    FileEntry,
    FileKind,
    TokenRange,
)


def _aggregate_entry(entry: FileEntry, results: ResultStore, tokenizers: Sequence[str],
                     mode: CountMode) -> AggregatedFile:
    if entry.kind is FileKind.BINARY:
        return AggregatedFile(entry.rel_path, entry.kind)
    if entry.kind is not FileKind.TEXT:
        return AggregatedFile(entry.rel_path, entry.kind, skipped=entry.reason or "skipped",
                              error=entry.kind is FileKind.UNREADABLE)

    counts: Dict[str, Optional[int]] = {}
    for name in tokenizers:
        result = results.get(entry.rel_path, name)
        if result is None:
            raise RuntimeError(f"no result for {entry.rel_path} [{name}]")
        counts[name] = result.count

    successes = [c for c in counts.values() if c is not None]
    span = TokenRange.spanning(successes) if mode is CountMode.RANGE and successes else None
    return AggregatedFile(entry.rel_path, entry.kind, counts=counts, range=span, error=not successes)


def aggregate(
    root: str,
    entries: Iterable[FileEntry],
    results: ResultStore,
    tokenizers: Sequence[str],
    mode: CountMode,
) -> Aggregation:
    """
    Folds classifications and per-cell results into the display model.

    Files keep the order of ``entries``. Totals are summed per tokenizer over
    Text files only; in range mode they are reduced to min/max afterwards,
    never built from the per-file ranges.
    """
    files: List[AggregatedFile] = []
    totals: Dict[str, int] = {name: 0 for name in tokenizers}

    for entry in entries:
        aggregated = _aggregate_entry(entry, results, tokenizers, mode)
        files.append(aggregated)
        for name, count in aggregated.counts.items():
            if count is not None:
                totals[name] += count

    total_range = TokenRange.spanning(totals.values()) if mode is CountMode.RANGE and totals else None
    return Aggregation(root=root, mode=mode, tokenizers=list(tokenizers), files=files,
                       totals=totals, total_range=total_range)
