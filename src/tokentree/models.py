# src/tokentree/models.py
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple


class FileKind(Enum):
    TEXT = "text"
    BINARY = "binary"
    TOO_LARGE = "too_large"
    UNREADABLE = "error"


@dataclass(frozen=True)
class WalkOptions:
    """Immutable snapshot of the walk configuration."""
    follow_ignore_rules: bool = True
    max_depth: Optional[int] = None


@dataclass(frozen=True)
class FileEntry:
    """A classified file. ``data`` is only set for content read from stdin."""
    path: Path
    rel_path: str
    size: int
    kind: FileKind
    reason: Optional[str] = None
    data: Optional[bytes] = field(default=None, repr=False)

    @property
    def is_text(self) -> bool:
        return self.kind is FileKind.TEXT


class CostClass(Enum):
    LOCAL = "local"
    REMOTE = "remote"


class Availability(Enum):
    ALWAYS_OFFLINE = "always_offline"
    REQUIRES_CREDENTIAL_AND_NETWORK = "requires_credential_and_network"


@dataclass(frozen=True)
class TokenizerDescriptor:
    name: str
    availability: Availability
    cost: CostClass

    @property
    def needs_credential(self) -> bool:
        return self.availability is Availability.REQUIRES_CREDENTIAL_AND_NETWORK


@dataclass(frozen=True)
class TokenCountResult:
    """Outcome of one (file, tokenizer) pair: a count or an error, never both."""
    rel_path: str
    tokenizer: str
    count: Optional[int] = None
    error: Optional[str] = None
    attempts: int = 1

    def __post_init__(self):
        if (self.count is None) == (self.error is None):
            raise ValueError("exactly one of count/error must be set")

    @property
    def ok(self) -> bool:
        return self.count is not None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.rel_path, self.tokenizer)


class CountMode(Enum):
    SINGLE = "single"   # one active tokenizer
    NAMED = "named"     # several, chosen explicitly with -t
    RANGE = "range"     # several, chosen implicitly


@dataclass(frozen=True)
class TokenRange:
    low: int
    high: int

    def __post_init__(self):
        if self.low > self.high:
            raise ValueError(f"empty range {self.low}..{self.high}")

    @classmethod
    def spanning(cls, values) -> "TokenRange":
        values = list(values)
        return cls(min(values), max(values))


@dataclass(frozen=True)
class AggregatedFile:
    rel_path: str
    kind: FileKind
    counts: Mapping[str, Optional[int]] = field(default_factory=dict)
    range: Optional[TokenRange] = None
    skipped: Optional[str] = None
    error: bool = False

    @property
    def name(self) -> str:
        return self.rel_path.rsplit("/", 1)[-1]

    @property
    def max_tokens(self) -> int:
        values = [c for c in self.counts.values() if c is not None]
        return max(values) if values else 0


@dataclass
class Aggregation:
    root: str
    mode: CountMode
    tokenizers: List[str]
    files: List[AggregatedFile]
    totals: Dict[str, int]
    total_range: Optional[TokenRange] = None

    @property
    def max_total(self) -> int:
        return max(self.totals.values()) if self.totals else 0
