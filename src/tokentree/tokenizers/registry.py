# src/tokentree/tokenizers/registry.py
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from tokentree.errors import (
    ConfigurationError,
    NoEligibleTokenizersError,
    TokenizerUnavailableError,
)
from tokentree.models import CountMode, TokenizerDescriptor
from tokentree.tokenizers.base import Tokenizer
from tokentree.tokenizers.local import O200K_DESCRIPTOR, TiktokenTokenizer
from tokentree.tokenizers.remote import CLAUDE_DESCRIPTOR, ClaudeTokenizer

logger = logging.getLogger(__name__)

Factory = Callable[[Optional[str]], Tokenizer]

# Range mode uses every eligible entry, in this order
KNOWN_TOKENIZERS: Dict[str, TokenizerDescriptor] = {
    O200K_DESCRIPTOR.name: O200K_DESCRIPTOR,
    CLAUDE_DESCRIPTOR.name: CLAUDE_DESCRIPTOR,
}

DEFAULT_FACTORIES: Dict[str, Factory] = {
    O200K_DESCRIPTOR.name: lambda api_key: TiktokenTokenizer(),
    CLAUDE_DESCRIPTOR.name: lambda api_key: ClaudeTokenizer(api_key),
}


@dataclass
class ResolvedTokenizers:
    """The tokenizers active for this run, fixed before any dispatch."""
    tokenizers: List[Tokenizer]
    explicit: bool

    @property
    def names(self) -> List[str]:
        return [t.name for t in self.tokenizers]

    @property
    def mode(self) -> CountMode:
        if len(self.tokenizers) == 1:
            return CountMode.SINGLE
        return CountMode.NAMED if self.explicit else CountMode.RANGE

    def __len__(self) -> int:
        return len(self.tokenizers)


def _unique(names: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for name in names:
        name = name.strip().lower()
        if name and name not in seen:
            seen.append(name)
    return seen


def resolve_tokenizers(
    explicit_names: Iterable[str],
    offline: bool,
    api_key: Optional[str],
    factories: Optional[Dict[str, Factory]] = None,
) -> ResolvedTokenizers:
    """
    Works out which tokenizers may run.

    Explicitly named tokenizers must all be usable: an unknown name is a
    configuration error, and a networked tokenizer without a credential (or
    with --offline) is reported as unavailable. Without names every eligible
    tokenizer is used and a missing credential only earns a warning.
    """
    factories = DEFAULT_FACTORIES if factories is None else factories
    names = _unique(explicit_names)
    selected: List[str] = []

    if names:
        for name in names:
            descriptor = KNOWN_TOKENIZERS.get(name)
            if descriptor is None:
                known = ", ".join(KNOWN_TOKENIZERS)
                raise ConfigurationError(f"unknown tokenizer {name!r} (available: {known})")
            if descriptor.needs_credential:
                if offline:
                    raise TokenizerUnavailableError(f"--offline is set, cannot use -t {name}")
                if not api_key:
                    raise TokenizerUnavailableError(
                        f"no API key found (required by -t {name}); "
                        "set TOKENTREE_API_KEY or ANTHROPIC_API_KEY"
                    )
            selected.append(name)
    else:
        for name, descriptor in KNOWN_TOKENIZERS.items():
            if not descriptor.needs_credential:
                selected.append(name)
            elif offline:
                logger.debug("offline mode, skipping %s", name)
            elif not api_key:
                logger.warning(
                    "ANTHROPIC_API_KEY not set, skipping the %s tokenizer. "
                    "Set it (or TOKENTREE_API_KEY) for Claude counts.", name
                )
            else:
                selected.append(name)

    if not selected:
        raise NoEligibleTokenizersError("no tokenizers available")

    tokenizers = [factories[name](api_key) for name in selected]
    logger.debug("active tokenizers: %s", ", ".join(selected))
    return ResolvedTokenizers(tokenizers=tokenizers, explicit=bool(names))
