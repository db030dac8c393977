# src/tokentree/core/ignore.py
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import pathspec

from tokentree.config import GIT_DIR, GIT_EXCLUDE_FILE, IGNORE_FILE_NAMES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IgnoreLayer:
    """
    Rules from one ignore file.

    ``base`` anchors a layer found inside the walk (root-relative, "" for the
    root itself). ``outer`` is set instead for a layer found above the root: it
    is the walk root's path relative to the directory holding the ignore file.
    """
    base: str
    spec: pathspec.PathSpec
    outer: str = ""


def load_ignore_spec(ignore_file: Path) -> Optional[pathspec.PathSpec]:
    """
    Loads gitwildmatch rules from ``ignore_file`` into a PathSpec.
    Returns None when the file is missing, unreadable or holds no rules.
    """
    try:
        with open(ignore_file, "r", encoding="utf-8", errors="replace") as f:
            lines = f.read().splitlines()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("cannot read %s: %s", ignore_file, e)
        return None

    try:
        spec = pathspec.PathSpec.from_lines("gitwildmatch", lines)
    except ValueError as e:
        logger.warning("ignoring malformed rules in %s: %s", ignore_file, e)
        return None

    return spec if len(spec) else None


def load_directory_layers(directory: Path, base: str, outer: str = "") -> List[IgnoreLayer]:
    """Collects the ignore files that live directly inside ``directory``."""
    layers = []
    for name in IGNORE_FILE_NAMES:
        spec = load_ignore_spec(directory / name)
        if spec is not None:
            layers.append(IgnoreLayer(base=base, spec=spec, outer=outer))
    return layers


def find_repository_top(start: Path) -> Optional[Path]:
    """The nearest directory at or above ``start`` that holds a ``.git`` entry."""
    for candidate in (start, *start.parents):
        if (candidate / GIT_DIR).exists():
            return candidate
    return None


def load_parent_layers(root: Path) -> List[IgnoreLayer]:
    """
    Rules that apply to ``root`` from outside it: the repository's
    ``.git/info/exclude`` and the ignore files of every directory between the
    repository top and the root. Empty when the root is not inside a work tree.
    """
    root = root.resolve()
    top = find_repository_top(root)
    if top is None:
        return []

    layers: List[IgnoreLayer] = []
    outer = root.relative_to(top).as_posix()
    outer = "" if outer == "." else outer

    exclude = load_ignore_spec(top / GIT_DIR / GIT_EXCLUDE_FILE)
    if exclude is not None:
        layers.append(IgnoreLayer(base="", spec=exclude, outer=outer))

    # The root's own ignore files are read by the walker
    above = [d for d in root.parents if d == top or top in d.parents]
    for directory in reversed(above):
        layers.extend(load_directory_layers(directory, "", root.relative_to(directory).as_posix()))
    return layers


def is_path_ignored(rel_path: str, layers: Sequence[IgnoreLayer], is_directory: bool = False) -> bool:
    """
    Evaluates ``rel_path`` against every applicable layer, outermost first.
    The last matching pattern wins, so a nested ``!pattern`` re-includes a path
    that an outer file excluded.
    """
    ignored = False

    for layer in layers:
        if layer.outer:
            local_path = f"{layer.outer}/{rel_path}"
        elif layer.base:
            prefix = layer.base + "/"
            if not rel_path.startswith(prefix):
                continue
            local_path = rel_path[len(prefix):]
        else:
            local_path = rel_path

        if is_directory:
            # "build/" style patterns only match directories
            local_path += "/"

        for pattern in layer.spec.patterns:
            if pattern.include is None:
                continue
            if pattern.match_file(local_path) is not None:
                ignored = pattern.include

    return ignored
