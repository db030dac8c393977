# src/tokentree/core/walker.py
import logging
import os
from pathlib import Path
from typing import Dict, FrozenSet, Iterator, List, Tuple

from tokentree.config import HIDDEN_PREFIX
from tokentree.core.ignore import IgnoreLayer, is_path_ignored, load_directory_layers, load_parent_layers
from tokentree.models import WalkOptions

logger = logging.getLogger(__name__)

Candidate = Tuple[Path, str]
# (root-relative display path, ignore layers, ancestor identities)
_DirState = Tuple[str, List[IgnoreLayer], FrozenSet[Tuple[int, int]]]


def display_path(name: str) -> str:
    """
    Printable form of a name that came from the filesystem.

    Bytes that are not UTF-8 come back from ``os`` as lone surrogates, which no
    output stream can encode; they are shown as ``\\xNN`` escapes instead.
    """
    return os.fsencode(name).decode("utf-8", "backslashreplace")


def _join_rel(parent: str, name: str) -> str:
    name = display_path(name)
    return f"{parent}/{name}" if parent else name


def _is_hidden(name: str) -> bool:
    return name.startswith(HIDDEN_PREFIX)


def _log_walk_error(err: OSError):
    logger.warning("cannot read directory %s: %s", display_path(str(err.filename)), err.strerror or err)


class PathWalker:
    """
    Lazily enumerates candidate files under a root.

    Hidden entries (dotfiles, dot-directories, ``.git`` among them) are never
    yielded. Symbolic links are followed. Broken links, links that point back
    at an ancestor directory and unreadable directories are skipped with a
    warning.
    """

    def __init__(self, options: WalkOptions):
        self.options = options

    def walk(self, root: Path) -> Iterator[Candidate]:
        """Yields ``(absolute path, root-relative posix path)`` pairs, depth-first."""
        if root.is_file():
            if self.options.max_depth is None or self.options.max_depth >= 1:
                yield root, display_path(root.name)
            return

        max_depth = self.options.max_depth
        root_key = str(root)
        root_stat = os.stat(root)
        root_layers = load_parent_layers(root) if self.options.follow_ignore_rules else []

        # Per-directory state, handed from parent to child as os.walk descends
        pending: Dict[str, _DirState] = {
            root_key: ("", root_layers, frozenset({(root_stat.st_dev, root_stat.st_ino)})),
        }

        for current, dirs, files in os.walk(root_key, followlinks=True, onerror=_log_walk_error):
            rel_dir, layers, ancestors = pending.pop(current)
            depth = rel_dir.count("/") + 1 if rel_dir else 0

            if self.options.follow_ignore_rules:
                layers = layers + load_directory_layers(Path(current), rel_dir)

            # --- 1. Prune directories (in-place, os.walk honours the edit) ---
            kept = []
            for d in sorted(dirs):
                if _is_hidden(d):
                    continue
                if max_depth is not None and depth + 1 >= max_depth:
                    continue

                child_rel = _join_rel(rel_dir, d)
                if layers and is_path_ignored(child_rel, layers, is_directory=True):
                    continue

                child = os.path.join(current, d)
                try:
                    st = os.stat(child)
                except OSError as e:
                    logger.warning("skipping %s: %s", child_rel, e.strerror or e)
                    continue

                identity = (st.st_dev, st.st_ino)
                if identity in ancestors:
                    logger.warning("skipping %s: symlink cycle", child_rel)
                    continue

                pending[child] = (child_rel, layers, ancestors | {identity})
                kept.append(d)
            dirs[:] = kept

            # --- 2. Emit files ---
            if max_depth is not None and depth + 1 > max_depth:
                continue

            for f in sorted(files):
                if _is_hidden(f):
                    continue
                file_rel = _join_rel(rel_dir, f)
                if layers and is_path_ignored(file_rel, layers):
                    continue

                file_abs = os.path.join(current, f)
                if not os.path.isfile(file_abs):
                    if os.path.islink(file_abs) and not os.path.exists(file_abs):
                        logger.warning("skipping %s: broken symlink", file_rel)
                    else:
                        logger.debug("skipping %s: not a regular file", file_rel)
                    continue

                yield Path(file_abs), file_rel
