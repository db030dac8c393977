# src/tokentree/core/tree.py
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from tokentree.models import AggregatedFile

BRANCH = "├── "
LAST_BRANCH = "└── "
PIPE = "│   "
SPACE = "    "


@dataclass
class TreeNode:
    name: str
    parent: Optional[int]
    depth: int
    children: Dict[str, int] = field(default_factory=dict)
    file: Optional[AggregatedFile] = None

    @property
    def is_dir(self) -> bool:
        return self.file is None


class FileTree:
    """
    Directory hierarchy built from flat root-relative paths.

    Nodes live in one list (the arena) and refer to each other by index; a
    child is always created after its parent, so walking the arena backwards
    visits children before parents.
    """

    ROOT = 0

    def __init__(self):
        self.nodes: List[TreeNode] = [TreeNode(name="", parent=None, depth=0)]

    @classmethod
    def build(cls, files: Iterable[AggregatedFile], max_depth: Optional[int] = None) -> "FileTree":
        tree = cls()
        for f in files:
            tree.add(f, max_depth)
        tree.prune()
        return tree

    def add(self, file: AggregatedFile, max_depth: Optional[int] = None) -> Optional[int]:
        parts = file.rel_path.split("/")
        if max_depth is not None and len(parts) > max_depth:
            return None

        current = self.ROOT
        for depth, part in enumerate(parts[:-1], start=1):
            child = self.nodes[current].children.get(part)
            if child is None:
                child = self._new_node(part, current, depth)
            current = child

        leaf = self._new_node(parts[-1], current, len(parts))
        self.nodes[leaf].file = file
        return leaf

    def _new_node(self, name: str, parent: int, depth: int) -> int:
        self.nodes.append(TreeNode(name=name, parent=parent, depth=depth))
        index = len(self.nodes) - 1
        self.nodes[parent].children[name] = index
        return index

    def prune(self):
        """Drops directories with no file anywhere beneath them."""
        visible = [0] * len(self.nodes)
        for index in range(len(self.nodes) - 1, 0, -1):
            node = self.nodes[index]
            if not node.is_dir:
                visible[index] = 1
            if visible[index] == 0:
                del self.nodes[node.parent].children[node.name]
            else:
                visible[node.parent] += visible[index]

    def ordered_children(self, index: int, sort: bool = False) -> List[int]:
        """
        Directories first in name order, then files in insertion order, or by
        descending token count (ties by name) when ``sort`` is set.
        """
        children = [self.nodes[i] for i in self.nodes[index].children.values()]
        dirs = sorted((c for c in children if c.is_dir), key=lambda c: c.name)
        files = [c for c in children if not c.is_dir]
        if sort:
            files.sort(key=lambda c: (-c.file.max_tokens, c.name))
        lookup = self.nodes[index].children
        return [lookup[c.name] for c in dirs + files]

    def rows(self, sort: bool = False) -> Iterator[Tuple[str, TreeNode]]:
        """Yields ``(connector prefix, node)`` for every node below the root, pre-order."""
        stack: List[Tuple[int, str, bool]] = []

        def push_children(index: int, indent: str):
            ordered = self.ordered_children(index, sort)
            for pos in range(len(ordered) - 1, -1, -1):
                stack.append((ordered[pos], indent, pos == len(ordered) - 1))

        push_children(self.ROOT, "")
        while stack:
            index, indent, is_last = stack.pop()
            node = self.nodes[index]
            yield indent + (LAST_BRANCH if is_last else BRANCH), node
            if node.is_dir:
                push_children(index, indent + (SPACE if is_last else PIPE))
