# src/tokentree/output/render.py
"""
Tree, flat and JSON renderings of an Aggregation.

All three read the same aggregated model, so they agree on which files appear
and on every number shown. Human-readable output is built as ``rich`` Text
lines: directory labels are bold and skip markers dim, and the console decides
whether any of that styling reaches the terminal.
"""
import json
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from rich.console import Console
from rich.text import Text

from tokentree.core.tree import FileTree
from tokentree.models import AggregatedFile, Aggregation, CountMode, FileKind, TokenRange

EN_DASH = "–"
DIR_STYLE = "bold"
MARKER_STYLE = "dim"

MARKERS = {
    FileKind.BINARY: "[binary]",
    FileKind.TOO_LARGE: "[too large]",
    FileKind.UNREADABLE: "[error]",
}
ERROR_MARKER = "[error]"


@dataclass(frozen=True)
class OutputOptions:
    flat: bool = False
    json: bool = False
    sort: bool = False
    depth: Optional[int] = None


def make_console(color: bool, file=None) -> Console:
    # color_system=None strips every style; "auto" still turns colour off when
    # stdout is not a terminal
    return Console(
        file=file,
        color_system="auto" if color else None,
        highlight=False,
        markup=False,
        emoji=False,
        soft_wrap=True,
    )


def format_number(n: int) -> str:
    return f"{n:,}"


def format_range(span: TokenRange) -> str:
    if span.low == span.high:
        return format_number(span.low)
    return f"{format_number(span.low)} {EN_DASH} {format_number(span.high)}"


def format_cell(count: Optional[int]) -> str:
    return ERROR_MARKER if count is None else format_number(count)


def file_label(f: AggregatedFile, mode: CountMode) -> Text:
    """The bracketed count block shown after a file name (single/range modes)."""
    if f.kind in MARKERS:
        return Text(MARKERS[f.kind], style=MARKER_STYLE)
    if f.error:
        return Text(ERROR_MARKER, style=MARKER_STYLE)
    if mode is CountMode.RANGE and f.range is not None:
        return Text(f"[{format_range(f.range)}]")
    values = [c for c in f.counts.values() if c is not None]
    return Text(f"[{format_number(values[0])}]")


def total_label(agg: Aggregation) -> str:
    if agg.mode is CountMode.RANGE and agg.total_range is not None:
        return f"[{format_range(agg.total_range)}]"
    return f"[{format_number(agg.max_total)}]"


# --- Named (explicit multi-tokenizer) columns ---

def column_widths(files: Sequence[AggregatedFile], tokenizers: Sequence[str], totals: Dict[str, int]) -> List[int]:
    widths = [len(name) for name in tokenizers]
    for i, name in enumerate(tokenizers):
        widths[i] = max(widths[i], len(format_number(totals.get(name, 0))))
        for f in files:
            if f.kind is FileKind.TEXT:
                widths[i] = max(widths[i], len(format_cell(f.counts.get(name))))
    return widths


def named_columns(cells: Sequence[str], widths: Sequence[int]) -> str:
    return "".join(f"  {cell:>{w}}" for cell, w in zip(cells, widths))


def named_label(f: AggregatedFile, tokenizers: Sequence[str], widths: Sequence[int]) -> Text:
    if f.kind is not FileKind.TEXT:
        return Text("  " + MARKERS[f.kind], style=MARKER_STYLE)
    return Text(named_columns([format_cell(f.counts.get(n)) for n in tokenizers], widths))


def _header(label: str, width: int, tokenizers: Sequence[str], widths: Sequence[int]) -> Text:
    return Text(f"{label:<{width}}" + named_columns([n.upper() for n in tokenizers], widths))


def _total_row(width: int, agg: Aggregation, widths: Sequence[int]) -> Text:
    cells = [format_number(agg.totals[n]) for n in agg.tokenizers]
    return Text(f"{'TOTAL':<{width}}" + named_columns(cells, widths))


# --- Tree ---

def render_tree(agg: Aggregation, options: OutputOptions) -> List[Text]:
    tree = FileTree.build(agg.files, max_depth=options.depth)
    rows = list(tree.rows(sort=options.sort))

    file_rows = [(prefix, node) for prefix, node in rows if not node.is_dir]
    name_col = max((len(prefix) + len(node.name) for prefix, node in file_rows), default=28) + 2

    named = agg.mode is CountMode.NAMED
    visible = [node.file for _, node in file_rows]
    widths = column_widths(visible, agg.tokenizers, agg.totals) if named else []

    lines: List[Text] = []
    if named:
        lines.append(_header("", name_col, agg.tokenizers, widths))

    root_label = agg.root if agg.root.endswith("/") else agg.root + "/"
    lines.append(Text(root_label, style=DIR_STYLE))

    for prefix, node in rows:
        line = Text(prefix)
        if node.is_dir:
            line.append(node.name + "/", style=DIR_STYLE)
        else:
            line.append(node.name)
            if named:
                line.append(" " * max(name_col - len(prefix) - len(node.name), 0))
                line.append_text(named_label(node.file, agg.tokenizers, widths))
            else:
                line.append(" " * max(name_col - len(prefix) - len(node.name), 2))
                line.append_text(file_label(node.file, agg.mode))
        lines.append(line)

    lines.extend(_totals(agg, name_col, widths))
    return lines


def _totals(agg: Aggregation, width: int, widths: Sequence[int]) -> List[Text]:
    if not agg.totals:
        return []
    if agg.mode is CountMode.NAMED:
        return [Text(""), _total_row(width, agg, widths)]
    return [Text(""), Text(f"Total: {total_label(agg)}")]


# --- Flat ---

def sort_by_tokens(files: Sequence[AggregatedFile]) -> List[AggregatedFile]:
    return sorted(files, key=lambda f: (-f.max_tokens, f.rel_path))


def render_flat(agg: Aggregation, options: OutputOptions) -> List[Text]:
    # --depth has no effect here; --sort does
    files = sort_by_tokens(agg.files) if options.sort else list(agg.files)
    path_w = max([len(f.rel_path) for f in files] + [4])

    lines: List[Text] = []
    if agg.mode is CountMode.NAMED:
        widths = column_widths(files, agg.tokenizers, agg.totals)
        lines.append(_header("PATH", path_w, agg.tokenizers, widths))
        for f in files:
            line = Text(f"{f.rel_path:<{path_w}}")
            line.append_text(named_label(f, agg.tokenizers, widths))
            lines.append(line)
        lines.extend(_totals(agg, path_w, widths))
        return lines

    for f in files:
        line = Text(f"{f.rel_path:<{path_w}}  ")
        line.append_text(file_label(f, agg.mode))
        lines.append(line)
    lines.extend(_totals(agg, path_w, []))
    return lines


# --- JSON ---

def to_json_dict(agg: Aggregation) -> dict:
    files = []
    for f in agg.files:
        item = {
            "path": f.rel_path,
            "type": f.kind.value,
            "tokens": dict(f.counts) if f.kind is FileKind.TEXT else None,
        }
        if f.skipped:
            item["skipped"] = f.skipped
        files.append(item)
    return {"root": agg.root, "files": files, "total": dict(agg.totals)}


def render_json(agg: Aggregation) -> str:
    return json.dumps(to_json_dict(agg), indent=2, ensure_ascii=False)


# --- Entry point ---

def write_output(console: Console, agg: Aggregation, options: OutputOptions):
    if options.json:
        console.file.write(render_json(agg) + "\n")
        console.file.flush()
        return

    lines = render_flat(agg, options) if options.flat else render_tree(agg, options)
    for line in lines:
        console.print(line)
