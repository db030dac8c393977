# src/tokentree/cli.py
import argparse
import logging
import sys
from typing import Dict, Iterator, List, Optional

# Module imports
from tokentree.config import (
    EXIT_IOERR,
    EXIT_OK,
    EXIT_USAGE,
    STDIN_PATH,
    color_disabled_by_env,
    load_api_key,
)
from tokentree.core.pipeline import Pipeline, check_roots
from tokentree.core.walker import PathWalker
from tokentree.errors import ConfigurationError, TokentreeError
from tokentree.models import Aggregation, WalkOptions
from tokentree.output.render import OutputOptions, make_console, write_output
from tokentree.tokenizers.registry import KNOWN_TOKENIZERS, resolve_tokenizers

logger = logging.getLogger("tokentree")


class _ArgumentParser(argparse.ArgumentParser):
    """Reports bad invocations with the usage exit code instead of argparse's 2."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def _depth(value: str) -> int:
    try:
        depth = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid depth: {value!r}")
    if depth < 0:
        raise argparse.ArgumentTypeError("depth must be zero or positive")
    return depth


def create_arg_parser():
    parser = _ArgumentParser(
        prog="tokentree",
        description="Display directory trees with LLM token counts in place of file sizes.",
    )
    parser.add_argument("paths", nargs="*", metavar="PATH",
                        help="Paths to display (default: current directory, '-' reads stdin)")
    parser.add_argument("-t", dest="tokenizers", action="append", default=[], metavar="TOKENIZER",
                        help=f"Tokenizer to use, repeatable. Available: {', '.join(KNOWN_TOKENIZERS)}")
    parser.add_argument("--count", action="store_true", help="Print only the total token count")
    parser.add_argument("--sort", action="store_true", help="Sort entries by token count (descending)")
    parser.add_argument("--json", action="store_true", help="Output JSON instead of a tree")
    parser.add_argument("--flat", action="store_true", help="Output a flat file list instead of a tree")
    parser.add_argument("--no-ignore", action="store_true", help="Include files ignored by .gitignore/.ignore")
    parser.add_argument("--depth", type=_depth, default=None, metavar="N", help="Limit tree depth")
    parser.add_argument("--offline", action="store_true",
                        help="Skip networked tokenizers even if an API key is set")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging on stderr")
    return parser


def configure_logging(verbose: bool = False):
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _split_stdin(paths: List[str], stdin_is_tty: bool):
    """Returns (real paths, read_stdin)."""
    dashes = paths.count(STDIN_PATH)
    if dashes > 1:
        raise ConfigurationError("at most one '-' (stdin) path allowed")
    roots = [p for p in paths if p != STDIN_PATH]
    read_stdin = dashes == 1 or (not paths and not stdin_is_tty)
    if not roots and not read_stdin:
        roots = ["."]
    return roots, read_stdin


def _stdin_is_tty() -> bool:
    try:
        return sys.stdin.isatty()
    except (AttributeError, ValueError):
        return True


def run(args) -> int:
    if args.count and (args.json or args.flat or args.sort):
        raise ConfigurationError("--count cannot be combined with --json, --flat or --sort")

    roots, read_stdin = _split_stdin(args.paths, _stdin_is_tty())

    # 1. Fatal checks, all before any tokenization
    check_roots(roots)
    api_key = None if args.offline else load_api_key()
    resolved = resolve_tokenizers(args.tokenizers, args.offline, api_key)

    stdin_data: Optional[bytes] = None
    if read_stdin:
        try:
            stdin_data = sys.stdin.buffer.read()
        except OSError as e:
            logger.error("error reading stdin: %s", e)
            return EXIT_IOERR

    # 2. Pipeline; --flat shows every file regardless of --depth
    walk_depth = None if args.flat else args.depth
    walker = PathWalker(WalkOptions(follow_ignore_rules=not args.no_ignore, max_depth=walk_depth))
    pipeline = Pipeline(walker, resolved)

    options = OutputOptions(flat=args.flat, json=args.json, sort=args.sort, depth=walk_depth)
    color = not args.no_color and not color_disabled_by_env()
    console = make_console(color)

    def aggregations() -> Iterator[Aggregation]:
        if stdin_data is not None:
            yield pipeline.run_stdin(stdin_data)
        for root in roots:
            yield pipeline.run_root(root)

    # 3. Render each root as soon as it is done
    totals: Dict[str, int] = {}
    for agg in aggregations():
        if args.count:
            for name, value in agg.totals.items():
                totals[name] = totals.get(name, 0) + value
            continue

        try:
            write_output(console, agg, options)
        except OSError as e:
            logger.error("error writing output: %s", e)
            return EXIT_IOERR

    if args.count:
        print(max(totals.values(), default=0))
    return EXIT_OK


def main(argv: Optional[List[str]] = None):
    parser = create_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        code = run(args)
    except TokentreeError as e:
        print(f"{parser.prog}: error: {e.message}", file=sys.stderr)
        code = e.exit_code
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        code = 130

    sys.exit(code)


if __name__ == "__main__":
    main()
