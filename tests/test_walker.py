# tests/test_walker.py
import logging
import os
import sys
import warnings
from pathlib import Path

import pathspec
import pytest

from tokentree.core.ignore import (
    IgnoreLayer,
    find_repository_top,
    is_path_ignored,
    load_ignore_spec,
    load_parent_layers,
)
from tokentree.core.walker import PathWalker, display_path
from tokentree.models import WalkOptions


def _walk(root, **kwargs):
    return [rel for _, rel in PathWalker(WalkOptions(**kwargs)).walk(root)]


def _layer(base, *lines, outer=""):
    return IgnoreLayer(base=base, spec=pathspec.PathSpec.from_lines("gitwildmatch", lines), outer=outer)


# --- Ignore rules ---

def test_is_path_ignored_simple():
    layers = [_layer("", "*.log", "venv/")]
    assert is_path_ignored("app.log", layers) is True
    assert is_path_ignored("src/app.log", layers) is True
    assert is_path_ignored("src/main.py", layers) is False


def test_is_path_ignored_directory_only_pattern():
    layers = [_layer("", "venv/")]
    assert is_path_ignored("venv", layers, is_directory=True) is True
    # A plain file called "venv" is not a directory
    assert is_path_ignored("venv", layers, is_directory=False) is False


def test_is_path_ignored_last_match_wins():
    layers = [_layer("", "logs/*", "!logs/important.log")]
    assert is_path_ignored("logs/debug.log", layers) is True
    assert is_path_ignored("logs/important.log", layers) is False


def test_nested_layer_overrides_outer_layer():
    layers = [_layer("", "*.txt"), _layer("docs", "!keep.txt")]
    assert is_path_ignored("notes.txt", layers) is True
    assert is_path_ignored("docs/keep.txt", layers) is False
    assert is_path_ignored("docs/other.txt", layers) is True


def test_nested_layer_is_anchored_at_its_directory():
    layers = [_layer("docs", "/build")]
    assert is_path_ignored("docs/build", layers, is_directory=True) is True
    assert is_path_ignored("build", layers, is_directory=True) is False


def test_load_ignore_spec_missing_file(tmp_path):
    assert load_ignore_spec(tmp_path / ".gitignore") is None


def test_load_ignore_spec_reads_rules(tmp_path):
    ignore_file = tmp_path / ".ignore"
    ignore_file.write_text("node_modules/\n*.tmp\n", encoding="utf-8")
    spec = load_ignore_spec(ignore_file)
    assert spec.match_file("node_modules/x.js")
    assert spec.match_file("a.tmp")
    assert not spec.match_file("a.py")


def test_loading_rules_emits_no_deprecation_warning(tmp_path):
    ignore_file = tmp_path / ".gitignore"
    ignore_file.write_text("*.log\n", encoding="utf-8")
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        load_ignore_spec(ignore_file)
    assert not [w for w in caught if issubclass(w.category, DeprecationWarning)]


def test_layer_from_above_the_root_matches_repository_relative_paths():
    layers = [_layer("", "/src/gen/", "*.log", outer="src")]
    assert is_path_ignored("gen", layers, is_directory=True) is True
    assert is_path_ignored("debug.log", layers) is True
    assert is_path_ignored("main.py", layers) is False


# --- Walking ---

def test_walk_respects_gitignore_and_always_skips_git(nested_project):
    paths = _walk(nested_project)
    assert "src/main.py" in paths
    assert "src/utils/helper.py" in paths
    assert "README.md" in paths
    assert "logs/app.log" not in paths
    assert not any(p.startswith(".git/") for p in paths)


def test_walk_no_ignore_still_skips_git(nested_project):
    paths = _walk(nested_project, follow_ignore_rules=False)
    assert "logs/app.log" in paths
    assert not any(p.startswith(".git/") for p in paths)


def test_walk_order_is_deterministic(tmp_path):
    for name in ("z.txt", "a.txt", "m.txt"):
        (tmp_path / name).write_text(name, encoding="utf-8")
    (tmp_path / "b_dir").mkdir()
    (tmp_path / "a_dir").mkdir()
    (tmp_path / "b_dir" / "file.txt").write_text("b", encoding="utf-8")
    (tmp_path / "a_dir" / "file.txt").write_text("a", encoding="utf-8")

    first = _walk(tmp_path)
    assert first == ["a.txt", "m.txt", "z.txt", "a_dir/file.txt", "b_dir/file.txt"]
    assert _walk(tmp_path) == first


def test_walk_respects_depth_limit(tmp_path):
    (tmp_path / "sub" / "deeper").mkdir(parents=True)
    (tmp_path / "top.txt").write_text("top", encoding="utf-8")
    (tmp_path / "sub" / "mid.txt").write_text("mid", encoding="utf-8")
    (tmp_path / "sub" / "deeper" / "deep.txt").write_text("deep", encoding="utf-8")

    assert _walk(tmp_path, max_depth=1) == ["top.txt"]
    assert _walk(tmp_path, max_depth=2) == ["top.txt", "sub/mid.txt"]
    assert len(_walk(tmp_path)) == 3


def test_walk_file_root(tmp_path):
    target = tmp_path / "single.txt"
    target.write_text("x", encoding="utf-8")
    assert _walk(target) == ["single.txt"]


def test_walk_nested_gitignore(tmp_path):
    (tmp_path / "pkg").mkdir()
    (tmp_path / "pkg" / ".gitignore").write_text("generated.py\n", encoding="utf-8")
    (tmp_path / "pkg" / "generated.py").write_text("x", encoding="utf-8")
    (tmp_path / "pkg" / "real.py").write_text("x", encoding="utf-8")
    (tmp_path / "generated.py").write_text("x", encoding="utf-8")

    paths = _walk(tmp_path)
    assert "pkg/real.py" in paths
    assert "generated.py" in paths
    assert "pkg/generated.py" not in paths


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_walk_skips_broken_symlink_with_warning(tmp_path, caplog):
    (tmp_path / "ok.txt").write_text("ok", encoding="utf-8")
    os.symlink(tmp_path / "missing.txt", tmp_path / "dangling.txt")

    with caplog.at_level(logging.WARNING):
        paths = _walk(tmp_path)

    assert paths == ["ok.txt"]
    assert "broken symlink" in caplog.text


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_walk_detects_symlink_cycle(tmp_path, caplog):
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "file.txt").write_text("x", encoding="utf-8")
    os.symlink(tmp_path, tmp_path / "sub" / "loop", target_is_directory=True)

    with caplog.at_level(logging.WARNING):
        paths = _walk(tmp_path)

    assert paths == ["sub/file.txt"]
    assert "symlink cycle" in caplog.text


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_walk_follows_symlinked_directory(tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "linked.txt").write_text("x", encoding="utf-8")
    root = tmp_path / "root"
    root.mkdir()
    os.symlink(outside, root / "link", target_is_directory=True)

    assert _walk(root) == ["link/linked.txt"]


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs a non-root POSIX user")
def test_walk_skips_unreadable_directory(tmp_path, caplog):
    (tmp_path / "ok.txt").write_text("ok", encoding="utf-8")
    locked = tmp_path / "locked"
    locked.mkdir()
    (locked / "secret.txt").write_text("s", encoding="utf-8")
    locked.chmod(0)
    try:
        with caplog.at_level(logging.WARNING):
            paths = _walk(tmp_path)
    finally:
        locked.chmod(0o755)

    assert paths == ["ok.txt"]
    assert "cannot read directory" in caplog.text


def test_walk_yields_absolute_paths(tmp_path):
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    [(abs_path, rel)] = list(PathWalker(WalkOptions()).walk(tmp_path))
    assert abs_path == tmp_path / "a.txt"
    assert isinstance(abs_path, Path)
    assert rel == "a.txt"


# --- Hidden entries ---

@pytest.mark.parametrize("follow_ignore_rules", [True, False])
def test_walk_never_yields_hidden_entries(tmp_path, follow_ignore_rules):
    (tmp_path / ".github").mkdir()
    (tmp_path / ".github" / "ci.yml").write_text("on: push", encoding="utf-8")
    (tmp_path / ".env").write_text("SECRET=1", encoding="utf-8")
    (tmp_path / "main.py").write_text("x", encoding="utf-8")

    assert _walk(tmp_path, follow_ignore_rules=follow_ignore_rules) == ["main.py"]


def test_hidden_ignore_files_still_apply(tmp_path):
    (tmp_path / ".gitignore").write_text("*.log\n", encoding="utf-8")
    (tmp_path / "app.log").write_text("x", encoding="utf-8")
    (tmp_path / "app.py").write_text("x", encoding="utf-8")
    assert _walk(tmp_path) == ["app.py"]


# --- Rules from above the root ---

@pytest.fixture
def repo(tmp_path):
    """A work tree whose top-level .gitignore and info/exclude cover src/."""
    (tmp_path / ".git" / "info").mkdir(parents=True)
    (tmp_path / ".git" / "info" / "exclude").write_text("secret.txt\n", encoding="utf-8")
    (tmp_path / ".gitignore").write_text("*.log\n/src/gen/\n", encoding="utf-8")
    src = tmp_path / "src"
    (src / "gen").mkdir(parents=True)
    (src / "pkg").mkdir()
    (src / "a.py").write_text("x", encoding="utf-8")
    (src / "debug.log").write_text("x", encoding="utf-8")
    (src / "secret.txt").write_text("x", encoding="utf-8")
    (src / "gen" / "out.py").write_text("x", encoding="utf-8")
    (src / "pkg" / ".gitignore").write_text("!keep.log\n", encoding="utf-8")
    (src / "pkg" / "keep.log").write_text("x", encoding="utf-8")
    return tmp_path


def test_walk_from_subdirectory_honours_repository_rules(repo):
    assert _walk(repo / "src") == ["a.py", "pkg/keep.log"]


def test_walk_from_nested_subdirectory(repo):
    assert _walk(repo / "src" / "pkg") == ["keep.log"]


def test_walk_from_repository_top_uses_info_exclude(repo):
    assert _walk(repo) == ["src/a.py", "src/pkg/keep.log"]


def test_no_ignore_drops_repository_rules(repo):
    assert _walk(repo / "src", follow_ignore_rules=False) == [
        "a.py", "debug.log", "secret.txt", "gen/out.py", "pkg/keep.log",
    ]


def test_parent_layers_outside_a_work_tree(tmp_path):
    (tmp_path / "src").mkdir()
    assert find_repository_top(tmp_path / "src") is None
    assert load_parent_layers(tmp_path / "src") == []


# --- Undecodable names ---

@pytest.mark.skipif(sys.platform != "linux", reason="needs a filesystem that stores raw bytes")
def test_undecodable_name_is_escaped_for_display(tmp_path):
    raw = os.fsdecode(b"bad\xff.txt")
    (tmp_path / raw).write_text("x", encoding="utf-8")
    (tmp_path / "ok.txt").write_text("x", encoding="utf-8")

    candidates = list(PathWalker(WalkOptions()).walk(tmp_path))
    assert [rel for _, rel in candidates] == ["bad\\xff.txt", "ok.txt"]
    # The absolute path still points at the real file
    assert candidates[0][0].read_text(encoding="utf-8") == "x"
    assert display_path(raw).encode("utf-8") == b"bad\\xff.txt"
