"""Tests for directory pruning and file scope."""

from __future__ import annotations

from pathlib import Path

from wormsign.scanner.classifier import is_in_scope, prune_dir
from wormsign.scanner.engine import ScanConfig

ROOT = Path("/project")


def _config(include_node_modules: bool = False) -> ScanConfig:
    return ScanConfig(root=ROOT, include_node_modules=include_node_modules, workers=1)


class TestPruneDir:
    def test_always_skipped(self):
        config = _config(include_node_modules=True)
        for name in (".git", ".svn", ".hg", "vendor", "dist", "build", "__pycache__"):
            assert prune_dir(name, config)

    def test_node_modules_toggle(self):
        assert prune_dir("node_modules", _config())
        assert not prune_dir("node_modules", _config(include_node_modules=True))

    def test_regular_dir(self):
        assert not prune_dir("src", _config())


class TestIsInScope:
    def test_scannable_extensions(self):
        config = _config()
        for name in ("a.js", "a.ts", "a.mjs", "a.cjs", "a.json", "a.yaml", "a.yml", "a.sh"):
            assert is_in_scope(ROOT / name, config), name

    def test_extension_is_case_insensitive(self):
        assert is_in_scope(ROOT / "INSTALL.SH", _config())

    def test_out_of_scope_extensions(self):
        config = _config()
        for name in ("a.py", "a.md", "Makefile", "a.js.map", "image.png"):
            assert not is_in_scope(ROOT / name, config), name

    def test_inside_skipped_dir(self):
        config = _config()
        assert not is_in_scope(ROOT / "dist" / "bundle.js", config)
        assert not is_in_scope(ROOT / "a" / ".git" / "hooks" / "x.sh", config)

    def test_node_modules(self):
        path = ROOT / "node_modules" / "pkg" / "index.js"
        assert not is_in_scope(path, _config())
        assert is_in_scope(path, _config(include_node_modules=True))

    def test_skipped_names_above_root_are_ignored(self):
        config = ScanConfig(root=Path("/build/project"), workers=1)
        assert is_in_scope(Path("/build/project/src/app.js"), config)

    def test_file_named_like_skipped_dir(self):
        assert is_in_scope(ROOT / "build.sh", _config())
