"""Fake evaluator and runner used in place of Nix and nix-env."""

from pathlib import Path

from devshell.nix import GcRoot, StorePath


class FakeEvaluator:
    """Evaluator that returns canned results and records every request."""

    def __init__(self, tmp_path: Path, changelog=None, build_error=None, value_error=None):
        self.tmp_path = tmp_path
        self.changelog = changelog if changelog is not None else {"entries": []}
        self.build_error = build_error
        self.value_error = value_error
        self.value_calls = []
        self.build_calls = []
        self.gc_roots = []

    def value(self, opts):
        self.value_calls.append(opts)
        if self.value_error:
            raise self.value_error
        return self.changelog

    def build(self, opts):
        self.build_calls.append(opts)
        if self.build_error:
            raise self.build_error
        root_dir = self.tmp_path / f"gc-root-{len(self.build_calls)}"
        root_dir.mkdir()
        (root_dir / "result").write_text("link")
        gc_root = GcRoot(root_dir)
        self.gc_roots.append(gc_root)
        return StorePath(Path("/nix/store/abc123-devshell-1.5.0")), gc_root


class FakeRunner:
    """Runner that records commands and returns a fixed status or raises."""

    def __init__(self, status=0, error=None):
        self.status = status
        self.error = error
        self.commands = []
        self.gc_root_alive = []
        self.watch = None

    def run(self, command):
        self.commands.append(command)
        if self.watch is not None:
            self.gc_root_alive.append(not self.watch.gc_roots[-1].released)
        if self.error:
            raise self.error
        return self.status
