"""
Thin wrapper around the Nix command line tools.

A CallOpts value describes what to evaluate: an expression file, string
arguments passed with --argstr and the attribute selected with -A. An
Evaluator turns it into either a JSON value (nix-instantiate --eval) or a
realized store path plus a temporary GC root (nix-build --out-link).

Usage:
    from devshell.nix import CallOpts, NixEvaluator

    opts = CallOpts.file(expr_path).argstr("src", "master")
    evaluator = NixEvaluator()

    changelog = evaluator.value(opts.attribute("changelog"))

    store_path, gc_root = evaluator.build(opts.attribute("package"))
    with gc_root:
        install(store_path.as_path())
"""

import json
import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional, Protocol

logger = logging.getLogger("devshell.nix")


class NixError(Exception):
    """Raised when a Nix command fails or returns unusable output."""

    def __init__(self, message: str, command: Optional[list[str]] = None, stderr: str = ""):
        super().__init__(message)
        self.command = command or []
        self.stderr = stderr

    def __str__(self) -> str:
        parts = [self.args[0]]
        if self.command:
            parts.append(f"command: {' '.join(self.command)}")
        if self.stderr.strip():
            parts.append(self.stderr.strip())
        return "\n".join(parts)


@dataclass(frozen=True)
class CallOpts:
    """An immutable evaluation request: expression file, arguments and attribute."""

    expr: Path
    argstrs: tuple[tuple[str, str], ...] = ()
    attr: Optional[str] = None

    @classmethod
    def file(cls, path: Path) -> "CallOpts":
        """Evaluate the expression stored in the given file."""
        return cls(expr=Path(path))

    def argstr(self, name: str, value: str) -> "CallOpts":
        """Return a copy that passes `--argstr name value`."""
        return replace(self, argstrs=self.argstrs + ((name, value),))

    def attribute(self, name: str) -> "CallOpts":
        """Return a copy that selects attribute `name` with -A."""
        return replace(self, attr=name)

    def to_args(self) -> list[str]:
        """Command line arguments shared by nix-instantiate and nix-build."""
        args = [str(self.expr)]
        for name, value in self.argstrs:
            args.extend(["--argstr", name, value])
        if self.attr is not None:
            args.extend(["-A", self.attr])
        return args


@dataclass(frozen=True)
class StorePath:
    """A realized path in the Nix store."""

    path: Path

    def as_path(self) -> Path:
        return self.path

    def __str__(self) -> str:
        return str(self.path)


class GcRoot:
    """
    A temporary garbage collector root.

    nix-build registers the out-link as an indirect GC root; removing the
    directory holding it lets the collector reclaim the build again. The
    store path itself is left alone.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.released = False

    def release(self) -> None:
        """
        Remove the out-link directory. Safe to call more than once.

        A failed removal is logged and leaves `released` False; it never
        hides the outcome of the install the root was protecting.
        """
        if self.released:
            return
        try:
            if self.directory.exists():
                shutil.rmtree(self.directory)
        except OSError as e:
            logger.warning(f"Could not release GC root {self.directory}: {e}")
            return
        self.released = True
        logger.debug(f"Released GC root {self.directory}")

    def __enter__(self) -> "GcRoot":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False


class Evaluator(Protocol):
    """Anything that can evaluate and build CallOpts."""

    def value(self, opts: CallOpts) -> Any:
        ...

    def build(self, opts: CallOpts) -> tuple[StorePath, GcRoot]:
        ...


class NixEvaluator:
    """Evaluator backed by nix-instantiate and nix-build subprocesses."""

    def __init__(
        self,
        nix_instantiate: str = "nix-instantiate",
        nix_build: str = "nix-build",
        gc_root_dir: Optional[Path] = None,
    ):
        self.nix_instantiate = nix_instantiate
        self.nix_build = nix_build
        self.gc_root_dir = Path(gc_root_dir) if gc_root_dir else None

    def _run(self, command: list[str]) -> str:
        """Run a Nix command and return its stdout."""
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise NixError(f"Could not execute {command[0]}: {e}", command) from e

        if result.returncode != 0:
            raise NixError(
                f"{command[0]} exited with status {result.returncode}",
                command,
                result.stderr,
            )
        return result.stdout

    def value(self, opts: CallOpts) -> Any:
        """
        Evaluate opts strictly and decode the result as JSON.

        Raises:
            NixError: If evaluation fails or the output is not JSON
        """
        command = [self.nix_instantiate, "--eval", "--json", "--strict", *opts.to_args()]
        stdout = self._run(command)
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise NixError(f"Could not decode evaluation result as JSON: {e}", command) from e

    def build(self, opts: CallOpts) -> tuple[StorePath, GcRoot]:
        """
        Build opts and keep the result alive with a temporary GC root.

        The caller owns the returned GcRoot and must release it.

        Raises:
            NixError: If the GC root cannot be created, the build fails
                or it prints no output path
        """
        try:
            if self.gc_root_dir is not None:
                self.gc_root_dir.mkdir(parents=True, exist_ok=True)
            gc_root = GcRoot(Path(tempfile.mkdtemp(prefix="gc-root-", dir=self.gc_root_dir)))
        except OSError as e:
            raise NixError(f"Could not create GC root in {self.gc_root_dir}: {e}") from e
        out_link = gc_root.directory / "result"

        command = [self.nix_build, *opts.to_args(), "--out-link", str(out_link)]
        try:
            stdout = self._run(command)
            lines = [line.strip() for line in stdout.splitlines() if line.strip()]
            if not lines:
                raise NixError("nix-build printed no output path", command)
        except NixError:
            gc_root.release()
            raise

        store_path = StorePath(Path(lines[-1]))
        logger.info(f"Built {store_path}")
        return store_path, gc_root
