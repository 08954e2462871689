"""Shared fixtures for the devshell tests."""

import pytest

from devshell.config import Settings, reset_settings
from devshell.nix import NixError

from fakes import FakeEvaluator, FakeRunner


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temp directory."""
    return Settings(cache_dir=tmp_path / "cache")


@pytest.fixture
def evaluator(tmp_path):
    return FakeEvaluator(tmp_path)


@pytest.fixture
def runner(evaluator):
    """A succeeding runner that records whether the GC root was alive."""
    runner = FakeRunner()
    runner.watch = evaluator
    return runner


@pytest.fixture(autouse=True)
def clean_settings():
    """Never let the global settings singleton leak between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def build_failure():
    return NixError("nix-build exited with status 1", ["nix-build"], "error: attribute 'package' missing")
