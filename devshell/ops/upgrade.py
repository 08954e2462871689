"""
Upgrade devshell by building it with Nix and installing it with nix-env.

Steps:
1. Store the bundled upgrade expression (upgrade.nix) in the CAS
2. Evaluate its `changelog` attribute and print what changed since the
   running build
3. nix-build its `package` attribute, holding a temporary GC root
4. nix-env --install the built store path, then drop the GC root

Each evaluator query gets a freshly built CallOpts. The expression path is
content-addressed, so both queries read the same expression text.

Usage:
    from devshell.ops import upgrade

    message = upgrade.main(upgrade.UpgradeSource.master())
"""

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, Union

from packaging.version import Version

from devshell import __version__
from devshell.cas import CasError, ContentAddressable
from devshell.changelog import ChangelogError, Entry, Log, format_entries
from devshell.config import Settings, get_settings
from devshell.nix import CallOpts, Evaluator, NixError, NixEvaluator
from devshell.ops import ExitError, OpResult

logger = logging.getLogger("devshell.upgrade")

# Bundled expression evaluated for every upgrade
UPGRADE_EXPR = Path(__file__).parent / "upgrade.nix"

SUCCESS_MESSAGE = "\nUpgrade successful."
INSTALL_FAILED_MESSAGE = "\nError: nix-env command was not successful!"


class UpgradeError(ExitError):
    """Base class for self-upgrade failures."""
    pass


class ConfigurationError(UpgradeError):
    """The requested upgrade source is unusable."""
    pass


class StorageError(UpgradeError):
    """The upgrade expression could not be written to the CAS."""
    pass


class EvaluationError(UpgradeError):
    """The upgrade expression failed to evaluate or build."""
    pass


class InstallError(UpgradeError):
    """The build succeeded but installing it did not."""
    pass


# =============================================================================
# UPGRADE SOURCE
# =============================================================================

class SourceKind(str, Enum):
    """Where the new version comes from."""

    ROLLING_RELEASE = "rolling-release"
    MASTER = "master"
    LOCAL = "local"


@dataclass(frozen=True)
class UpgradeSource:
    """A requested upgrade source. `path` is only set for LOCAL."""

    kind: SourceKind
    path: Optional[Path] = None

    @classmethod
    def rolling_release(cls) -> "UpgradeSource":
        return cls(SourceKind.ROLLING_RELEASE)

    @classmethod
    def master(cls) -> "UpgradeSource":
        return cls(SourceKind.MASTER)

    @classmethod
    def local(cls, path: Union[str, Path]) -> "UpgradeSource":
        return cls(SourceKind.LOCAL, Path(path))


def resolve_source(source: Optional[UpgradeSource]) -> str:
    """
    Map an upgrade source to the `src` argument of the upgrade expression.

    No source means the rolling release.

    Raises:
        ConfigurationError: If a local source path is not valid UTF-8
    """
    if source is None:
        source = UpgradeSource.rolling_release()

    if source.kind is not SourceKind.LOCAL:
        return source.kind.value

    target = str(source.path)
    try:
        target.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ConfigurationError(
            f"Requested devshell source directory is not UTF-8 clean: {target!r}"
        ) from e
    return target


# =============================================================================
# EXPRESSION AND REQUESTS
# =============================================================================

def materialize_expression(cas: ContentAddressable) -> Path:
    """
    Write the bundled upgrade expression to the CAS and return its path.

    Raises:
        StorageError: If the CAS write fails
    """
    content = UPGRADE_EXPR.read_text(encoding="utf-8")
    try:
        path = cas.file_from_string(content)
    except CasError as e:
        logger.error(f"Could not materialize upgrade expression: {e}")
        raise StorageError(f"Could not write the upgrade expression to the store: {e}") from e

    logger.debug(f"Upgrade expression at {path}")
    return path


def upgrade_callopts(upgrade_expr: Path, upgrade_target: str) -> CallOpts:
    """Build a fresh evaluation request for the upgrade expression."""
    print(f"Upgrading from source: {upgrade_target}")
    return CallOpts.file(upgrade_expr).argstr("src", upgrade_target)


# =============================================================================
# CHANGELOG
# =============================================================================

def report_changelog(
    evaluator: Evaluator,
    upgrade_expr: Path,
    upgrade_target: str,
    current_version: Version,
) -> list[Entry]:
    """
    Print changelog entries newer than the running build.

    Returns:
        The entries that were printed, in document order

    Raises:
        EvaluationError: If the changelog cannot be evaluated or parsed
    """
    opts = upgrade_callopts(upgrade_expr, upgrade_target).attribute("changelog")
    logger.info(f"Evaluating changelog for {upgrade_target}")
    try:
        log = Log.from_value(evaluator.value(opts))
    except (NixError, ChangelogError) as e:
        logger.error(f"Changelog evaluation failed: {e}")
        raise EvaluationError(
            f"Failed to evaluate the changelog! Please report a bug!\n{e}"
        ) from e

    entries = log.newer_than(current_version)
    print(f"Changelog when upgrading from {current_version}:")
    for line in format_entries(entries):
        print(line)
    print()
    return entries


# =============================================================================
# BUILD AND INSTALL
# =============================================================================

class Runner(Protocol):
    """Runs an external command and returns its exit status."""

    def run(self, command: list[str]) -> int:
        ...


class SubprocessRunner:
    """Runner that inherits the terminal, so the installer talks to the user."""

    def run(self, command: list[str]) -> int:
        logger.debug(f"Running: {' '.join(command)}")
        return subprocess.run(command).returncode


class UpgradeState(str, Enum):
    """Progress of a build-and-install attempt. Failure states are terminal."""

    IDLE = "idle"
    EVALUATING = "evaluating"
    BUILD_FAILED = "build_failed"
    BUILT = "built"
    INSTALLING = "installing"
    INSTALL_FAILED = "install_failed"
    INSTALLED = "installed"


class UpgradeExecutor:
    """Builds the package attribute and installs the result with nix-env."""

    def __init__(self, evaluator: Evaluator, runner: Runner, nix_env: str = "nix-env"):
        self.evaluator = evaluator
        self.runner = runner
        self.nix_env = nix_env
        self.state = UpgradeState.IDLE

    def build_and_install(self, upgrade_expr: Path, upgrade_target: str) -> str:
        """
        Build and install the new version.

        The GC root returned by the build is released once the installer
        has exited, whatever its outcome.

        Returns:
            Success message

        Raises:
            EvaluationError: If the package fails to build; nothing is installed
            InstallError: If the installer cannot be launched or exits non-zero
        """
        opts = upgrade_callopts(upgrade_expr, upgrade_target).attribute("package")
        print("Building ...")

        self.state = UpgradeState.EVALUATING
        try:
            store_path, gc_root = self.evaluator.build(opts)
        except NixError as e:
            self.state = UpgradeState.BUILD_FAILED
            logger.error(f"Build failed: {e}")
            raise EvaluationError(f"Failed to build the update! Please report a bug!\n{e}") from e
        self.state = UpgradeState.BUILT

        command = [self.nix_env, "--install", str(store_path.as_path())]
        with gc_root:
            self.state = UpgradeState.INSTALLING
            logger.info(f"Installing {store_path}")
            try:
                status = self.runner.run(command)
            except OSError as e:
                self.state = UpgradeState.INSTALL_FAILED
                logger.error(f"Could not launch {self.nix_env}: {e}")
                raise InstallError(
                    f"\nError: failed to execute {self.nix_env} --install: {e}"
                ) from e

        if status != 0:
            self.state = UpgradeState.INSTALL_FAILED
            logger.error(f"{self.nix_env} --install exited with status {status}")
            raise InstallError(INSTALL_FAILED_MESSAGE)

        self.state = UpgradeState.INSTALLED
        return SUCCESS_MESSAGE


def build_and_install(
    evaluator: Evaluator,
    runner: Runner,
    upgrade_expr: Path,
    upgrade_target: str,
    nix_env: str = "nix-env",
) -> str:
    """Convenience wrapper around UpgradeExecutor.build_and_install."""
    return UpgradeExecutor(evaluator, runner, nix_env).build_and_install(upgrade_expr, upgrade_target)


# =============================================================================
# OPERATION
# =============================================================================

def main(
    source: Optional[UpgradeSource] = None,
    cas: Optional[ContentAddressable] = None,
    evaluator: Optional[Evaluator] = None,
    runner: Optional[Runner] = None,
    settings: Optional[Settings] = None,
    current_version: Union[str, Version, None] = None,
) -> OpResult:
    """
    Upgrade devshell in the default Nix profile.

    Args:
        source: Where to upgrade from (default: rolling release)
        cas: Store for the upgrade expression (default: settings.cas_dir)
        evaluator: Nix evaluator (default: NixEvaluator from settings)
        runner: Runs the installer (default: SubprocessRunner)
        settings: Settings (default: discovered)
        current_version: Running build version (default: devshell.__version__)

    Returns:
        Success message

    Raises:
        UpgradeError: Subclass naming the stage that failed
    """
    settings = settings or get_settings()
    cas = cas or ContentAddressable(settings.cas_dir)
    evaluator = evaluator or NixEvaluator(
        nix_instantiate=settings.nix_instantiate,
        nix_build=settings.nix_build,
        gc_root_dir=settings.gc_root_dir,
    )
    runner = runner or SubprocessRunner()
    current = Version(str(current_version or __version__))

    upgrade_target = resolve_source(source)
    upgrade_expr = materialize_expression(cas)

    report_changelog(evaluator, upgrade_expr, upgrade_target, current)

    executor = UpgradeExecutor(evaluator, runner, settings.nix_env)
    return executor.build_and_install(upgrade_expr, upgrade_target)
