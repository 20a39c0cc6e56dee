"""
Executors apply configuration operations to git.

Safety posture
--------------
- Operations are applied strictly in list order.
- Execution stops at the first failure and raises ``ExecutorError`` carrying
  the failing index. Earlier operations stay applied: git config writes are
  not transactional and nothing is rolled back.
- Clearing a key that is already absent counts as success.

The remote reader shares the same ``subprocess.run`` seam so tests can inject
a runner instead of calling git.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Final, Protocol, Sequence

from .data_models import ConfigScope, ConfigurationOperation
from .errors import ExecutorError

logger = logging.getLogger(__name__)

# `git config --unset-all` exits with 5 when the key does not exist.
GIT_CONFIG_KEY_MISSING: Final[int] = 5

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


class Executor(Protocol):
    """Applies an ordered list of configuration operations."""

    def execute(self, operations: Sequence[ConfigurationOperation], scope: ConfigScope) -> None:
        """
        Apply ``operations`` in order.

        Raises
        ------
        ExecutorError
            On the first operation that fails.
        """
        ...


@dataclass(frozen=True, slots=True)
class GitConfigExecutor:
    """
    Executor that shells out to ``git config``.

    Attributes
    ----------
    git_executable:
        Name or path of the git binary.
    repo_path:
        Working directory for local-scope operations. None uses the current
        directory.
    runner:
        ``subprocess.run`` compatible callable. None uses ``subprocess.run``.
    """

    git_executable: str = "git"
    repo_path: Path | None = None
    runner: Runner | None = field(default=None, repr=False)

    def execute(self, operations: Sequence[ConfigurationOperation], scope: ConfigScope) -> None:
        run = self.runner or subprocess.run
        for index, operation in enumerate(operations):
            argv = self.build_argv(operation)
            try:
                completed = run(
                    argv,
                    cwd=self.repo_path,
                    capture_output=True,
                    text=True,
                    check=False,
                )
            except OSError as exc:
                raise ExecutorError(
                    f"Failed to run {argv[0]!r} for operation {index} ({operation.render()}): {exc}",
                    operation_index=index,
                    operation=operation,
                ) from exc

            if completed.returncode == 0:
                continue
            if operation.value is None and completed.returncode == GIT_CONFIG_KEY_MISSING:
                continue

            stderr = (completed.stderr or "").strip()
            raise ExecutorError(
                f"git config failed for operation {index} ({operation.render()}), "
                f"exit code {completed.returncode}: {stderr}",
                operation_index=index,
                operation=operation,
            )

    def build_argv(self, operation: ConfigurationOperation) -> list[str]:
        """Return the argument vector for a single operation."""
        argv = [self.git_executable, "config", operation.scope.git_flag]
        if operation.value is None:
            argv.extend(["--unset-all", operation.key])
        else:
            argv.extend([operation.key, operation.value])
        return argv


class RecordingExecutor:
    """
    In-memory executor that models git config per scope.

    Useful for dry runs and tests. ``fail_at`` makes the operation at that
    index fail after all earlier operations were applied.
    """

    def __init__(self, *, fail_at: int | None = None) -> None:
        self.fail_at = fail_at
        self.state: dict[ConfigScope, dict[str, str]] = {scope: {} for scope in ConfigScope}
        self.executed: list[ConfigurationOperation] = []

    def execute(self, operations: Sequence[ConfigurationOperation], scope: ConfigScope) -> None:
        for index, operation in enumerate(operations):
            if self.fail_at is not None and index == self.fail_at:
                raise ExecutorError(
                    f"Simulated failure at operation {index} ({operation.render()})",
                    operation_index=index,
                    operation=operation,
                )
            values = self.state[operation.scope]
            if operation.value is None:
                values.pop(operation.key, None)
            else:
                values[operation.key] = operation.value
            self.executed.append(operation)
        logger.debug("Recorded %d operations for scope %s", len(operations), scope.value)


class RemoteReader(Protocol):
    """Lists the remote URLs configured for a repository."""

    def remote_urls(self, repo_path: Path) -> list[str]:
        """
        Return remote URLs in configuration order.

        Raises
        ------
        ExecutorError
            If git cannot be run or reports an error.
        """
        ...


def find_repo_root(start: Path) -> Path | None:
    """Return the nearest directory at or above ``start`` holding ``.git``."""
    current = start.expanduser().resolve()
    for candidate in (current, *current.parents):
        if (candidate / ".git").exists():
            return candidate
    return None


@dataclass(frozen=True, slots=True)
class GitRemoteReader:
    """
    Remote reader that asks ``git config`` for ``remote.<name>.url`` keys.

    Attributes
    ----------
    git_executable:
        Name or path of the git binary.
    runner:
        ``subprocess.run`` compatible callable. None uses ``subprocess.run``.
    """

    git_executable: str = "git"
    runner: Runner | None = field(default=None, repr=False)

    def remote_urls(self, repo_path: Path) -> list[str]:
        run = self.runner or subprocess.run
        argv = [self.git_executable, "config", "--local", "--get-regexp", r"^remote\..*\.url$"]
        try:
            completed = run(argv, cwd=repo_path, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise ExecutorError(f"Failed to run {argv[0]!r} in {repo_path}: {exc}") from exc

        # --get-regexp exits 1 when no key matches.
        if completed.returncode == 1:
            return []
        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip()
            raise ExecutorError(
                f"Reading remotes in {repo_path} failed, exit code {completed.returncode}: {stderr}"
            )

        urls: list[str] = []
        for line in (completed.stdout or "").splitlines():
            _key, _, url = line.strip().partition(" ")
            if url.strip():
                urls.append(url.strip())
        logger.debug("Found %d remote URLs in %s", len(urls), repo_path)
        return urls
