"""
Configuration engine facade.

The engine orchestrates the store, the detector, the signing dispatcher and an
executor. It holds no persisted state of its own.

Apply pipeline
--------------
1. ``store.read`` returns the inheritance-resolved profile.
2. Operations are built: ``user.name``, ``user.email``, the signing batch
   (clear-then-set), then ``extra_git_config`` sorted by key.
3. Optionally, a credential resolver confirms the key reference resolves.
4. The full list is handed to the executor.

Partial-failure policy
----------------------
If the executor fails, operations before the failing index remain applied.
The ``ExecutorError`` is re-raised unchanged so callers can see exactly which
operation failed and resume or fix it by hand.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from .credentials import CredentialResolver, FileCredentialResolver
from .data_models import ConfigScope, ConfigurationOperation, Profile, SigningMethod
from .detection import DetectionResult, detect
from .errors import CredentialError, ExecutorError, SigningConfigError
from .executor import Executor, GitConfigExecutor, GitRemoteReader, RemoteReader, find_repo_root
from .profile_store.api import ProfileListing, ProfileStore, ProfileSummary
from .profile_store.json_store import open_profile_store
from .profile_store.rules import validate_resolved
from .settings import EngineSettings, load_settings
from .signing import build_signing_operations

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ApplyResult:
    """
    Outcome of planning or applying a profile.

    Attributes
    ----------
    profile_name:
        Profile that was applied.
    scope:
        Scope every operation targeted.
    operations:
        Operations in execution order.
    """

    profile_name: str
    scope: ConfigScope
    operations: tuple[ConfigurationOperation, ...]


def build_operations(profile: Profile, scope: ConfigScope) -> list[ConfigurationOperation]:
    """
    Build the full, ordered operation list for a resolved profile.

    Raises
    ------
    ValidationError
        If the resolved profile has no valid email.
    SigningConfigError
        If the signing intent is invalid. No operations are returned.
    """
    validate_resolved(profile)
    signing_ops = build_signing_operations(profile.signing, scope)

    operations: list[ConfigurationOperation] = []
    if profile.git_user_name is not None:
        operations.append(ConfigurationOperation.assign("user.name", profile.git_user_name, scope))
    assert profile.git_user_email is not None
    operations.append(ConfigurationOperation.assign("user.email", profile.git_user_email, scope))
    operations.extend(signing_ops)
    for key in sorted(profile.extra_git_config):
        operations.append(ConfigurationOperation.assign(key, profile.extra_git_config[key], scope))
    return operations


class ConfigurationEngine:
    """
    Facade over profile storage, detection, signing dispatch and execution.

    Parameters
    ----------
    store:
        Profile store (exclusive owner of persisted profiles).
    executor:
        Collaborator that applies operations.
    resolver:
        Optional credential resolver used as a preflight check before apply.
    settings:
        Engine defaults. Defaults to ``EngineSettings.defaults()``.
    remotes:
        Reads remote URLs for ``detect_for_repo``. Defaults to
        ``GitRemoteReader``.
    """

    def __init__(
        self,
        store: ProfileStore,
        executor: Executor,
        *,
        resolver: CredentialResolver | None = None,
        settings: EngineSettings | None = None,
        remotes: RemoteReader | None = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._resolver = resolver
        self._settings = settings or EngineSettings.defaults()
        self._remotes: RemoteReader = remotes or GitRemoteReader(
            git_executable=self._settings.git_executable
        )

    @property
    def store(self) -> ProfileStore:
        return self._store

    # Profile management

    def create(self, profile: Profile) -> Profile:
        return self._store.create(profile)

    def read(self, name: str) -> Profile:
        return self._store.read(name)

    def update(self, profile: Profile) -> Profile:
        return self._store.update(profile)

    def delete(self, name: str) -> None:
        self._store.delete(name)

    def list(self) -> ProfileListing:
        return self._store.list()

    def summaries(self) -> list[ProfileSummary]:
        return self._store.list().summaries()

    def find(self, fragment: str) -> Sequence[Profile]:
        return self._store.find(fragment)

    def rename(self, old_name: str, new_name: str) -> Profile:
        return self._store.rename(old_name, new_name)

    def get_default(self) -> str | None:
        return self._store.get_default()

    def set_default(self, name: str | None) -> None:
        self._store.set_default(name)

    # Detection

    def detect(self, remote_urls: Iterable[str]) -> DetectionResult | None:
        """Pick the best-fit stored profile for a repository's remote URLs."""
        return detect(remote_urls, self._store.list().profiles)

    def detect_for_repo(self, repo_path: Path) -> DetectionResult | None:
        """
        Detect a profile from the remotes of the repository containing ``repo_path``.

        Returns None when ``repo_path`` is not inside a repository or no rule
        matches.

        Raises
        ------
        ExecutorError
            If the remotes cannot be read.
        """
        repo_root = find_repo_root(repo_path)
        if repo_root is None:
            logger.debug("%s is not inside a git repository", repo_path)
            return None
        return self.detect(self._remotes.remote_urls(repo_root))

    # Apply

    def plan(self, profile_name: str, scope: ConfigScope | None = None) -> ApplyResult:
        """
        Build the operations ``apply`` would execute, without executing them.

        Raises
        ------
        NotFoundError, InheritanceCycleError
            If the profile cannot be resolved.
        ValidationError
            If the resolved identity is invalid.
        SigningConfigError
            If the signing intent is invalid or its key reference does not
            resolve.
        """
        profile = self._store.read(profile_name)
        effective_scope = self._effective_scope(profile, scope)
        operations = build_operations(profile, effective_scope)
        self._preflight_credentials(profile)
        return ApplyResult(
            profile_name=profile.name,
            scope=effective_scope,
            operations=tuple(operations),
        )

    def apply(self, profile_name: str, scope: ConfigScope | None = None) -> ApplyResult:
        """
        Apply a profile through the executor.

        Raises
        ------
        ExecutorError
            If an operation fails. Earlier operations are not rolled back.
        """
        result = self.plan(profile_name, scope)
        try:
            self._executor.execute(result.operations, result.scope)
        except ExecutorError as exc:
            logger.error(
                "Applying profile %s stopped at operation %s of %d: %s",
                result.profile_name,
                exc.operation_index,
                len(result.operations),
                exc,
            )
            raise
        logger.info(
            "Applied profile %s (%d operations, scope=%s)",
            result.profile_name,
            len(result.operations),
            result.scope.value,
        )
        return result

    def apply_detected(
        self,
        remote_urls: Iterable[str],
        scope: ConfigScope | None = None,
    ) -> tuple[DetectionResult, ApplyResult] | None:
        """Detect a profile for ``remote_urls`` and apply it. None if nothing matches."""
        detection = self.detect(remote_urls)
        if detection is None:
            return None
        return detection, self.apply(detection.profile_name, scope)

    def _effective_scope(self, profile: Profile, scope: ConfigScope | None) -> ConfigScope:
        if scope is not None:
            return scope
        if profile.scope is not None:
            return profile.scope
        return self._settings.default_scope

    def _preflight_credentials(self, profile: Profile) -> None:
        if self._resolver is None:
            return
        signing = profile.signing
        if signing is None or signing.method is SigningMethod.NONE or not signing.key_reference:
            return
        try:
            self._resolver.resolve(signing.key_reference)
        except CredentialError as exc:
            raise SigningConfigError(
                f"Key reference for profile {profile.name!r} did not resolve: {exc}"
            ) from exc


def open_engine(
    data_root: Path | None = None,
    *,
    repo_path: Path | None = None,
) -> ConfigurationEngine:
    """
    Build an engine wired to the on-disk store, settings and ``git``.

    Parameters
    ----------
    data_root:
        Optional override for the data root.
    repo_path:
        Repository used for local-scope operations.
    """
    settings = load_settings(data_root=data_root)
    store = open_profile_store(data_root)
    executor = GitConfigExecutor(git_executable=settings.git_executable, repo_path=repo_path)
    resolver = FileCredentialResolver() if settings.verify_credentials else None
    remotes = GitRemoteReader(git_executable=settings.git_executable)
    return ConfigurationEngine(store, executor, resolver=resolver, settings=settings, remotes=remotes)
