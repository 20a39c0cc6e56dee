from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from identity_engine.clock import FixedClock
from identity_engine.credentials import FileCredentialResolver, StaticCredentialResolver
from identity_engine.data_models import (
    ConfigScope,
    PatternKind,
    PatternRule,
    Profile,
    SigningIntent,
    SigningMethod,
)
from identity_engine.engine import ConfigurationEngine, build_operations, open_engine
from identity_engine.errors import ExecutorError, SigningConfigError
from identity_engine.executor import GitConfigExecutor, RecordingExecutor
from identity_engine.profile_store.errors import NotFoundError
from identity_engine.profile_store.json_store import JsonProfileStore
from identity_engine.settings import EngineSettings, save_settings
from identity_engine.signing import MANAGED_SIGNING_KEYS

NOW = datetime(2026, 5, 1, tzinfo=timezone.utc)


def _engine(
    tmp_path: Path,
    executor: RecordingExecutor | None = None,
    **kwargs: object,
) -> tuple[ConfigurationEngine, RecordingExecutor]:
    executor = executor or RecordingExecutor()
    store = JsonProfileStore(tmp_path / "profiles.json", clock=FixedClock(NOW))
    return ConfigurationEngine(store, executor, **kwargs), executor  # type: ignore[arg-type]


def _work() -> Profile:
    return Profile(
        name="work",
        git_user_email="dev@acme.example",
        git_user_name="Dev Example",
        pattern_rules=(PatternRule(PatternKind.WILDCARD, "github.com/acme/*", priority=10),),
        signing=SigningIntent(SigningMethod.SSH, key_reference="~/.ssh/work.pub"),
        extra_git_config={"pull.rebase": "true", "core.autocrlf": "input"},
    )


def test_build_operations_order() -> None:
    operations = build_operations(_work(), ConfigScope.LOCAL)
    keys = [op.key for op in operations]

    assert keys[:2] == ["user.name", "user.email"]
    assert keys[2 : 2 + len(MANAGED_SIGNING_KEYS)] == list(MANAGED_SIGNING_KEYS)
    assert keys[-2:] == ["core.autocrlf", "pull.rebase"]


def test_build_operations_skips_missing_user_name() -> None:
    operations = build_operations(Profile(name="p", git_user_email="p@example.com"), ConfigScope.LOCAL)
    assert operations[0].key == "user.email"


def test_apply_writes_identity_signing_and_extras(tmp_path: Path) -> None:
    engine, executor = _engine(tmp_path)
    engine.create(_work())

    result = engine.apply("work")

    assert result.scope is ConfigScope.LOCAL
    assert executor.state[ConfigScope.LOCAL] == {
        "user.name": "Dev Example",
        "user.email": "dev@acme.example",
        "gpg.format": "ssh",
        "user.signingkey": "~/.ssh/work.pub",
        "gpg.ssh.allowedSignersFile": "~/.ssh/allowed_signers",
        "commit.gpgsign": "true",
        "pull.rebase": "true",
        "core.autocrlf": "input",
    }


def test_scope_precedence(tmp_path: Path) -> None:
    settings = EngineSettings(default_scope=ConfigScope.GLOBAL, git_executable="git", verify_credentials=False)
    engine, _ = _engine(tmp_path, settings=settings)
    engine.create(Profile(name="plain", git_user_email="plain@example.com"))
    engine.create(Profile(name="scoped", git_user_email="scoped@example.com", scope=ConfigScope.SYSTEM))

    assert engine.plan("plain").scope is ConfigScope.GLOBAL
    assert engine.plan("scoped").scope is ConfigScope.SYSTEM
    assert engine.plan("scoped", ConfigScope.LOCAL).scope is ConfigScope.LOCAL
    assert {op.scope for op in engine.plan("scoped", ConfigScope.LOCAL).operations} == {ConfigScope.LOCAL}


def test_apply_inherited_profile(tmp_path: Path) -> None:
    engine, executor = _engine(tmp_path)
    engine.create(_work())
    engine.create(Profile(name="oss", extends="work", git_user_email="dev@oss.example"))

    engine.apply("oss")

    state = executor.state[ConfigScope.LOCAL]
    assert state["user.email"] == "dev@oss.example"
    assert state["user.name"] == "Dev Example"
    assert state["gpg.format"] == "ssh"


def test_apply_unknown_profile(tmp_path: Path) -> None:
    engine, executor = _engine(tmp_path)
    with pytest.raises(NotFoundError):
        engine.apply("ghost")
    assert executor.executed == []


def test_invalid_signing_applies_nothing(tmp_path: Path) -> None:
    engine, executor = _engine(tmp_path)
    engine.create(
        Profile(
            name="badgpg",
            git_user_email="dev@acme.example",
            signing=SigningIntent(SigningMethod.GPG, key_reference="not-a-key-id"),
        )
    )

    with pytest.raises(SigningConfigError):
        engine.apply("badgpg")
    assert executor.executed == []


def test_executor_failure_keeps_earlier_operations(tmp_path: Path) -> None:
    engine, executor = _engine(tmp_path, RecordingExecutor(fail_at=1))
    engine.create(_work())

    with pytest.raises(ExecutorError) as excinfo:
        engine.apply("work")

    assert excinfo.value.operation_index == 1
    assert executor.state[ConfigScope.LOCAL] == {"user.name": "Dev Example"}


def test_credential_preflight(tmp_path: Path) -> None:
    engine, executor = _engine(tmp_path, resolver=StaticCredentialResolver({"~/.ssh/other.pub": "static"}))
    engine.create(_work())

    with pytest.raises(SigningConfigError):
        engine.apply("work")
    assert executor.executed == []

    engine_ok, _ = _engine(tmp_path, resolver=StaticCredentialResolver({"~/.ssh/work.pub": "static"}))
    assert engine_ok.apply("work").profile_name == "work"


def test_file_credential_resolver(tmp_path: Path) -> None:
    key = tmp_path / "id.pub"
    key.write_text("ssh-ed25519 AAAA test\n", encoding="utf-8")
    resolver = FileCredentialResolver()

    assert resolver.resolve(str(key)).source == "file"
    assert resolver.resolve("ABCDEF0123456789").source == "literal"
    assert resolver.resolve("key::ssh-ed25519 AAAA").source == "literal"


def test_apply_detected(tmp_path: Path) -> None:
    engine, executor = _engine(tmp_path)
    engine.create(_work())
    engine.create(
        Profile(
            name="personal",
            git_user_email="me@example.com",
            pattern_rules=(PatternRule(PatternKind.WILDCARD, "github.com/*"),),
        )
    )

    outcome = engine.apply_detected(["git@github.com:acme/api.git"])

    assert outcome is not None
    detection, result = outcome
    assert detection.profile_name == "work"
    assert result.profile_name == "work"
    assert executor.state[ConfigScope.LOCAL]["user.email"] == "dev@acme.example"

    assert engine.apply_detected(["https://bitbucket.org/x/y"]) is None


def test_summaries(tmp_path: Path) -> None:
    engine, _ = _engine(tmp_path)
    engine.create(_work())

    (summary,) = engine.summaries()
    assert summary.name == "work"
    assert summary.signing_method is SigningMethod.SSH
    assert summary.pattern_count == 1


def test_open_engine_reads_settings(tmp_path: Path) -> None:
    save_settings(
        data_root=tmp_path,
        settings=EngineSettings(default_scope=ConfigScope.GLOBAL, git_executable="git2", verify_credentials=True),
    )

    engine = open_engine(tmp_path, repo_path=tmp_path)
    engine.create(Profile(name="p", git_user_email="p@example.com"))

    assert engine.plan("p").scope is ConfigScope.GLOBAL
    executor = engine._executor
    assert isinstance(executor, GitConfigExecutor)
    assert executor.git_executable == "git2"
    assert executor.repo_path == tmp_path
    assert isinstance(engine._resolver, FileCredentialResolver)


class FakeRemotes:
    """Serves fixed remote URLs and remembers which repositories were read."""

    def __init__(self, urls: list[str]) -> None:
        self.urls = urls
        self.read_from: list[Path] = []

    def remote_urls(self, repo_path: Path) -> list[str]:
        self.read_from.append(repo_path)
        return list(self.urls)


def test_detect_for_repo_reads_remotes_of_enclosing_repository(tmp_path: Path) -> None:
    repo = tmp_path / "api"
    (repo / ".git").mkdir(parents=True)
    (repo / "docs").mkdir()
    remotes = FakeRemotes(["git@github.com:acme/api.git"])
    engine, _ = _engine(tmp_path, remotes=remotes)
    engine.create(_work())

    detection = engine.detect_for_repo(repo / "docs")

    assert detection is not None
    assert detection.profile_name == "work"
    assert remotes.read_from == [repo.resolve()]


def test_detect_for_repo_outside_repository(tmp_path: Path) -> None:
    remotes = FakeRemotes(["git@github.com:acme/api.git"])
    engine, _ = _engine(tmp_path, remotes=remotes)
    engine.create(_work())
    plain = tmp_path / "plain"
    plain.mkdir()

    if any((p / ".git").exists() for p in (plain.resolve(), *plain.resolve().parents)):
        pytest.skip("temporary directory sits inside a git checkout")
    assert engine.detect_for_repo(plain) is None
    assert remotes.read_from == []


def test_detect_for_repo_without_matching_remote(tmp_path: Path) -> None:
    repo = tmp_path / "api"
    (repo / ".git").mkdir(parents=True)
    engine, _ = _engine(tmp_path, remotes=FakeRemotes([]))
    engine.create(_work())

    assert engine.detect_for_repo(repo) is None


def test_engine_rename_and_default(tmp_path: Path) -> None:
    engine, executor = _engine(tmp_path)
    engine.create(_work())
    engine.set_default("work")

    engine.rename("work", "acme")

    assert engine.get_default() == "acme"
    assert [p.name for p in engine.find("acm")] == ["acme"]
    engine.apply("acme")
    assert executor.state[ConfigScope.LOCAL]["user.email"] == "dev@acme.example"
