"""Shared fixtures: a hermetic pkgsync home, a scripted shell and fake backends."""

from __future__ import annotations

import os
import tempfile
from collections import defaultdict
from pathlib import Path
from typing import Sequence

# Logging configures itself on first import; keep its files out of $HOME.
_SESSION_HOME = Path(tempfile.mkdtemp(prefix="pkgsync-tests-"))
os.environ["PKGSYNC_HOME"] = str(_SESSION_HOME)
os.environ["PKGSYNC_LOG_DIR"] = str(_SESSION_HOME / "logs")

import pytest  # noqa: E402

from pkgsync.backends.base import PackageManager  # noqa: E402
from pkgsync.backends.registry import ManagerRegistry  # noqa: E402
from pkgsync.core import shell  # noqa: E402
from pkgsync.core.channel import Channel, Message, PromptRequest, normalise_answer  # noqa: E402
from pkgsync.core.config import discover_env  # noqa: E402
from pkgsync.core.context import Context  # noqa: E402
from pkgsync.core.models import (  # noqa: E402
    ManagerType,
    PackageInfo,
    PlatformInfo,
    UpgradeInfo,
)
from pkgsync.core.platform import PlatformDetector  # noqa: E402


class FakeShell:
    """Stands in for the subprocess layer.

    Responses are keyed by the exact command tuple; anything unscripted
    succeeds with empty output.
    """

    def __init__(self) -> None:
        self.responses: dict[tuple[str, ...], tuple[str, str, int]] = {}
        self.calls: list[tuple[str, ...]] = []
        self.executables: set[str] = set()

    def on(self, *cmd: str, out: str = "", err: str = "", code: int = 0) -> None:
        self.responses[cmd] = (out, err, code)

    async def run_capture(self, *cmd, timeout=None, cwd=None):
        self.calls.append(cmd)
        return self.responses.get(cmd, ("", "", 0))

    async def run_streaming(self, *cmd, on_line, inherit_stdin=False, cwd=None):
        self.calls.append(cmd)
        out, _, code = self.responses.get(cmd, ("", "", 0))
        for line in out.splitlines():
            on_line(line)
        return code

    def command_exists(self, name: str) -> bool:
        return name in self.executables


@pytest.fixture(autouse=True)
def fake_shell(monkeypatch) -> FakeShell:
    fake = FakeShell()
    monkeypatch.setattr(shell, "run_capture", fake.run_capture)
    monkeypatch.setattr(shell, "run_streaming", fake.run_streaming)
    monkeypatch.setattr(shell, "command_exists", fake.command_exists)
    return fake


@pytest.fixture
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("PKGSYNC_HOME", str(tmp_path))
    monkeypatch.setenv("PKGSYNC_CONFIG", str(tmp_path / "pkg-config.json"))
    monkeypatch.setenv("PKGSYNC_LOCKFILE", str(tmp_path / "pkg-lock.json"))
    return discover_env()


class ScriptedChannel(Channel):
    """Records every message and answers prompts from a fixed script."""

    def __init__(self, answers: Sequence[str] = ()) -> None:
        self.answers = list(answers)
        self.messages: list[Message] = []
        self.questions: list[str] = []

    def send(self, message: Message) -> None:
        self.messages.append(message)

    async def ask(self, question, choices=("yes", "no"), default=None):
        self.questions.append(question)
        self.send(PromptRequest(question, tuple(choices), default))
        answer = self.answers.pop(0) if self.answers else ""
        return normalise_answer(answer, choices, default)


class FakeManager(PackageManager):
    """In-memory backend.

    Args:
        tag: Manager type to impersonate.
        installed: Installed packages, name to version.
        outdated: Outdated packages, name to the version an upgrade installs.
        stubborn: Packages a bulk upgrade leaves behind.
        broken: Packages no upgrade ever fixes.
    """

    def __init__(
        self,
        tag: ManagerType = ManagerType.HOMEBREW,
        installed: dict[str, str] | None = None,
        outdated: dict[str, str] | None = None,
        stubborn: Sequence[str] = (),
        broken: Sequence[str] = (),
        available: bool = True,
        upgrade_ok: bool = True,
    ) -> None:
        self.tag = tag
        self.executable = tag.value
        self.installed = dict(installed or {})
        self.outdated = dict(outdated or {})
        self.stubborn = set(stubborn)
        self.broken = set(broken)
        self.available = available
        self.upgrade_ok = upgrade_ok
        self.calls: dict[str, list] = defaultdict(list)

    def is_available(self) -> bool:
        return self.available

    async def update(self, channel=None) -> bool:
        self.calls["update"].append(None)
        return True

    async def _install(self, names, channel) -> bool:
        self.calls["install"].append(list(names))
        for name in names:
            self.installed[name] = "1.0"
        return True

    async def _uninstall(self, names, channel) -> bool:
        self.calls["uninstall"].append(list(names))
        for name in names:
            self.installed.pop(name, None)
        return True

    async def upgrade(self, names=None, channel=None) -> bool:
        self.calls["upgrade"].append(None if names is None else list(names))
        for name in list(names) if names else list(self.outdated):
            if name in self.broken or (names is None and name in self.stubborn):
                continue
            if name in self.outdated:
                self.installed[name] = self.outdated.pop(name)
        return self.upgrade_ok

    async def list_installed(self) -> list[PackageInfo]:
        return [PackageInfo(name, version) for name, version in self.installed.items()]

    async def list_outdated(self) -> list[UpgradeInfo]:
        self.calls["list_outdated"].append(None)
        return [
            UpgradeInfo(name, self.installed.get(name, "unknown"), new)
            for name, new in self.outdated.items()
        ]

    async def cleanup(self, channel=None) -> bool:
        self.calls["cleanup"].append(None)
        return True


class FakeLeafManager(FakeManager):
    def __init__(self, *args, leaves: Sequence[str] = (), **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.leaves = list(leaves)

    async def list_leaves(self) -> list[str]:
        return list(self.leaves)


class FakeRepoManager(FakeManager):
    def __init__(self, *args, repositories: Sequence[str] = (), **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.repositories = list(repositories)

    async def add_repository(self, ref, channel=None) -> bool:
        self.calls["add_repository"].append(ref)
        self.repositories.append(ref)
        return True

    async def list_repositories(self) -> list[str]:
        return list(self.repositories)


class StaticDetector(PlatformDetector):
    """Detector that always reports the same platform."""

    def __init__(self, info: PlatformInfo) -> None:
        super().__init__()
        self.fixed = info

    def info(self) -> PlatformInfo:
        return self.fixed


@pytest.fixture
def make_context(env):
    """Build a Context around fake backends.

    Usage: ``ctx = make_context(platform, fake_a, fake_b, channel=...)``
    """

    def build(platform: PlatformInfo, *managers: PackageManager, channel: Channel | None = None):
        registry = ManagerRegistry()
        for manager in managers:
            registry.register(manager)
        return Context(
            env=env,
            detector=StaticDetector(platform),
            registry=registry,
            channel=channel or ScriptedChannel(),
        )

    return build
