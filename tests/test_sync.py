import asyncio

from conftest import FakeLeafManager, FakeManager, FakeRepoManager, ScriptedChannel

from pkgsync.core.models import LinuxDistro, ManagerType, OperatingSystem, PlatformInfo
from pkgsync.core.pkgconfig import DeclaredConfig
from pkgsync.engine.sync import refresh_indexes, sync

MAC = PlatformInfo(OperatingSystem.DARWIN, available_types=(ManagerType.HOMEBREW,))
UBUNTU = PlatformInfo(
    OperatingSystem.LINUX,
    distro=LinuxDistro.UBUNTU,
    available_types=(ManagerType.APT, ManagerType.CARGO),
)


def _config(purge=False, auto_update=True, **sections):
    return DeclaredConfig.from_dict({
        "version": 2,
        "config": {"purge": purge, "purgeInteractive": False, "autoUpdate": auto_update},
        **sections,
    })


def test_installs_only_missing_packages(make_context):
    brew = FakeManager(installed={"git": "2.40"})
    ctx = make_context(MAC, brew)

    report = asyncio.run(sync(ctx, _config(macos={"formulas": ["git", "jq"]})))

    assert brew.calls["install"] == [["jq"]]
    assert report.installed == {"homebrew": ["jq"]}
    assert report.ok


def test_second_sync_installs_nothing(make_context):
    brew = FakeManager()
    ctx = make_context(MAC, brew)
    config = _config(macos={"formulas": ["git", "jq"]})

    asyncio.run(sync(ctx, config))
    report = asyncio.run(sync(ctx, config))

    assert brew.calls["install"] == [["git", "jq"]]
    assert report.installed == {}


def test_sync_writes_lockfile(make_context):
    brew = FakeManager(installed={"git": "2.40"})
    ctx = make_context(MAC, brew)

    report = asyncio.run(sync(ctx, _config(macos={"formulas": ["git"]})))

    assert set(report.lockfile.packages) == {"homebrew:git"}
    assert ctx.lock_store.load().packages["homebrew:git"].version == "2.40"


def test_auto_update_controls_index_refresh(make_context):
    brew = FakeManager()
    ctx = make_context(MAC, brew)

    asyncio.run(sync(ctx, _config(auto_update=False, macos={"formulas": ["git"]})))
    assert "update" not in brew.calls

    asyncio.run(sync(ctx, _config(macos={"formulas": ["git"]})))
    assert len(brew.calls["update"]) == 1


def test_missing_repositories_are_added(make_context):
    apt = FakeRepoManager(ManagerType.APT, repositories=["ppa:git-core/ppa"])
    ctx = make_context(UBUNTU, apt)
    config = _config(
        debian={"packages": ["neovim"], "ppas": ["ppa:git-core/ppa", "ppa:neovim-ppa/unstable"]}
    )

    report = asyncio.run(sync(ctx, config))

    assert apt.calls["add_repository"] == ["ppa:neovim-ppa/unstable"]
    assert report.repositories_added == {"apt": ["ppa:neovim-ppa/unstable"]}
    assert report.installed == {"apt": ["neovim"]}


def test_partial_install_failure_is_reported(make_context):
    class Flaky(FakeManager):
        async def _install(self, names, channel):
            self.installed["git"] = "2.40"
            return False

    brew = Flaky()
    ctx = make_context(MAC, brew)

    report = asyncio.run(sync(ctx, _config(macos={"formulas": ["git", "nope"]})))

    assert report.installed == {"homebrew": ["git"]}
    assert report.failed == {"homebrew": ["nope"]}
    assert not report.ok


def test_purge_removes_unlisted_leaves(make_context):
    brew = FakeLeafManager(installed={"git": "2.40", "htop": "3.3"}, leaves=["git", "htop"])
    ctx = make_context(MAC, brew)

    report = asyncio.run(sync(ctx, _config(purge=True, macos={"formulas": ["git"]})))

    assert [o.name for o in report.removed] == ["htop"]
    assert "homebrew:htop" not in report.lockfile.packages


def test_purge_override_beats_config(make_context):
    brew = FakeLeafManager(installed={"htop": "3.3"}, leaves=["htop"])
    ctx = make_context(MAC, brew)

    report = asyncio.run(sync(ctx, _config(purge=True), purge=False))

    assert report.removed == []
    assert "uninstall" not in brew.calls


def test_interactive_purge_asks_on_the_channel(make_context):
    brew = FakeLeafManager(installed={"htop": "3.3"}, leaves=["htop"])
    channel = ScriptedChannel(["n"])
    ctx = make_context(MAC, brew, channel=channel)
    config = DeclaredConfig.from_dict(
        {"version": 2, "config": {"purge": True, "purgeInteractive": True}}
    )

    report = asyncio.run(sync(ctx, config))

    assert report.removed == []
    assert channel.questions == ["Remove formula htop?"]


def test_refresh_indexes_once_per_executable():
    formulas = FakeManager(ManagerType.HOMEBREW)
    casks = FakeManager(ManagerType.HOMEBREW_CASKS)
    casks.executable = formulas.executable

    asyncio.run(refresh_indexes([formulas, casks], ScriptedChannel()))

    assert len(formulas.calls["update"]) == 1
    assert "update" not in casks.calls
