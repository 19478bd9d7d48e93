from conftest import FakeManager

from pkgsync.backends.registry import ManagerRegistry
from pkgsync.core.models import AurHelper, LinuxDistro, ManagerType, OperatingSystem, PlatformInfo
from pkgsync.core.platform import PlatformDetector, parse_os_release


def test_parse_os_release_ids():
    assert parse_os_release('NAME="Arch Linux"\nID=arch\n') is LinuxDistro.ARCH
    assert parse_os_release('ID="ubuntu"\nID_LIKE=debian\n') is LinuxDistro.UBUNTU
    assert parse_os_release("ID=rocky\n") is LinuxDistro.RHEL
    assert parse_os_release("ID=opensuse-tumbleweed\n") is LinuxDistro.OPENSUSE


def test_parse_os_release_id_like():
    assert parse_os_release("ID=garuda\nID_LIKE=arch\n") is LinuxDistro.ARCH
    assert parse_os_release('ID=zorin\nID_LIKE="ubuntu debian"\n') is LinuxDistro.DEBIAN
    assert parse_os_release("ID=nobara\nID_LIKE=fedora\n") is LinuxDistro.FEDORA
    assert parse_os_release("ID=gentoo\n") is LinuxDistro.UNKNOWN


def _detector(tmp_path, executables, os_release="ID=arch\n", **kwargs):
    path = tmp_path / "os-release"
    path.write_text(os_release)
    return PlatformDetector(
        os_release=path, system="linux", which=lambda name: name in executables, **kwargs
    )


def test_detects_arch_with_helper(tmp_path):
    info = _detector(tmp_path, {"pacman", "paru", "flatpak"}).info()

    assert info.os is OperatingSystem.LINUX
    assert info.distro is LinuxDistro.ARCH
    assert info.aur_helper is AurHelper.PARU
    assert info.available_types == (ManagerType.PACMAN, ManagerType.AUR, ManagerType.FLATPAK)


def test_preferred_helper_wins_when_installed(tmp_path):
    info = _detector(
        tmp_path, {"pacman", "yay", "trizen"}, preferred_aur_helper=AurHelper.TRIZEN
    ).info()

    assert info.aur_helper is AurHelper.TRIZEN


def test_aur_needs_pacman(tmp_path):
    info = _detector(tmp_path, {"yay", "apt-get"}, os_release="ID=debian\n").info()

    assert info.aur_helper is None
    assert info.available_types == (ManagerType.APT,)


def test_missing_os_release_is_unknown(tmp_path):
    detector = PlatformDetector(os_release=tmp_path / "missing", system="linux", which=lambda _: False)

    assert detector.info().distro is LinuxDistro.UNKNOWN


def test_macos_candidates(tmp_path):
    detector = PlatformDetector(system="darwin", which=lambda name: name in {"brew", "mas"})

    info = detector.info()

    assert info.distro is None
    assert info.available_types == (ManagerType.HOMEBREW, ManagerType.MAS)
    assert info.display_name == "macOS"


def test_info_is_cached_until_cleared(tmp_path):
    executables = {"pacman"}
    detector = _detector(tmp_path, executables)

    first = detector.info()
    executables.add("flatpak")
    assert detector.info() is first

    detector.clear()
    assert ManagerType.FLATPAK in detector.info().available_types


def test_registry_puts_casks_after_homebrew(fake_shell):
    fake_shell.executables.update({"brew", "cargo"})
    platform = PlatformInfo(
        OperatingSystem.DARWIN, available_types=(ManagerType.HOMEBREW, ManagerType.CARGO)
    )

    managers = ManagerRegistry().available_managers(platform)

    assert [m.tag for m in managers] == [
        ManagerType.HOMEBREW,
        ManagerType.HOMEBREW_CASKS,
        ManagerType.CARGO,
    ]


def test_registry_skips_unavailable_and_memoizes(fake_shell):
    registry = ManagerRegistry()
    fake = FakeManager(ManagerType.CARGO, available=False)
    registry.register(fake)
    platform = PlatformInfo(OperatingSystem.LINUX, available_types=(ManagerType.CARGO,))

    assert registry.available_managers(platform) == []
    assert registry.get(ManagerType.CARGO) is fake
    assert registry.get(ManagerType.DNF) is registry.get(ManagerType.DNF)


def test_registry_passes_detected_helper_to_aur(fake_shell):
    fake_shell.executables.update({"pacman", "yay"})
    platform = PlatformInfo(
        OperatingSystem.LINUX,
        distro=LinuxDistro.ARCH,
        aur_helper=AurHelper.YAY,
        available_types=(ManagerType.PACMAN, ManagerType.AUR),
    )

    managers = ManagerRegistry().available_managers(platform)

    assert [m.tag for m in managers] == [ManagerType.PACMAN, ManagerType.AUR]
    assert managers[1].helper is AurHelper.YAY


def test_registry_builds_aur_from_detected_platform(fake_shell):
    fake_shell.executables.update({"pacman", "paru"})
    platform = PlatformInfo(
        OperatingSystem.LINUX,
        distro=LinuxDistro.ARCH,
        aur_helper=AurHelper.PARU,
        available_types=(ManagerType.PACMAN, ManagerType.AUR),
    )
    registry = ManagerRegistry(platform=lambda: platform)

    aur = registry.get(ManagerType.AUR)

    assert aur.helper is AurHelper.PARU
    assert aur.is_available()
