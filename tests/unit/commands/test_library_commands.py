"""Unit tests for library download, install, uninstall and upgrade."""

import pytest

from boardmgr.commands import ProgressCollector, library_download, library_install, library_uninstall, outdated, upgrade
from boardmgr.commands.results import OutcomeStatus
from boardmgr.errors import LibraryNotFoundError
from boardmgr.libraries import LibraryLocation


@pytest.fixture
def instance(registry, world, server):
    world.write_library_index(
        [
            world.library("Servo", "1.0.0"),
            world.library("Servo", "2.0.0"),
            world.library("Fonts", "1.5.0"),
            world.library("Display", "3.0.0", dependencies=["Fonts", "Servo"]),
        ]
    )
    instance_id = world.create(registry)
    assert registry.init(instance_id).ok
    return instance_id


def _properties(world, folder):
    return (world.user_dir / "libraries" / folder / "library.properties").read_text()


class TestLibraryInstall:
    """Test cases for library_install and library_uninstall."""

    def test_install_latest(self, registry, world, instance):
        report = library_install(instance, "Servo", registry=registry)

        assert report.statuses() == {"Servo@2.0.0": OutcomeStatus.SUCCESS}
        assert "version=2.0.0" in _properties(world, "Servo")
        assert (world.user_dir / "libraries" / "Servo" / "src" / "Servo.h").is_file()
        lm = registry.get_library_manager(instance)
        assert str(lm.find_installed("Servo", LibraryLocation.USER).version) == "2.0.0"

    def test_install_twice(self, registry, world, server, instance):
        library_install(instance, "Servo", "1.0.0", registry=registry)
        events = ProgressCollector()

        report = library_install(instance, "Servo", "1.0.0", events, registry=registry)

        assert report.statuses() == {"Servo@1.0.0": OutcomeStatus.ALREADY_INSTALLED}
        assert server.count("Servo-1.0.0.zip") == 1
        assert any("already installed" in t.message for t in events.tasks)

    def test_install_replaces_version(self, registry, world, instance):
        library_install(instance, "Servo", "1.0.0", registry=registry)
        library_install(instance, "Servo", "2.0.0", registry=registry)
        assert "version=2.0.0" in _properties(world, "Servo")

    def test_install_with_dependencies(self, registry, world, instance):
        report = library_install(instance, "Display", registry=registry)

        assert [o.target for o in report.outcomes] == ["Fonts@1.5.0", "Servo@2.0.0", "Display@3.0.0"]
        assert report.ok
        for folder in ("Fonts", "Servo", "Display"):
            assert (world.user_dir / "libraries" / folder).is_dir()

    def test_install_skips_installed_dependency(self, registry, world, instance):
        library_install(instance, "Servo", registry=registry)
        report = library_install(instance, "Display", registry=registry)
        assert report.get("Servo@2.0.0").status == OutcomeStatus.ALREADY_INSTALLED
        assert report.get("Display@3.0.0").status == OutcomeStatus.SUCCESS

    def test_install_without_dependencies(self, registry, world, instance):
        report = library_install(instance, "Display", no_deps=True, registry=registry)
        assert list(report.statuses()) == ["Display@3.0.0"]
        assert not (world.user_dir / "libraries" / "Fonts").exists()

    def test_install_unknown(self, registry, instance):
        with pytest.raises(LibraryNotFoundError):
            library_install(instance, "Nope", registry=registry)
        with pytest.raises(LibraryNotFoundError):
            library_install(instance, "Servo", "9.9.9", registry=registry)

    def test_uninstall(self, registry, world, instance):
        library_install(instance, "Servo", registry=registry)

        library_uninstall(instance, "Servo", registry=registry)

        assert not (world.user_dir / "libraries" / "Servo").exists()
        assert registry.get_library_manager(instance).find_installed("Servo") is None

    def test_uninstall_not_installed(self, registry, instance):
        with pytest.raises(LibraryNotFoundError):
            library_uninstall(instance, "Servo", registry=registry)

    def test_download_is_idempotent(self, registry, world, server, instance):
        release = library_download(instance, "Fonts", registry=registry)
        library_download(instance, "Fonts", "1.5.0", registry=registry)

        assert str(release) == "Fonts@1.5.0"
        assert server.count("Fonts-1.5.0.zip") == 1
        assert not (world.user_dir / "libraries" / "Fonts").exists()


class TestLibraryUpgrade:
    """Test cases for outdated and upgrade of user libraries."""

    def test_outdated_and_upgrade(self, registry, world, instance):
        library_install(instance, "Servo", "1.0.0", registry=registry)
        library_install(instance, "Fonts", registry=registry)

        pending = outdated(instance, registry=registry)
        assert [(str(lib), str(release)) for lib, release in pending.libraries] == [("Servo@1.0.0", "Servo@2.0.0")]

        report = upgrade(instance, registry=registry)

        assert report.get("Servo@1.0.0").status == OutcomeStatus.SUCCESS
        assert report.get("Fonts@1.5.0").status == OutcomeStatus.ALREADY_INSTALLED
        assert "version=2.0.0" in _properties(world, "Servo")
        assert outdated(instance, registry=registry).is_empty()

    def test_upgrade_failure_is_reported(self, registry, world, instance):
        library_install(instance, "Servo", "1.0.0", registry=registry)
        (world.served / "Servo-2.0.0.zip").unlink()
        events = ProgressCollector()

        report = upgrade(instance, events, registry=registry)

        assert report.get("Servo@1.0.0").status == OutcomeStatus.FAILED
        assert len(events.errors) == 1
        assert "version=1.0.0" in _properties(world, "Servo")
