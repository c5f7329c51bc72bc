"""Unit tests for the package manager graph and its disk operations."""

import json
import re
from unittest.mock import MagicMock

import pytest

from boardmgr.config import Settings
from boardmgr.errors import (
    FailedUninstallError,
    IndexLoadError,
    InvalidURLError,
    PlatformNotFoundError,
    PlatformNotInstalledError,
    ToolNotFoundError,
)
from boardmgr.packages import Directories, IndexSignaturePolicy, PackageManager, PlatformReference, SignatureVerifier
from boardmgr.packages.cores import ToolDependency
from boardmgr.packages.package_index import PackageIndex

TRUSTED_URL = "https://downloads.example.com/package_vendor_index.json"
UNTRUSTED_URL = "https://mirror.example.org/package_mirror_index.json"


def _index(version="1.0.0", name="Arch1 Boards", tool_version="1.0.0"):
    return {
        "packages": [
            {
                "name": "vendorA",
                "maintainer": "Vendor A",
                "platforms": [
                    {
                        "name": name,
                        "architecture": "arch1",
                        "version": version,
                        "url": f"https://downloads.example.com/arch1-{version}.tar.gz",
                        "archiveFileName": f"arch1-{version}.tar.gz",
                        "checksum": "SHA-256:00",
                        "size": "10",
                        "toolsDependencies": [{"packager": "vendorA", "name": "toolX", "version": tool_version}],
                    }
                ],
                "tools": [
                    {
                        "name": "toolX",
                        "version": tool_version,
                        "systems": [
                            {
                                "host": "x86_64-pc-linux-gnu",
                                "url": f"https://downloads.example.com/toolX-{tool_version}.tar.gz",
                                "archiveFileName": f"toolX-{tool_version}.tar.gz",
                                "checksum": "SHA-256:00",
                                "size": "10",
                            }
                        ],
                    }
                ],
            }
        ]
    }


@pytest.fixture
def directories(tmp_path):
    settings = Settings(
        {
            "directories.data": str(tmp_path / "data"),
            "directories.downloads": str(tmp_path / "downloads"),
            "directories.user": str(tmp_path / "user"),
        }
    )
    dirs = Directories(settings)
    dirs.ensure_directories()
    return dirs


@pytest.fixture
def verifier():
    return MagicMock(spec=SignatureVerifier)


@pytest.fixture
def pm(directories, verifier):
    return PackageManager(
        directories,
        signature_policy=IndexSignaturePolicy(["downloads.example.com"]),
        verifier=verifier,
        host_patterns=[re.compile(r"x86_64-.*linux-gnu.*")],
    )


def _write_local(directories, url, document):
    path = directories.package_index_path(url)
    path.write_text(json.dumps(document))
    return path


def _make_installed(directories, package, arch, version, boards="b1.name=B1\n", platform="name=P\n"):
    install_dir = directories.packages_dir / package / "hardware" / arch / version
    install_dir.mkdir(parents=True)
    (install_dir / "boards.txt").write_text(boards)
    (install_dir / "platform.txt").write_text(platform)
    return install_dir


class TestIndexLoading:
    """Test cases for loading package indexes."""

    def test_local_index_path(self, pm, directories, tmp_path):
        assert pm.local_index_path(TRUSTED_URL) == directories.data_dir / "package_vendor_index.json"
        assert pm.local_index_path((tmp_path / "i.json").as_uri()) == tmp_path / "i.json"
        with pytest.raises(InvalidURLError):
            pm.local_index_path("ftp://example.com/index.json")
        with pytest.raises(InvalidURLError):
            pm.local_index_path("https://example.com/")

    def test_missing_local_copy(self, pm):
        with pytest.raises(IndexLoadError, match="update the index"):
            pm.load_package_index(UNTRUSTED_URL)

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda d: d["packages"].append("vendorB"),
            lambda d: d["packages"][0].update(platforms={"architecture": "arch1"}),
            lambda d: d["packages"][0]["platforms"][0].update(help="see docs"),
            lambda d: d["packages"][0]["platforms"][0].update(version=100),
            lambda d: d["packages"][0]["platforms"][0]["toolsDependencies"].append("vendorA:toolX"),
            lambda d: d["packages"][0]["platforms"][0].update(boards=[["Uno"]]),
            lambda d: d["packages"][0]["tools"][0].update(systems=[None]),
        ],
    )
    def test_malformed_entries_are_rejected(self, pm, mutate):
        """Test an index with a wrongly shaped entry leaves the graph untouched."""
        data = _index()
        mutate(data)
        data["packages"].insert(0, {"name": "vendorZ", "platforms": [{"architecture": "z", "version": "1.0.0"}]})
        with pytest.raises(IndexLoadError, match="Invalid package index"):
            PackageIndex(data, source="test").merge_into(pm.packages)
        assert "vendorZ" not in pm.packages
        assert "vendorA" not in pm.packages

    def test_null_lists_are_empty(self, pm):
        data = {"packages": [{"name": "vendorA", "platforms": None, "tools": None}]}
        PackageIndex(data).merge_into(pm.packages)
        assert pm.packages.get("vendorA").platforms == {}

    def test_trusted_host_requires_signature(self, pm, directories, verifier):
        """Test an index from a trusted host is rejected without a signature."""
        _write_local(directories, TRUSTED_URL, _index())
        with pytest.raises(IndexLoadError, match="signature"):
            pm.load_package_index(TRUSTED_URL)
        assert "vendorA" not in pm.packages
        verifier.verify_detached.assert_not_called()

    def test_trusted_host_with_invalid_signature(self, pm, directories, verifier):
        path = _write_local(directories, TRUSTED_URL, _index())
        path.with_name(path.name + ".sig").write_bytes(b"sig")
        verifier.verify_detached.return_value = False
        with pytest.raises(IndexLoadError):
            pm.load_package_index(TRUSTED_URL)

    def test_trusted_host_with_valid_signature(self, pm, directories, verifier):
        path = _write_local(directories, TRUSTED_URL, _index())
        path.with_name(path.name + ".sig").write_bytes(b"sig")
        verifier.verify_detached.return_value = True

        index = pm.load_package_index(TRUSTED_URL)

        assert index.trusted
        release = pm.find_platform_release(PlatformReference("vendorA", "arch1"))
        assert release.trusted
        assert pm.packages.get("vendorA").index_url == TRUSTED_URL

    def test_other_hosts_accepted_unsigned(self, pm, directories, verifier):
        """Test an index from another origin loads unsigned and untrusted."""
        _write_local(directories, UNTRUSTED_URL, _index())
        pm.load_package_index(UNTRUSTED_URL)
        release = pm.find_platform_release(PlatformReference("vendorA", "arch1", "1.0.0"))
        assert not release.trusted
        verifier.verify_detached.assert_not_called()

    def test_trust_is_never_lowered(self, pm, directories, verifier):
        signed = _write_local(directories, TRUSTED_URL, _index())
        signed.with_name(signed.name + ".sig").write_bytes(b"sig")
        verifier.verify_detached.return_value = True
        _write_local(directories, UNTRUSTED_URL, _index(name="Mirror name"))

        pm.load_package_index(TRUSTED_URL)
        pm.load_package_index(UNTRUSTED_URL)

        release = pm.find_platform_release(PlatformReference("vendorA", "arch1", "1.0.0"))
        assert release.trusted
        assert release.name == "Mirror name"

    def test_indexes_merge_releases(self, pm, directories):
        _write_local(directories, UNTRUSTED_URL, _index("1.0.0"))
        other = "https://mirror.example.org/package_other_index.json"
        _write_local(directories, other, _index("2.0.0", tool_version="2.0.0"))

        pm.load_package_index(UNTRUSTED_URL)
        pm.load_package_index(other)

        platform = pm.find_platform(PlatformReference("vendorA", "arch1"))
        assert sorted(platform.releases) == ["1.0.0", "2.0.0"]
        assert str(platform.latest_release().version) == "2.0.0"
        assert sorted(pm.packages.get("vendorA").tools["toolX"].releases) == ["1.0.0", "2.0.0"]

    def test_empty_fields_keep_previous_values(self, pm, tmp_path):
        first = _index()
        second = _index()
        second["packages"][0]["maintainer"] = ""
        second["packages"][0]["platforms"][0]["name"] = ""
        pm.load_package_index_from_file(self._dump(tmp_path / "a.json", first))
        pm.load_package_index_from_file(self._dump(tmp_path / "b.json", second))

        assert pm.packages.get("vendorA").maintainer == "Vendor A"
        assert pm.find_platform_release(PlatformReference("vendorA", "arch1")).name == "Arch1 Boards"

    def test_invalid_document(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(IndexLoadError):
            PackageIndex.from_file(path)
        path.write_text(json.dumps({"packages": "nope"}))
        with pytest.raises(IndexLoadError):
            PackageIndex.from_file(path)

    @staticmethod
    def _dump(path, document):
        path.write_text(json.dumps(document))
        return path


class TestQueries:
    """Test cases for graph lookups."""

    def test_find_platform_unknown(self, pm):
        with pytest.raises(PlatformNotFoundError):
            pm.find_platform(PlatformReference("nobody", "arch1"))

    def test_find_release_unknown_version(self, pm, tmp_path):
        path = tmp_path / "i.json"
        path.write_text(json.dumps(_index()))
        pm.load_package_index_from_file(path)
        with pytest.raises(PlatformNotFoundError):
            pm.find_platform_release(PlatformReference("vendorA", "arch1", "9.9.9"))

    def test_release_dependencies(self, pm, tmp_path):
        path = tmp_path / "i.json"
        path.write_text(json.dumps(_index()))
        pm.load_package_index_from_file(path)

        release, tools = pm.find_platform_release_dependencies(PlatformReference("vendorA", "arch1", "1.0.0"))

        assert str(release) == "vendorA:arch1@1.0.0"
        assert [str(t) for t in tools] == ["vendorA:toolX@1.0.0"]
        assert pm.tool_resource(tools[0]).archive_file_name == "toolX-1.0.0.tar.gz"

    def test_missing_tool_dependency(self, pm, tmp_path):
        document = _index()
        document["packages"][0]["tools"] = []
        path = tmp_path / "i.json"
        path.write_text(json.dumps(document))
        pm.load_package_index_from_file(path)
        with pytest.raises(ToolNotFoundError):
            pm.find_platform_release_dependencies(PlatformReference("vendorA", "arch1"))

    def test_no_flavour_for_host(self, directories, tmp_path):
        pm = PackageManager(directories, host_patterns=[re.compile(r"arm64-apple-darwin.*")])
        path = tmp_path / "i.json"
        path.write_text(json.dumps(_index()))
        pm.load_package_index_from_file(path)
        tool_release = pm.find_tool_dependency(ToolDependency("vendorA", "toolX", "1.0.0"))
        with pytest.raises(ToolNotFoundError, match="not available for this host"):
            pm.tool_resource(tool_release)


class TestHardware:
    """Test cases for loading installed hardware."""

    def test_installed_status_comes_from_disk(self, pm, directories, tmp_path):
        path = tmp_path / "i.json"
        path.write_text(json.dumps(_index()))
        pm.load_package_index_from_file(path)
        release = pm.find_platform_release(PlatformReference("vendorA", "arch1", "1.0.0"))
        assert not release.is_installed()

        _make_installed(directories, "vendorA", "arch1", "1.0.0")
        assert release.is_installed()

    def test_load_hardware(self, pm, directories):
        boards = "menu.cpu=Processor\nb1.name=Board 1\nb1.menu.cpu.a=A\nb2.name=Board 2\n"
        _make_installed(directories, "vendorA", "arch1", "1.0.0", boards=boards)
        tool_dir = directories.packages_dir / "vendorA" / "tools" / "toolX" / "1.0.0"
        tool_dir.mkdir(parents=True)

        errors = pm.load_hardware()

        assert errors == []
        release = pm.find_platform(PlatformReference("vendorA", "arch1")).installed_release()
        assert sorted(release.boards) == ["b1", "b2"]
        assert release.menus.get("cpu") == "Processor"
        assert release.properties.get("name") == "P"
        assert pm.installed_tool_release("vendorA", "toolX").install_dir == tool_dir

    def test_local_files_override(self, pm, directories):
        install_dir = _make_installed(directories, "vendorA", "arch1", "1.0.0")
        (install_dir / "platform.local.txt").write_text("name=Local\n")
        (install_dir / "boards.local.txt").write_text("b1.name=Renamed\n")
        pm.load_hardware()
        release = pm.find_platform(PlatformReference("vendorA", "arch1")).installed_release()
        assert release.properties.get("name") == "Local"
        assert release.boards["b1"].name == "Renamed"

    def test_malformed_release_is_reported(self, pm, directories):
        _make_installed(directories, "vendorA", "arch1", "1.0.0", boards="broken line\n")
        _make_installed(directories, "vendorA", "arch2", "1.0.0")

        errors = pm.load_hardware()

        assert len(errors) == 1
        assert "arch1" in str(errors[0])
        assert pm.find_platform(PlatformReference("vendorA", "arch2")).installed_release() is not None

    def test_installed_json_restores_metadata(self, pm, directories):
        install_dir = _make_installed(directories, "vendorA", "arch1", "1.0.0")
        (install_dir / "installed.json").write_text(json.dumps(_index()))

        pm.load_hardware()

        release = pm.find_platform_release(PlatformReference("vendorA", "arch1", "1.0.0"))
        assert release.name == "Arch1 Boards"
        assert [str(d) for d in release.tool_dependencies] == ["vendorA:toolX@1.0.0"]

    def test_bundled_tools(self, directories, tmp_path):
        bundled = tmp_path / "bundled"
        (bundled / "builtin" / "ctags" / "5.8").mkdir(parents=True)
        settings = Settings(
            {
                "directories.data": str(directories.data_dir),
                "directories.builtin.tools": str(bundled),
            }
        )
        pm = PackageManager(Directories(settings))

        pm.load_hardware()

        tool_release = pm.installed_tool_release("builtin", "ctags")
        assert tool_release.install_dir == bundled / "builtin" / "ctags" / "5.8"
        assert [t.name for t in pm.builtin_tools()] == ["ctags"]
        with pytest.raises(FailedUninstallError, match="bundled"):
            pm.uninstall_tool(tool_release)

    def test_discoveries(self, pm, directories):
        _make_installed(
            directories,
            "vendorA",
            "arch1",
            "1.0.0",
            platform="pluggable_discovery.required.0=builtin:serial-discovery\n"
            "pluggable_discovery.required.1=vendorA:missing-discovery\n",
        )
        (directories.packages_dir / "builtin" / "tools" / "serial-discovery" / "1.0.0").mkdir(parents=True)
        pm.load_hardware()

        errors = pm.load_discoveries()

        assert list(pm.discoveries) == ["builtin:serial-discovery"]
        assert len(errors) == 1
        assert "vendorA:missing-discovery" in str(errors[0])


class TestUninstall:
    """Test cases for removing installed releases."""

    def test_uninstall_platform(self, pm, directories):
        install_dir = _make_installed(directories, "vendorA", "arch1", "1.0.0")
        pm.load_hardware()
        release = pm.find_platform(PlatformReference("vendorA", "arch1")).installed_release()

        pm.uninstall_platform(release)

        assert not install_dir.exists()
        assert not install_dir.parent.exists()
        assert release.boards == {}

    def test_uninstall_not_installed(self, pm, tmp_path):
        path = tmp_path / "i.json"
        path.write_text(json.dumps(_index()))
        pm.load_package_index_from_file(path)
        release = pm.find_platform_release(PlatformReference("vendorA", "arch1"))
        with pytest.raises(PlatformNotInstalledError):
            pm.uninstall_platform(release)

    def test_is_tool_required(self, pm, directories, tmp_path):
        install_dir = _make_installed(directories, "vendorA", "arch1", "1.0.0")
        (install_dir / "installed.json").write_text(json.dumps(_index()))
        pm.load_hardware()
        tool_release = pm.find_tool_dependency(ToolDependency("vendorA", "toolX", "1.0.0"))
        assert pm.is_tool_required(tool_release)
