"""Shared fixtures: archives, package indexes and a fake download server."""

import hashlib
import json
import re
import tarfile
import zipfile
from pathlib import Path
from unittest.mock import patch

import pytest
import requests

from boardmgr.commands.instances import InstanceRegistry
from boardmgr.packages.platform_utils import PlatformDetector

SERVER = "https://downloads.example.com"
HOST = "x86_64-pc-linux-gnu"

PLATFORM_TXT = """\
name=Vendor A Boards
version=1.0.0
compiler.path={runtime.tools.toolX.path}/bin/
recipe.c.o.pattern="{compiler.path}gcc" -mmcu={build.mcu} -DF_CPU={build.f_cpu}
"""

BOARDS_TXT = """\
menu.cpu=Processor
board1.name=Board One
board1.vid.0=0x2341
board1.pid.0=0x0043
board1.build.mcu=atmega328p
board1.build.core=arduino
board1.build.variant=standard
board1.menu.cpu.fast=Fast
board1.menu.cpu.fast.build.f_cpu=16000000L
board1.menu.cpu.slow=Slow
board1.menu.cpu.slow.build.f_cpu=8000000L
hidden1.name=Hidden Board
hidden1.hide=
hidden1.build.core=arduino
"""


class FakeResponse:
    """Minimal streaming response served from a directory."""

    def __init__(self, url, body, status_code=200):
        self.url = url
        self.body = body
        self.status_code = status_code
        self.headers = {"content-length": str(len(body))}
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} for {self.url}")

    def iter_content(self, chunk_size=8192):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start : start + chunk_size]

    def close(self):
        self.closed = True


class FakeServer:
    """Serves the files of a directory for any URL under SERVER."""

    def __init__(self, root: Path):
        self.root = root
        self.requested = []

    def get(self, url, **kwargs):
        self.requested.append(url)
        path = self.root / url.rsplit("/", 1)[-1]
        if not path.is_file():
            return FakeResponse(url, b"", status_code=404)
        return FakeResponse(url, path.read_bytes())

    def count(self, name: str) -> int:
        return sum(1 for url in self.requested if url.endswith("/" + name))


class BoardWorld:
    """Builds archives, indexes and settings for one test in a temp directory."""

    def __init__(self, root: Path):
        self.root = root
        self.served = root / "served"
        self.build = root / "build"
        self.indexes = root / "indexes"
        self.data_dir = root / "data"
        self.user_dir = root / "user"
        self.downloads_dir = root / "downloads"
        for directory in (self.served, self.build, self.indexes):
            directory.mkdir(parents=True, exist_ok=True)

    # Archives

    def make_archive(self, file_name: str, files: dict) -> dict:
        """Write an archive holding ``files`` (relative path -> text) and serve it.

        Returns:
            The download fields of an index entry
        """
        staging = self.build / file_name
        for rel, content in files.items():
            target = staging / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)

        archive = self.served / file_name
        if file_name.endswith(".zip"):
            with zipfile.ZipFile(archive, "w") as zf:
                for path in sorted(staging.rglob("*")):
                    zf.write(path, path.relative_to(staging).as_posix())
        else:
            with tarfile.open(archive, "w:gz") as tar:
                for entry in sorted(staging.iterdir()):
                    tar.add(entry, arcname=entry.name)
        return self.resource_fields(file_name)

    def resource_fields(self, file_name: str) -> dict:
        data = (self.served / file_name).read_bytes()
        return {
            "url": f"{SERVER}/{file_name}",
            "archiveFileName": file_name,
            "checksum": "SHA-256:" + hashlib.sha256(data).hexdigest(),
            "size": str(len(data)),
        }

    # Index entries

    def platform(self, package, arch, version, tools=(), discoveries=(), files=None, boards_txt=BOARDS_TXT):
        root = f"{arch}-{version}"
        content = {
            f"{root}/platform.txt": PLATFORM_TXT.replace("1.0.0", version),
            f"{root}/boards.txt": boards_txt,
            f"{root}/cores/arduino/Arduino.h": "",
        }
        content.update(files or {})
        entry = {
            "name": f"{package} {arch} boards",
            "architecture": arch,
            "version": version,
            "category": "Test",
            "boards": [{"name": "Board One"}],
            "toolsDependencies": [{"packager": p, "name": n, "version": v} for p, n, v in tools],
            "discoveryDependencies": [{"packager": p, "name": n} for p, n in discoveries],
        }
        entry.update(self.make_archive(f"{package}-{arch}-{version}.tar.gz", content))
        return entry

    def tool(self, name, version, host=HOST):
        fields = self.make_archive(f"{name}-{version}.tar.gz", {f"{name}-{version}/bin/{name}": "#!/bin/sh\n"})
        return {"name": name, "version": version, "systems": [dict(host=host, **fields)]}

    @staticmethod
    def package(name, platforms=(), tools=()):
        return {
            "name": name,
            "maintainer": f"{name} maintainers",
            "websiteURL": f"https://{name}.example.com",
            "email": f"support@{name}.example.com",
            "platforms": list(platforms),
            "tools": list(tools),
        }

    def write_index(self, packages, name="package_test_index.json") -> str:
        path = self.indexes / name
        path.write_text(json.dumps({"packages": list(packages)}))
        return path.as_uri()

    def library(self, name, version, dependencies=()):
        folder = f"{name}-{version}"
        fields = self.make_archive(
            f"{name}-{version}.zip",
            {
                f"{folder}/library.properties": f"name={name}\nversion={version}\narchitectures=*\n",
                f"{folder}/src/{name}.h": "",
            },
        )
        entry = {
            "name": name,
            "version": version,
            "author": "Someone",
            "sentence": f"The {name} library",
            "architectures": ["*"],
            "dependencies": [{"name": d} for d in dependencies],
        }
        entry.update(fields)
        entry["size"] = int(entry["size"])
        return entry

    def write_library_index(self, libraries=()) -> Path:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self.data_dir / "library_index.json"
        path.write_text(json.dumps({"libraries": list(libraries)}))
        return path

    # Instances

    def settings(self, index_url=None, **overrides) -> dict:
        values = {
            "directories.data": str(self.data_dir),
            "directories.user": str(self.user_dir),
            "directories.downloads": str(self.downloads_dir),
            "board_manager.default_url": index_url or self.write_index([]),
            "security.trusted_hosts": "",
            "library.index_url": f"{SERVER}/library_index.json.gz",
            "library.signature_url": f"{SERVER}/library_index.json.sig",
        }
        values.update(overrides)
        return values

    def create(self, registry: InstanceRegistry, index_url=None, **overrides) -> int:
        if not (self.data_dir / "library_index.json").exists():
            self.write_library_index()
        return registry.create(self.settings(index_url, **overrides))


@pytest.fixture
def world(tmp_path, monkeypatch):
    """A temp directory world whose tool flavours match the running host."""
    monkeypatch.setattr(PlatformDetector, "host_patterns", classmethod(lambda cls: [re.compile(r"x86_64-.*linux-gnu.*")]))
    return BoardWorld(tmp_path)


@pytest.fixture
def server(world):
    """Route every download through a FakeServer serving the world's archives."""
    fake = FakeServer(world.served)
    with patch("boardmgr.packages.downloader.requests.get", side_effect=fake.get):
        yield fake


@pytest.fixture
def registry():
    return InstanceRegistry()
