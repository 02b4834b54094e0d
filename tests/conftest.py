"""
Shared fixtures: an in-memory container service and image tarball helpers.
"""
import io
import os
import tarfile
from typing import Dict, List, Optional, Tuple

import pytest
import yaml

from seedbuild.errors import CommandError
from seedbuild.MANAGERS.container_manager import ContainerManager
from seedbuild.MODELS.container_status import ContainerStatus

FINGERPRINT = "8e4c5b1d0f2a"

DEFAULT_METADATA = {
    "architecture": "x86_64",
    "creation_date": 1500000000,
    "properties": {"os": "centos", "release": "7"},
    "templates": {
        "/etc/hostname": {"template": "hostname.tpl", "when": ["create", "copy"]},
    },
}


def write_tarball(path: str, entries: List[Tuple[str, Optional[bytes]]], mode: str = "w:gz") -> str:
    """Writes a tarball; a None payload makes a directory entry."""
    with tarfile.open(path, mode) as tar:
        for name, content in entries:
            info = tarfile.TarInfo(name)
            if content is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(content)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(content))
    return path


def read_tarball(path: str) -> List[Tuple[str, Optional[bytes]]]:
    """Reads every entry of a (possibly compressed) tarball, in order."""
    entries = []
    with tarfile.open(path, "r:*") as tar:
        for member in tar:
            if member.isfile():
                entries.append((member.name, tar.extractfile(member).read()))
            else:
                entries.append((member.name, None))
    return entries


def image_entries(metadata: Optional[Dict] = None) -> List[Tuple[str, Optional[bytes]]]:
    if metadata is None:
        metadata = DEFAULT_METADATA
    return [
        ("metadata.yaml", yaml.safe_dump(metadata).encode()),
        ("rootfs", None),
        ("rootfs/etc", None),
        ("rootfs/etc/hostname", b"localhost\n"),
        ("templates", None),
        ("templates/hostname.tpl", b"{{ container.name }}\n"),
    ]


def network_status(
    name: str = "build",
    status: str = "Running",
    interface: str = "eth0",
    state: str = "up",
    family: str = "inet",
    scope: str = "global",
) -> ContainerStatus:
    return ContainerStatus.model_validate({
        "name": name,
        "status": status,
        "state": {
            "status": status,
            "network": {
                "lo": {
                    "type": "loopback",
                    "state": "up",
                    "addresses": [{"family": "inet", "address": "127.0.0.1", "scope": "local"}],
                },
                interface: {
                    "type": "broadcast",
                    "state": state,
                    "addresses": [{"family": family, "address": "10.0.3.15", "scope": scope}],
                },
            },
        },
    })


class FakeContainerManager(ContainerManager):
    """
    Records every call. Exporting writes a real gzip image tarball named
    after FINGERPRINT; status returns the queued statuses, repeating the last.
    """

    def __init__(self, entries=None, statuses=None, fail_on=()):
        self.entries = entries if entries is not None else image_entries()
        self.statuses = list(statuses) if statuses else [network_status()]
        self.fail_on = set(fail_on)
        self.calls: List[Tuple] = []
        self.imported: Dict[str, List[Tuple[str, Optional[bytes]]]] = {}

    def _record(self, op, *args):
        self.calls.append((op,) + args)
        if op in self.fail_on:
            raise CommandError(["lxc", op, *[str(a) for a in args]], returncode=1, stderr=f"{op} failed")

    def ops(self) -> List[str]:
        return [call[0] for call in self.calls]

    def launch(self, image, name):
        self._record("launch", image, name)
        return name

    def stop(self, container):
        self._record("stop", container)

    def publish(self, container, alias):
        self._record("publish", container, alias)

    def delete(self, container, force=False):
        self._record("delete", container, force)

    def execute(self, container, command):
        self._record("execute", container, command)

    def export_image(self, alias, dest_dir):
        self._record("export_image", alias, dest_dir)
        write_tarball(os.path.join(dest_dir, f"{FINGERPRINT}.tar.gz"), self.entries)

    def import_image(self, path, alias):
        self._record("import_image", path, alias)
        self.imported[alias] = read_tarball(path)

    def delete_image(self, fingerprint):
        self._record("delete_image", fingerprint)

    def status(self, container):
        self._record("status", container)
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


@pytest.fixture
def fake_manager():
    return FakeContainerManager()


@pytest.fixture
def helpers():
    """Tarball and status helpers for tests."""
    class Helpers:
        FINGERPRINT = FINGERPRINT
        DEFAULT_METADATA = DEFAULT_METADATA
        FakeContainerManager = FakeContainerManager
        write_tarball = staticmethod(write_tarball)
        read_tarball = staticmethod(read_tarball)
        image_entries = staticmethod(image_entries)
        network_status = staticmethod(network_status)
    return Helpers
