# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Container management boundary.

`ContainerManager` is the narrow set of operations the builders need from
the container service; `LxcContainerManager` implements it on top of the
`lxc` command line client.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from ..errors import CommandError, ContainerNotFoundError
from ..MODELS.container_status import ContainerStatus
from ..RUNNERS.process_runner import ProcessRunner

logger = logging.getLogger(__name__)

_STATUS_LIST = TypeAdapter(List[ContainerStatus])


class ContainerManager(ABC):
    """
    Operations consumed from the container-management service. Every call
    is synchronous and raises on failure.
    """

    @abstractmethod
    def launch(self, image: str, name: str) -> str:
        """Creates and starts a container from image, returning its name."""

    @abstractmethod
    def stop(self, container: str) -> None:
        """Stops a running container."""

    @abstractmethod
    def publish(self, container: str, alias: str) -> None:
        """Publishes a stopped container as a new image under alias."""

    @abstractmethod
    def delete(self, container: str, force: bool = False) -> None:
        """Deletes a container; force also deletes a running one."""

    @abstractmethod
    def execute(self, container: str, command: str) -> None:
        """Runs a shell command inside the container."""

    @abstractmethod
    def export_image(self, alias: str, dest_dir: str) -> None:
        """Exports the image to dest_dir."""

    @abstractmethod
    def import_image(self, path: str, alias: str) -> None:
        """Imports an image tarball under alias."""

    @abstractmethod
    def delete_image(self, fingerprint: str) -> None:
        """Deletes an image by fingerprint."""

    @abstractmethod
    def status(self, container: str) -> ContainerStatus:
        """Queries the current status of a container."""


class LxcContainerManager(ContainerManager):
    """
    ContainerManager backed by the `lxc` CLI talking to the local LXD daemon.
    """

    def __init__(self, runner: Optional[ProcessRunner] = None, lxc: str = "lxc"):
        """
        :param runner: Runner used to execute lxc commands.
        :param lxc: Name or path of the lxc executable.
        """
        self.runner = runner or ProcessRunner()
        self.lxc = lxc

    def _lxc(self, *args: str, capture_output: bool = False) -> str:
        return self.runner.run([self.lxc, *args], capture_output=capture_output)

    def launch(self, image: str, name: str) -> str:
        self._lxc("launch", image, name)
        return name

    def stop(self, container: str) -> None:
        self._lxc("stop", container)

    def publish(self, container: str, alias: str) -> None:
        self._lxc("publish", f"--alias={alias}", container)

    def delete(self, container: str, force: bool = False) -> None:
        if force:
            self._lxc("delete", "--force", container)
        else:
            self._lxc("delete", container)

    def execute(self, container: str, command: str) -> None:
        self._lxc("exec", container, "--", "/bin/sh", "-c", command)

    def export_image(self, alias: str, dest_dir: str) -> None:
        self._lxc("image", "export", alias, dest_dir)

    def import_image(self, path: str, alias: str) -> None:
        self._lxc("image", "import", f"--alias={alias}", path)

    def delete_image(self, fingerprint: str) -> None:
        self._lxc("image", "delete", fingerprint)

    def status(self, container: str) -> ContainerStatus:
        command = [self.lxc, "list", "--format=json", container]
        output = self._lxc("list", "--format=json", container, capture_output=True)
        try:
            statuses = _STATUS_LIST.validate_json(output)
        except ValidationError as e:
            raise CommandError(
                command, message=f"unexpected status output for {container}: {e}"
            ) from e

        if not statuses:
            raise ContainerNotFoundError(
                command, message=f"no status reported for container {container}"
            )
        # lxc list filters by prefix, so prefer the exact match.
        for status in statuses:
            if status.name == container:
                return status
        return statuses[0]
