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
Builds a cloud-init capable image from a base image.
"""
import contextlib
import logging
import shutil
import tempfile
import time
from typing import Callable, Optional

from ..errors import SeedBuildError
from ..MANAGERS.container_manager import ContainerManager
from ..MANAGERS.network_waiter import NetworkWaiter
from ..MODELS.build_config import BuildConfig
from ..REGISTRY.template_registry import TemplateRegistry
from .archive_rewriter import ArchiveRewriter

logger = logging.getLogger(__name__)


class ImageBuilder:
    """
    Drives a build container from launch to published image, then hands the
    image to the ArchiveRewriter.

    Each step aborts the build on failure. The temporary workspace and the
    build container are cleaned up on every exit path unless `keep` is set.
    """
    def __init__(
        self,
        config: BuildConfig,
        manager: ContainerManager,
        registry: Optional[TemplateRegistry] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initializes the ImageBuilder.

        :param config: Build settings.
        :param manager: Container service to drive.
        :param registry: Seed templates to inject into the image.
        :param clock: Time source used to name the build container.
        :param sleep: Sleep function used while polling for network.
        """
        self.config = config
        self.manager = manager
        self.waiter = NetworkWaiter(
            manager,
            interval=config.poll_interval,
            timeout=config.poll_timeout,
            sleep=sleep,
        )
        self.rewriter = ArchiveRewriter(
            manager,
            registry=registry,
            compression_level=config.compression_level,
        )
        self.clock = clock
        # Build container still to be removed on exit.
        self._container: Optional[str] = None

    def container_name(self) -> str:
        return f"{self.config.container_prefix}-{int(self.clock())}"

    def customize(self, container: str) -> None:
        """
        Runs the customization commands inside the build container.
        """
        for command in self.config.customize_commands:
            self.manager.execute(container, command)

    def build(self) -> str:
        """
        Builds the image and imports it under the configured alias.

        :return: Path to the rewritten image tarball. It lives in the build
                 directory, so it only outlives the call when `keep` is set.
        """
        config = self.config
        with contextlib.ExitStack() as cleanup:
            workdir = tempfile.mkdtemp(prefix=f"{config.container_prefix}-")
            if config.keep:
                logger.info(f"Build directory: {workdir}")
            else:
                cleanup.callback(shutil.rmtree, workdir, ignore_errors=True)

            container = self.manager.launch(config.image, self.container_name())
            self._container = container
            if config.keep:
                logger.info(f"Build container: {container}")
            else:
                cleanup.callback(self._remove_container)

            self.waiter.wait(container)
            self.customize(container)
            self.manager.stop(container)
            self.manager.publish(container, config.alias)
            self.manager.delete(container)
            self._container = None

            return self.rewriter.rewrite(config.alias, workdir)

    def _remove_container(self) -> None:
        name = self._container
        if name is None:
            return
        try:
            self.manager.delete(name, force=True)
        except SeedBuildError as e:
            logger.warning(f"Deleting build container {name}: {e}")
