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
Waiting for a freshly launched container to get network connectivity.
"""
import logging
import time
from typing import Callable

from tenacity import RetryError, Retrying, retry_if_result, stop_before_delay, wait_fixed

from ..errors import NetworkTimeoutError
from .container_manager import ContainerManager

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_POLL_TIMEOUT = 60.0


class NetworkWaiter:
    """
    Polls container status until a non-loopback interface is up with a
    global IPv4 address.

    The deadline is measured once from the first poll. No poll is
    started when the sleep before it would run past the deadline, so the
    total wait stays within the timeout. A failing status query is not
    retried.
    """

    def __init__(
        self,
        manager: ContainerManager,
        interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_POLL_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        :param manager: Container service to query.
        :param interval: Seconds between status queries.
        :param timeout: Seconds before giving up.
        :param sleep: Sleep function used between polls.
        """
        self.manager = manager
        self.interval = interval
        self.timeout = timeout
        self.sleep = sleep

    def _has_network(self, container: str) -> bool:
        status = self.manager.status(container)
        interface = status.global_ipv4_interface()
        if interface is None:
            logger.debug(f"{container}: no global IPv4 address yet")
            return False
        logger.info(f"{container}: network is up on {interface}")
        return True

    def wait(self, container: str) -> None:
        """
        Blocks until the container has network connectivity.

        :param container: Name of the container.
        :raises NetworkTimeoutError: If the deadline passes first.
        """
        logger.info("Waiting for network connectivity")
        retrying = Retrying(
            stop=stop_before_delay(self.timeout),
            wait=wait_fixed(self.interval),
            retry=retry_if_result(lambda ready: not ready),
            sleep=self.sleep,
        )
        try:
            retrying(self._has_network, container)
        except RetryError as e:
            raise NetworkTimeoutError(
                f"timed out after {self.timeout:g}s waiting for network "
                f"connectivity in {container}"
            ) from e
