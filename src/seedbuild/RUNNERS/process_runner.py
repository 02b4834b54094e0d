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
Synchronous execution of external commands.
"""
import logging
import subprocess
from typing import List, Optional

from ..errors import CommandError

logger = logging.getLogger(__name__)


class ProcessRunner:
    """
    Runs external commands to completion, one at a time.
    """
    def __init__(self, cwd: Optional[str] = None):
        """
        Initializes the process runner.

        Args:
            cwd (Optional[str]): Directory to run commands in. Defaults to the current one.
        """
        self.cwd = cwd

    def run(self, command: List[str], capture_output: bool = False) -> str:
        """
        Runs a command and waits for it to exit.

        Without capture_output the command writes straight to this process's
        stdout/stderr, so long-running steps (package installs) stay visible.

        Args:
            command (List[str]): Command and arguments to execute.
            capture_output (bool): Collect stdout/stderr instead of passing them through.

        Returns:
            str: Captured stdout, or an empty string when not capturing.

        Raises:
            CommandError: If the command cannot be started or exits non-zero.
        """
        logger.info(f"Running command: {' '.join(command)}")
        pipe = subprocess.PIPE if capture_output else None
        try:
            result = subprocess.run(
                command,
                cwd=self.cwd,
                stdout=pipe,
                stderr=pipe,
                text=True,
                # Avoid shell=True for security reasons (CWE-78)
                shell=False,
            )
        except OSError as e:
            raise CommandError(command, message=f"failed to start {command[0]}: {e}") from e

        if result.returncode != 0:
            raise CommandError(command, result.returncode, result.stderr or "")
        if result.stderr:
            logger.debug(result.stderr.strip())
        return result.stdout or ""
