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
Exceptions raised while building an image.
"""
from typing import List, Optional


class SeedBuildError(Exception):
    """Base class for every build failure."""


class PreconditionError(SeedBuildError, ValueError):
    """An input did not have the shape the build expects."""


class UnsupportedCompressionError(PreconditionError):
    """The exported image tarball uses a compression scheme we cannot read."""


class MetadataSchemaError(PreconditionError):
    """The image metadata document does not match the expected schema."""


class TemplateSyntaxCheckError(PreconditionError):
    """A seed template body is not well-formed template text."""


class CommandError(SeedBuildError, RuntimeError):
    """
    An external command could not be started or exited non-zero.
    """

    def __init__(
        self,
        command: List[str],
        returncode: Optional[int] = None,
        stderr: str = "",
        message: Optional[str] = None,
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        if message is None:
            message = f"command {' '.join(self.command)!r} failed"
            if returncode is not None:
                message += f" with exit code {returncode}"
            if stderr:
                message += f": {stderr.strip()}"
        super().__init__(message)


class ContainerNotFoundError(CommandError):
    """A status query returned no record for the container."""


class NetworkTimeoutError(SeedBuildError, TimeoutError):
    """The container did not get a global IPv4 address before the deadline."""
