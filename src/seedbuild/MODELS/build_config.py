"""
Build configuration, constructed once at startup and passed to the builders.
"""
from typing import List
from pydantic import BaseModel, Field

DEFAULT_IMAGE = "images:centos/7"
DEFAULT_ALIAS = "juju/centos7/amd64"
DEFAULT_CONTAINER_PREFIX = "juju-lxd-centos"

DEFAULT_CUSTOMIZE_COMMANDS = [
    "yum install -y openssh-server redhat-lsb-core cloud-init",
    # set_hostname/update_hostname fight with SELinux on the host.
    "sed -i -E 's/.*(set|update)_hostname.*/#\\0/' /etc/cloud/cloud.cfg",
]


class BuildConfig(BaseModel):
    """
    Settings for a single image build.
    """
    image: str = DEFAULT_IMAGE
    alias: str = DEFAULT_ALIAS
    keep: bool = False

    compression_level: int = Field(default=6, ge=0, le=9)

    # Network readiness polling
    poll_interval: float = Field(default=1.0, gt=0)
    poll_timeout: float = Field(default=60.0, gt=0)

    container_prefix: str = DEFAULT_CONTAINER_PREFIX
    customize_commands: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CUSTOMIZE_COMMANDS)
    )
