"""
Models for the container status records returned by `lxc list --format=json`.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, field_validator

LOOPBACK_NAMES = ("lo",)


class NetworkAddress(BaseModel):
    """
    An address assigned to a container network interface.
    """
    family: str = ""
    address: str = ""
    scope: str = ""

    @property
    def is_global_ipv4(self) -> bool:
        return self.family == "inet" and self.scope == "global"


class NetworkInterface(BaseModel):
    """
    Runtime state of a single container network interface.
    """
    type: str = ""
    state: str = ""
    addresses: List[NetworkAddress] = []

    @field_validator("addresses", mode="before")
    @classmethod
    def _null_addresses(cls, value):
        return [] if value is None else value


class ContainerState(BaseModel):
    status: str = ""
    network: Dict[str, NetworkInterface] = {}

    @field_validator("network", mode="before")
    @classmethod
    def _null_network(cls, value):
        return {} if value is None else value


class ContainerStatus(BaseModel):
    """
    Status of a container as reported by the container service.
    Extra fields in the record are ignored.
    """
    name: str = ""
    status: str = ""
    state: Optional[ContainerState] = None

    @property
    def is_running(self) -> bool:
        return self.state is not None and self.state.status.lower() == "running"

    def global_ipv4_interface(self) -> Optional[str]:
        """
        Finds an interface that is up and has a global IPv4 address.

        :return: The interface name, or None if the container is not running
                 or no interface qualifies yet.
        """
        if not self.is_running:
            return None
        for name, interface in self.state.network.items():
            if name in LOOPBACK_NAMES or interface.type == "loopback":
                continue
            if interface.state != "up" or not interface.addresses:
                continue
            if any(addr.is_global_ipv4 for addr in interface.addresses):
                return name
        return None
