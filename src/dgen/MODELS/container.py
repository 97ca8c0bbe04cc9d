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
Models for the template-facing view of running containers and the Docker daemon.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Record(BaseModel):
    """
    Base for every model templates can traverse with a dotted path.

    Only declared fields are reachable; methods and properties are not.
    """

    model_config = ConfigDict(frozen=True)

    def get_field(self, name: str, default: Any = None) -> Any:
        """
        Returns the value of a declared field, or ``default`` if there is none.

        :param name: Field name.
        :param default: Value returned for unknown names.
        """
        if name in type(self).model_fields:
            return getattr(self, name)
        return default


class Address(Record):
    """
    A port of a container, optionally published on the host.
    """
    ip: str = ""
    ip6_link_local: str = ""
    ip6_global: str = ""
    port: str = ""
    host_port: str = ""
    proto: str = ""
    host_ip: str = ""


class Network(Record):
    """
    A network the container is attached to.
    """
    ip: str = ""
    name: str = ""
    gateway: str = ""
    endpoint_id: str = ""
    ipv6_gateway: str = ""
    global_ipv6_address: str = ""
    mac_address: str = ""
    global_ipv6_prefix_len: int = 0
    ip_prefix_len: int = 0
    internal: bool = False


class Volume(Record):
    """Legacy volume mapping (pre mount API daemons)."""
    path: str = ""
    host_path: str = ""
    read_write: bool = False


class Mount(Record):
    """A mount point of the container."""
    name: str = ""
    source: str = ""
    destination: str = ""
    driver: str = ""
    mode: str = ""
    rw: bool = False


class Health(Record):
    status: str = ""


class State(Record):
    running: bool = False
    health: Health = Field(default_factory=Health)


class DockerImage(Record):
    """
    Image reference of a container, split into its parts.
    """
    registry: str = ""
    repository: str = ""
    tag: str = ""

    def __str__(self) -> str:
        ret = self.repository
        if self.registry:
            ret = f"{self.registry}/{self.repository}"
        if self.tag:
            ret = f"{ret}:{self.tag}"
        return ret


class SwarmNode(Record):
    """Placement of a container on a classic swarm node."""
    id: str = ""
    name: str = ""
    address: Address = Field(default_factory=Address)


class RuntimeContainer(Record):
    """
    Normalized snapshot of one container, rebuilt from inspection data on
    every generation and never mutated afterwards.

    Two records compare equal when they have the same id and image.
    """
    id: str
    created: Optional[datetime] = None
    name: str = ""
    hostname: str = ""
    network_mode: str = ""
    gateway: str = ""
    ip: str = ""
    ip6_link_local: str = ""
    ip6_global: str = ""
    state: State = Field(default_factory=State)
    addresses: List[Address] = []
    networks: List[Network] = []
    env: Dict[str, str] = {}
    labels: Dict[str, str] = {}
    volumes: Dict[str, Volume] = {}
    mounts: List[Mount] = []
    image: DockerImage = Field(default_factory=DockerImage)
    node: SwarmNode = Field(default_factory=SwarmNode)

    def published_addresses(self) -> List[Address]:
        """
        Returns the addresses that have a host port binding.
        """
        return [address for address in self.addresses if address.host_port]

    def equals(self, other: "RuntimeContainer") -> bool:
        return self.id == other.id and self.image == other.image

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RuntimeContainer):
            return NotImplemented
        return self.equals(other)

    def __hash__(self) -> int:
        return hash((self.id, str(self.image)))


class DockerInfo(Record):
    """
    Identity and version of the Docker daemon, exposed to templates as ``docker``.
    """
    name: str = ""
    num_containers: int = 0
    num_images: int = 0
    version: str = ""
    api_version: str = ""
    go_version: str = ""
    operating_system: str = ""
    architecture: str = ""
    current_container_id: str = ""
