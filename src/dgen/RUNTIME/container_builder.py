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
Builds template-facing container records from Docker inspection data and keeps
the daemon identity shown to templates.
"""
import logging
import os
import re
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from docker.errors import DockerException

from ..MODELS.container import (
    Address,
    DockerInfo,
    Health,
    Mount,
    Network,
    RuntimeContainer,
    State,
    SwarmNode,
    Volume,
)
from ..PARSERS.env_parser import EnvParser
from ..REGISTRY.image_reference import ImageReference

logger = logging.getLogger(__name__)

CONTAINER_ID_FILES = ("/proc/1/cpuset", "/proc/self/cgroup", "/proc/self/mountinfo")

_SHORT_ID = re.compile(r"^[0-9A-Za-z]{12}$")
_FULL_ID = r"([0-9A-Za-z]{64})"
_MOUNTINFO_LINE = re.compile(r"^[0-9]+ [0-9]+ [0-9]+:[0-9]+ /")


def _match_container_id(pattern: str, line: str) -> str:
    # mountinfo lines carry many ids; only the one after "containers/" is ours
    if _MOUNTINFO_LINE.match(line):
        pattern = "containers/" + pattern
    match = re.search(pattern, line)
    return match.group(1) if match else ""


def _read_lines(paths: Sequence[str]) -> List[str]:
    lines = []
    for path in paths:
        try:
            with open(path, "r", errors="replace") as f:
                lines.extend(f.read().splitlines())
        except OSError:
            continue
    return lines


def get_current_container_id(paths: Sequence[str] = CONTAINER_ID_FILES) -> str:
    """
    Finds the id of the container dgen itself runs in, if any.

    A 64 character id starting with ``$HOSTNAME`` is preferred; otherwise the
    first 64 character id found is used.

    :param paths: Files to scan, /proc cgroup and mount tables by default.
    :return: The container id, or an empty string outside a container.
    """
    lines = _read_lines(paths)

    hostname = os.environ.get("HOSTNAME", "")
    if _SHORT_ID.match(hostname):
        pattern = f"({re.escape(hostname)}[0-9A-Za-z]{{52}})"
        for line in lines:
            container_id = _match_container_id(pattern, line)
            if len(container_id) == 64:
                return container_id

    for line in lines:
        container_id = _match_container_id(_FULL_ID, line)
        if len(container_id) == 64:
            return container_id

    return ""


class DaemonContext:
    """
    Latest known identity of the Docker daemon.

    Pipeline threads refresh it on every container fetch while templates read
    it, so access goes through a lock.
    """

    def __init__(self, container_id_files: Sequence[str] = CONTAINER_ID_FILES):
        self._lock = threading.Lock()
        self._version: Dict[str, Any] = {}
        self._info = DockerInfo()
        self._container_id_files = container_id_files

    def set_version(self, version: Dict[str, Any]) -> None:
        with self._lock:
            self._version = dict(version or {})

    def update(self, info: Dict[str, Any]) -> None:
        """
        Stores the daemon's ``/info`` payload merged with the version payload.

        :param info: Decoded ``/info`` response.
        """
        current_id = get_current_container_id(self._container_id_files)
        with self._lock:
            self._info = DockerInfo(
                name=info.get("Name") or "",
                num_containers=info.get("Containers") or 0,
                num_images=info.get("Images") or 0,
                version=self._version.get("Version") or "",
                api_version=self._version.get("ApiVersion") or "",
                go_version=self._version.get("GoVersion") or "",
                operating_system=self._version.get("Os") or "",
                architecture=self._version.get("Arch") or "",
                current_container_id=current_id,
            )

    @property
    def docker(self) -> DockerInfo:
        with self._lock:
            return self._info


def _parse_created(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # The daemon reports nanoseconds; datetime keeps microseconds
    value = re.sub(r"(\.\d{6})\d+", r"\1", value.replace("Z", "+00:00"))
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug("Unparseable container creation time: %s", value)
        return None


def _split_port(port: str):
    number, _, proto = port.partition("/")
    return number, proto or "tcp"


def get_container_addresses(container: Dict[str, Any]) -> List[Address]:
    """
    Lists the ports of a container.

    Each entry of the port map becomes an address; its first host binding,
    if any, makes it published. When the port map is empty (containers on
    internal networks), the exposed ports are listed unpublished.

    :param container: Decoded ``inspect`` response.
    :return: Addresses in port map order.
    """
    settings = container.get("NetworkSettings") or {}
    config = container.get("Config") or {}
    base = {
        "ip": settings.get("IPAddress") or "",
        "ip6_link_local": settings.get("LinkLocalIPv6Address") or "",
        "ip6_global": settings.get("GlobalIPv6Address") or "",
    }

    addresses = []
    for port, bindings in (settings.get("Ports") or {}).items():
        number, proto = _split_port(port)
        host_port = host_ip = ""
        if bindings:
            host_port = bindings[0].get("HostPort") or ""
            host_ip = bindings[0].get("HostIp") or ""
        addresses.append(Address(port=number, proto=proto, host_port=host_port, host_ip=host_ip, **base))

    if not addresses:
        for port in config.get("ExposedPorts") or {}:
            number, proto = _split_port(port)
            addresses.append(Address(port=number, proto=proto, **base))

    return addresses


class ContainerModelBuilder:
    """
    Turns Docker API documents into RuntimeContainer records.
    """

    def __init__(self, daemon: Optional[DaemonContext] = None):
        """
        Initializes the builder.

        :param daemon: Context refreshed with daemon info on every fetch.
        """
        self.daemon = daemon or DaemonContext()

    def build(self, container: Dict[str, Any], networks: Optional[Dict[str, Dict[str, Any]]] = None) -> RuntimeContainer:
        """
        Builds a record from one ``inspect`` response.

        :param container: Decoded ``inspect`` response.
        :param networks: Network list of the daemon keyed by name, used for
            attributes only the network knows (``internal``).
        :return: The container record.
        """
        networks = networks or {}
        config = container.get("Config") or {}
        host_config = container.get("HostConfig") or {}
        settings = container.get("NetworkSettings") or {}
        state = container.get("State") or {}
        health = state.get("Health") or {}

        container_networks = []
        for name, net in (settings.get("Networks") or {}).items():
            net = net or {}
            container_networks.append(Network(
                ip=net.get("IPAddress") or "",
                name=name,
                gateway=net.get("Gateway") or "",
                endpoint_id=net.get("EndpointID") or "",
                ipv6_gateway=net.get("IPv6Gateway") or "",
                global_ipv6_address=net.get("GlobalIPv6Address") or "",
                mac_address=net.get("MacAddress") or "",
                global_ipv6_prefix_len=net.get("GlobalIPv6PrefixLen") or 0,
                ip_prefix_len=net.get("IPPrefixLen") or 0,
                internal=bool((networks.get(name) or {}).get("Internal")),
            ))

        volumes_rw = container.get("VolumesRW") or {}
        volumes = {
            path: Volume(path=path, host_path=host_path or "", read_write=bool(volumes_rw.get(path)))
            for path, host_path in (container.get("Volumes") or {}).items()
        }

        mounts = [
            Mount(
                name=m.get("Name") or "",
                source=m.get("Source") or "",
                destination=m.get("Destination") or "",
                driver=m.get("Driver") or "",
                mode=m.get("Mode") or "",
                rw=bool(m.get("RW")),
            )
            for m in container.get("Mounts") or []
        ]

        node = SwarmNode()
        raw_node = container.get("Node")
        if raw_node:
            node = SwarmNode(
                id=raw_node.get("ID") or "",
                name=raw_node.get("Name") or "",
                address=Address(ip=raw_node.get("IP") or ""),
            )

        return RuntimeContainer(
            id=container.get("Id") or container.get("ID") or "",
            created=_parse_created(container.get("Created")),
            name=(container.get("Name") or "").lstrip("/"),
            hostname=config.get("Hostname") or "",
            network_mode=host_config.get("NetworkMode") or "",
            gateway=settings.get("Gateway") or "",
            ip=settings.get("IPAddress") or "",
            ip6_link_local=settings.get("LinkLocalIPv6Address") or "",
            ip6_global=settings.get("GlobalIPv6Address") or "",
            state=State(
                running=bool(state.get("Running")),
                health=Health(status=health.get("Status") or ""),
            ),
            addresses=get_container_addresses(container),
            networks=container_networks,
            env=EnvParser.parse_list(config.get("Env")),
            labels=dict(config.get("Labels") or {}),
            volumes=volumes,
            mounts=mounts,
            image=ImageReference.parse(config.get("Image") or "").to_model(),
            node=node,
        )

    def fetch_containers(self, client, all: bool = False, filters: Optional[Dict[str, List[str]]] = None) -> List[RuntimeContainer]:
        """
        Lists, inspects and builds every matching container.

        A failing ``/info`` call only leaves the daemon context stale, and a
        container that cannot be inspected is skipped; listing failures
        propagate.

        :param client: Runtime client.
        :param all: Include stopped containers in the listing.
        :param filters: Runtime list filters.
        :return: Container records in listing order.
        """
        try:
            self.daemon.update(client.info())
        except (DockerException, OSError) as e:
            logger.error("Error retrieving docker server info: %s", e)

        listed = client.list_containers(all=all, filters=filters)
        networks = {n.get("Name"): n for n in client.list_networks()}

        containers = []
        for entry in listed:
            container_id = entry.get("Id") or entry.get("ID")
            try:
                inspected = client.inspect_container(container_id)
            except (DockerException, OSError) as e:
                logger.error("Error inspecting container: %s: %s", container_id, e)
                continue
            containers.append(self.build(inspected, networks))
        return containers
