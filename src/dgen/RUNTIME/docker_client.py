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
Client for the Docker Engine API.

Wraps the docker SDK's low-level ``APIClient`` so the rest of dgen works with
the raw JSON documents the daemon returns and only depends on the handful of
calls listed here.
"""
import os
from typing import Any, Dict, Iterator, List, Optional, Tuple

import docker
from docker.constants import DEFAULT_DOCKER_API_VERSION
from docker.tls import TLSConfig

from ..MODELS.config import DEFAULT_ENDPOINT, GeneratorConfig
from ..UTILS.errors import ConfigError

DEFAULT_SOCKET = "/var/run/docker.sock"
RESTART_TIMEOUT = 10


def parse_host(addr: str) -> Tuple[str, str]:
    """
    Validates a daemon address and splits it into protocol and host.

    :param addr: Address such as ``unix:///var/run/docker.sock`` or ``tcp://10.0.0.1:2376``.
    :return: ``(proto, host)``.
    :raises ValueError: If the address is malformed.
    """
    addr = addr.strip()
    if addr == "tcp://":
        raise ValueError(f"invalid bind address format: {addr}")
    if addr.startswith("unix://"):
        return "unix", addr[len("unix://"):] or DEFAULT_SOCKET
    if addr.startswith("fd://"):
        return "fd", addr
    if addr == "":
        return "unix", DEFAULT_SOCKET

    if addr.startswith("tcp://"):
        addr = addr[len("tcp://"):]
    elif "://" in addr:
        raise ValueError(f"invalid bind address protocol: {addr}")

    if ":" not in addr:
        raise ValueError(f"invalid bind address format: {addr}")
    host_parts = addr.split(":")
    if len(host_parts) != 2:
        raise ValueError(f"invalid bind address format: {addr}")
    host = host_parts[0] or "127.0.0.1"
    port = host_parts[1].rstrip("/")
    if not port.isdigit() or int(port) == 0:
        raise ValueError(f"invalid bind address format: {addr}")
    return "tcp", f"{host}:{int(port)}"


def get_endpoint(endpoint: Optional[str] = None) -> str:
    """
    Resolves the daemon endpoint: explicit value, then ``DOCKER_HOST``, then
    the default unix socket.

    :raises ConfigError: If the resolved endpoint is malformed.
    """
    resolved = endpoint or os.environ.get("DOCKER_HOST") or DEFAULT_ENDPOINT
    try:
        parse_host(resolved)
    except ValueError as e:
        raise ConfigError(f"bad endpoint: {e}") from e
    return resolved


def _tls_config(settings: GeneratorConfig) -> Optional[TLSConfig]:
    files = [settings.tls_cert, settings.tls_ca_cert, settings.tls_key]
    if not settings.tls_verify and not any(f and os.path.exists(f) for f in files):
        return None

    if settings.tls_verify and not os.path.exists(settings.tls_ca_cert):
        raise ConfigError("TLS verification was requested, but CA cert does not exist")

    client_cert = None
    if os.path.exists(settings.tls_cert) and os.path.exists(settings.tls_key):
        client_cert = (settings.tls_cert, settings.tls_key)
    ca_cert = settings.tls_ca_cert if os.path.exists(settings.tls_ca_cert) else None
    return TLSConfig(client_cert=client_cert, ca_cert=ca_cert, verify=settings.tls_verify)


class DockerClient:
    """
    Container runtime client used by the generator, the event watcher and the
    action executor. Every call may raise ``docker.errors.DockerException`` or
    ``OSError``; callers treat both as transient.
    """

    def __init__(self, settings: Optional[GeneratorConfig] = None, timeout: int = 60):
        """
        Creates the client. No request is made to the daemon here.

        :param settings: Endpoint and TLS settings.
        :param timeout: Per-request timeout in seconds.
        """
        self.settings = settings or GeneratorConfig()
        self.endpoint = get_endpoint(self.settings.endpoint)

        tls = None
        if not self.endpoint.startswith("unix:"):
            tls = _tls_config(self.settings)

        self.api = docker.APIClient(
            base_url=self.endpoint,
            version=DEFAULT_DOCKER_API_VERSION,
            tls=tls or False,
            timeout=timeout,
        )

    def list_containers(self, all: bool = False, filters: Optional[Dict[str, List[str]]] = None) -> List[Dict[str, Any]]:
        return self.api.containers(all=all, filters=filters or None)

    def inspect_container(self, container_id: str) -> Dict[str, Any]:
        return self.api.inspect_container(container_id)

    def list_networks(self) -> List[Dict[str, Any]]:
        return self.api.networks()

    def events(self) -> Iterator[Dict[str, Any]]:
        """
        Subscribes to the daemon's event stream.

        :return: A stream of decoded events; call ``close()`` on it to
            unsubscribe from another thread.
        """
        return self.api.events(decode=True)

    def kill(self, container_id: str, signal: int) -> None:
        self.api.kill(container_id, signal=signal)

    def restart(self, container_id: str, timeout: int = RESTART_TIMEOUT) -> None:
        self.api.restart(container_id, timeout=timeout)

    def version(self) -> Dict[str, Any]:
        return self.api.version()

    def info(self) -> Dict[str, Any]:
        return self.api.info()

    def ping(self) -> bool:
        return self.api.ping()

    def close(self) -> None:
        self.api.close()
