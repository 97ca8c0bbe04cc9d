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
Shared fixtures: an in-memory stand-in for the Docker daemon.
"""
import queue
import threading
import time

import pytest
from docker.errors import DockerException


class FakeEventStream:
    """Event stream fed by the test; iteration blocks until an event or close."""

    def __init__(self):
        self._events = queue.Queue()
        self.closed = False

    def push(self, raw):
        self._events.put(raw)

    def end(self):
        """Simulates the daemon dropping the connection."""
        self._events.put(None)

    def __iter__(self):
        return self

    def __next__(self):
        item = self._events.get()
        if item is None or self.closed:
            raise StopIteration
        return item

    def close(self):
        if not self.closed:
            self.closed = True
            self._events.put(None)


class FakeDockerClient:
    """
    Minimal runtime client holding containers as inspect documents.
    """

    def __init__(self):
        self.containers = {}
        self.networks = [{"Name": "bridge", "Internal": False}]
        self.info_data = {"Name": "docker-host", "Containers": 0, "Images": 3}
        self.version_data = {
            "Version": "24.0.7",
            "ApiVersion": "1.43",
            "GoVersion": "go1.20.10",
            "Os": "linux",
            "Arch": "amd64",
        }
        self.kills = []
        self.restarts = []
        self.list_calls = []
        self.streams = []
        self.failing_targets = set()
        self.failing_inspect = set()
        self.fail_list = False
        self.fail_events = False
        self.fail_ping = False
        self.closed = False
        self._lock = threading.Lock()

    def add_container(self, container_id, name, running=True, ports=None, exposed=None,
                      labels=None, env=None, image="nginx:latest", networks=None):
        """
        Registers a container.

        :param ports: Port map, e.g. ``{"80/tcp": [{"HostIp": "0.0.0.0", "HostPort": "8080"}]}``.
        :param exposed: Exposed ports, e.g. ``["80/tcp"]``.
        """
        doc = {
            "Id": container_id,
            "Created": "2024-01-02T03:04:05.123456789Z",
            "Name": "/" + name,
            "Config": {
                "Hostname": container_id[:12],
                "Image": image,
                "Env": env or [],
                "Labels": labels or {},
                "ExposedPorts": {p: {} for p in (exposed or [])},
            },
            "HostConfig": {"NetworkMode": "bridge"},
            "State": {"Running": running},
            "NetworkSettings": {
                "IPAddress": "172.17.0.2",
                "Gateway": "172.17.0.1",
                "Ports": ports or {},
                "Networks": networks or {
                    "bridge": {"IPAddress": "172.17.0.2", "Gateway": "172.17.0.1"},
                },
            },
            "Mounts": [],
        }
        with self._lock:
            self.containers[container_id] = doc
        return doc

    def remove_container(self, container_id):
        with self._lock:
            self.containers.pop(container_id, None)

    def set_running(self, container_id, running):
        with self._lock:
            self.containers[container_id]["State"]["Running"] = running

    def _matches(self, doc, filters):
        labels = doc["Config"]["Labels"]
        for spec in filters.get("label", []):
            key, sep, value = spec.partition("=")
            if key not in labels or (sep and labels[key] != value):
                return False
        names = filters.get("name", [])
        if names and doc["Name"].lstrip("/") not in names:
            return False
        return True

    def list_containers(self, all=False, filters=None):
        self.list_calls.append((all, filters))
        if self.fail_list:
            raise DockerException("daemon unavailable")
        with self._lock:
            docs = list(self.containers.values())
        return [
            {"Id": doc["Id"], "Names": [doc["Name"]]}
            for doc in docs
            if (all or doc["State"]["Running"]) and self._matches(doc, filters or {})
        ]

    def inspect_container(self, container_id):
        if container_id in self.failing_inspect:
            raise DockerException(f"No such container: {container_id}")
        with self._lock:
            return self.containers[container_id]

    def list_networks(self):
        return list(self.networks)

    def events(self):
        if self.fail_events:
            raise DockerException("cannot connect")
        stream = FakeEventStream()
        self.streams.append(stream)
        return stream

    def wait_for_streams(self, count=1, timeout=5.0):
        deadline = time.monotonic() + timeout
        while len(self.streams) < count:
            if time.monotonic() > deadline:
                raise AssertionError(f"no event stream after {timeout}s")
            time.sleep(0.01)
        return self.streams[count - 1]

    def emit(self, action, container_id, event_type="container"):
        """Pushes an event onto the latest stream."""
        stream = self.wait_for_streams(max(1, len(self.streams)))
        stream.push({
            "Type": event_type,
            "Action": action,
            "Actor": {"ID": container_id, "Attributes": {}},
            "time": int(time.time()),
        })

    def kill(self, container_id, signal):
        if container_id in self.failing_targets:
            raise DockerException(f"No such container: {container_id}")
        self.kills.append((container_id, signal))

    def restart(self, container_id, timeout=10):
        if container_id in self.failing_targets:
            raise DockerException(f"No such container: {container_id}")
        self.restarts.append((container_id, timeout))

    def version(self):
        return dict(self.version_data)

    def info(self):
        return dict(self.info_data, Containers=len(self.containers))

    def ping(self):
        if self.fail_ping:
            raise DockerException("ping failed")
        return True

    def close(self):
        self.closed = True


def wait_until(predicate, timeout=5.0, interval=0.01):
    """Polls ``predicate`` until it is truthy; fails the test on timeout."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(interval)


@pytest.fixture
def fake_client():
    return FakeDockerClient()


@pytest.fixture
def make_template(tmp_path):
    """Writes a template file and returns its path."""
    def _make(content, name="dgen.tmpl"):
        path = tmp_path / name
        path.write_text(content)
        return str(path)
    return _make
