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
Unit tests for daemon endpoint handling.
"""
import pytest

from dgen.MODELS.config import GeneratorConfig
from dgen.RUNTIME.docker_client import DockerClient, get_endpoint, parse_host
from dgen.UTILS.errors import ConfigError


class TestParseHost:
    """Tests for endpoint validation."""

    def test_unix(self):
        assert parse_host("unix:///var/run/docker.sock") == ("unix", "/var/run/docker.sock")
        assert parse_host("unix://") == ("unix", "/var/run/docker.sock")
        assert parse_host("") == ("unix", "/var/run/docker.sock")

    def test_tcp(self):
        assert parse_host("tcp://10.0.0.1:2376") == ("tcp", "10.0.0.1:2376")
        assert parse_host("tcp://:2375") == ("tcp", "127.0.0.1:2375")
        assert parse_host("10.0.0.1:2375") == ("tcp", "10.0.0.1:2375")

    def test_invalid(self):
        for addr in ("tcp://", "tcp://host", "tcp://host:abc", "tcp://host:0", "http://host:80", "a:b:c"):
            with pytest.raises(ValueError):
                parse_host(addr)


class TestEndpoint:
    """Tests for endpoint resolution."""

    def test_explicit_wins(self, monkeypatch):
        monkeypatch.setenv("DOCKER_HOST", "tcp://10.0.0.1:2375")
        assert get_endpoint("unix:///tmp/docker.sock") == "unix:///tmp/docker.sock"

    def test_docker_host(self, monkeypatch):
        monkeypatch.setenv("DOCKER_HOST", "tcp://10.0.0.1:2375")
        assert get_endpoint("") == "tcp://10.0.0.1:2375"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("DOCKER_HOST", raising=False)
        assert get_endpoint(None) == "unix:///var/run/docker.sock"

    def test_bad_endpoint(self):
        with pytest.raises(ConfigError, match="bad endpoint"):
            get_endpoint("tcp://")

    def test_client_construction_makes_no_request(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DOCKER_CERT_PATH", str(tmp_path))
        monkeypatch.delenv("DOCKER_TLS_VERIFY", raising=False)
        client = DockerClient(GeneratorConfig(endpoint="unix:///nonexistent/docker.sock"))
        assert client.endpoint == "unix:///nonexistent/docker.sock"
        client.close()

    def test_tls_verify_requires_ca(self, tmp_path):
        settings = GeneratorConfig(
            endpoint="tcp://10.0.0.1:2376",
            tls_ca_cert=str(tmp_path / "ca.pem"),
            tls_verify=True,
        )
        with pytest.raises(ConfigError):
            DockerClient(settings)
