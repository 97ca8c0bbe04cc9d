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
Integration tests for the command line interface.
"""
import pytest
from click.testing import CliRunner

from dgen import __version__
from dgen.CLI import main as cli_main
from dgen.CLI.main import cli


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return CliRunner()


@pytest.fixture
def docker(fake_client, monkeypatch):
    monkeypatch.setattr(cli_main, "DockerClient", lambda settings: fake_client)
    return fake_client


class TestOptions:
    """Tests for argument handling."""

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "--watch" in result.output
        assert "--notify-restart" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_template_required(self, runner, docker):
        result = runner.invoke(cli, [])
        assert result.exit_code == 2
        assert "template or --config" in result.output

    def test_invalid_wait(self, runner, docker, make_template):
        result = runner.invoke(cli, ["--wait", "soon", make_template("x")])
        assert result.exit_code == 2

    def test_invalid_notify_filter(self, runner, docker, make_template):
        result = runner.invoke(cli, ["--notify-filter", "label", make_template("x")])
        assert result.exit_code == 2


class TestRun:
    """Tests for complete one-shot runs."""

    def test_one_shot_to_file(self, runner, docker, make_template, tmp_path):
        docker.add_container("a" * 64, "web", env=["VIRTUAL_HOST=example.org"])
        template = make_template("{% for c in containers %}{{ c.env.VIRTUAL_HOST }}\n{% endfor %}")
        dest = tmp_path / "hosts"

        result = runner.invoke(cli, [template, str(dest)])

        assert result.exit_code == 0, result.output
        assert dest.read_text() == "example.org\n"

    def test_one_shot_to_stdout(self, runner, docker, make_template):
        docker.add_container("a" * 64, "web")
        result = runner.invoke(cli, [make_template("{{ containers | length }} running\n")])
        assert result.exit_code == 0
        assert "1 running" in result.output

    def test_config_file(self, runner, docker, make_template, tmp_path):
        docker.add_container("a" * 64, "web")
        dest = tmp_path / "names"
        config = tmp_path / "dgen.toml"
        config.write_text(
            "[[config]]\n"
            f'template = "{make_template("{% for c in containers %}{{ c.name }}{% endfor %}")}"\n'
            f'dest = "{dest}"\n'
        )

        result = runner.invoke(cli, ["--config", str(config)])

        assert result.exit_code == 0, result.output
        assert dest.read_text() == "web"

    def test_invalid_config_file(self, runner, docker, tmp_path):
        config = tmp_path / "dgen.toml"
        config.write_text("[[config]]\nbogus = 1\n")
        result = runner.invoke(cli, ["--config", str(config)])
        assert result.exit_code == 1

    def test_template_error_exits_with_failure(self, runner, docker, make_template, tmp_path):
        result = runner.invoke(cli, [make_template("{% for %}"), str(tmp_path / "out")])
        assert result.exit_code == 1
