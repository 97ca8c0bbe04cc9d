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
Unit tests for post-generation actions.
"""
import logging
import signal

from dgen.MODELS.config import RESTART_SIGNAL, PipelineConfig
from dgen.RUNNERS.action_executor import ActionExecutor


def pipeline(**kwargs):
    return PipelineConfig(templates=["dgen.tmpl"], dest="/tmp/out", **kwargs)


class TestNotifyCmd:
    """Tests for the notify command."""

    def test_no_command(self, fake_client):
        assert not ActionExecutor(fake_client).run_notify_cmd(pipeline())

    def test_successful_command(self, fake_client, tmp_path):
        marker = tmp_path / "ran"
        config = pipeline(notify_cmd=f"touch {marker}")
        assert ActionExecutor(fake_client).run_notify_cmd(config)
        assert marker.exists()

    def test_failing_command_is_logged(self, fake_client, caplog):
        config = pipeline(notify_cmd="exit 3")
        with caplog.at_level(logging.ERROR):
            assert not ActionExecutor(fake_client).run_notify_cmd(config)
        assert "exit status 3" in caplog.text

    def test_output_is_logged_when_requested(self, fake_client, caplog):
        config = pipeline(notify_cmd="echo reloaded; echo warning >&2", notify_output=True)
        with caplog.at_level(logging.INFO):
            ActionExecutor(fake_client).run_notify_cmd(config)
        assert "reloaded" in caplog.text
        assert "warning" in caplog.text

    def test_output_is_hidden_by_default(self, fake_client, caplog):
        config = pipeline(notify_cmd="echo reloaded")
        with caplog.at_level(logging.INFO):
            ActionExecutor(fake_client).run_notify_cmd(config)
        assert "]: reloaded" not in caplog.text


    def test_undecodable_output_is_logged(self, fake_client, caplog):
        config = pipeline(notify_cmd="printf '\\377\\376\\n'", notify_output=True)
        with caplog.at_level(logging.INFO):
            assert ActionExecutor(fake_client).run_notify_cmd(config)
        assert "\ufffd" in caplog.text


class TestSignals:
    """Tests for signalling containers."""

    def test_named_containers(self, fake_client):
        config = pipeline(notify_containers={"nginx": "SIGHUP", "web": "restart"})
        results = ActionExecutor(fake_client).send_signal_to_containers(config)

        assert results == {"nginx": True, "web": True}
        assert fake_client.kills == [("nginx", int(signal.SIGHUP))]
        assert fake_client.restarts == [("web", 10)]

    def test_failure_does_not_stop_other_targets(self, fake_client):
        fake_client.failing_targets.add("gone")
        config = pipeline(notify_containers={"gone": 1, "nginx": 1})
        results = ActionExecutor(fake_client).send_signal_to_containers(config)

        assert results == {"gone": False, "nginx": True}
        assert fake_client.kills == [("nginx", 1)]

    def test_filtered_containers(self, fake_client):
        fake_client.add_container("a" * 64, "proxy", labels={"com.example.reload": "true"})
        fake_client.add_container("b" * 64, "app")
        fake_client.add_container("c" * 64, "stopped-proxy", running=False, labels={"com.example.reload": "true"})

        config = pipeline(
            notify_containers_filter={"label": "com.example.reload"},
            notify_containers_signal=RESTART_SIGNAL,
        )
        signalled = ActionExecutor(fake_client).send_signal_to_filtered_containers(config)

        assert signalled == ["a" * 64]
        assert fake_client.restarts == [("a" * 64, 10)]

    def test_filter_listing_failure(self, fake_client):
        fake_client.fail_list = True
        config = pipeline(notify_containers_filter={"label": "x"})
        assert ActionExecutor(fake_client).send_signal_to_filtered_containers(config) == []

    def test_run_executes_every_action(self, fake_client, tmp_path):
        marker = tmp_path / "ran"
        fake_client.add_container("a" * 64, "proxy", labels={"reload": "1"})
        fake_client.failing_targets.add("missing")
        config = pipeline(
            notify_cmd=f"touch {marker}",
            notify_containers={"missing": 1},
            notify_containers_filter={"label": "reload=1"},
        )
        ActionExecutor(fake_client).run(config)

        assert marker.exists()
        assert fake_client.kills == [("a" * 64, int(signal.SIGHUP))]
