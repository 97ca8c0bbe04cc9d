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
Stress tests checking that repeated generation and reconnection do not leak
file descriptors or threads.
"""
import threading

import psutil
import pytest

from conftest import wait_until
from dgen.MANAGERS.event_watcher import EventWatcher
from dgen.MODELS.config import PipelineConfig
from dgen.MODELS.container import RuntimeContainer
from dgen.TEMPLATES.file_writer import TemplateFileWriter, write_if_changed

ITERATIONS = 200
FD_SLACK = 5


@pytest.fixture
def process():
    return psutil.Process()


class TestFileDescriptors:
    """Tests for descriptor stability under load."""

    def test_repeated_writes(self, process, tmp_path):
        dest = str(tmp_path / "out.conf")
        before = process.num_fds()
        for i in range(ITERATIONS):
            write_if_changed(dest, f"generation {i}\n".encode())
        assert process.num_fds() <= before + FD_SLACK
        assert [p.name for p in tmp_path.iterdir()] == ["out.conf"]

    def test_repeated_generation(self, process, tmp_path, make_template):
        config = PipelineConfig(
            templates=[make_template("{% for c in containers %}{{ c.id }}\n{% endfor %}")],
            dest=str(tmp_path / "out.conf"),
        )
        writer = TemplateFileWriter()
        before = process.num_fds()
        for i in range(ITERATIONS):
            writer.generate_file(config, [RuntimeContainer(id=str(n)) for n in range(i % 10)])
        assert process.num_fds() <= before + FD_SLACK

    def test_watcher_start_stop_cycles(self, process, fake_client):
        before_fds = process.num_fds()
        before_threads = threading.active_count()

        for cycle in range(50):
            watcher = EventWatcher(lambda: fake_client, backoff=0.01)
            channel = watcher.subscribe()
            watcher.start()
            fake_client.wait_for_streams(cycle + 1)
            fake_client.emit("start", "a" * 64)
            assert channel.get(timeout=2).action == "start"
            watcher.stop()
            watcher.join(2)
            assert not watcher.is_alive()

        wait_until(lambda: threading.active_count() <= before_threads + 1)
        assert process.num_fds() <= before_fds + FD_SLACK
