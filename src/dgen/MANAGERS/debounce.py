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
Collapses bursts of events into single regeneration triggers.
"""
import logging
import queue
import threading
import time
from typing import Callable, Optional

from ..MODELS.config import Wait
from ..UTILS.channels import CLOSED, close_channel, new_channel

logger = logging.getLogger(__name__)

_NOTHING = object()


class DebounceCoordinator:
    """
    Trailing-edge debounce with a latency ceiling.

    Each event becomes the pending trigger and pushes the min deadline to
    ``wait.min`` from now. The first event of a burst also sets the max
    deadline, ``wait.max`` from then, which later events never move. When
    either deadline passes, the latest pending event is emitted and the
    coordinator is idle again.

    Without a wait window (or with ``wait.min == 0``) events pass through
    untouched and no thread is started.
    """

    def __init__(self, source: queue.Queue, wait: Optional[Wait], name: str = "",
                 clock: Callable[[], float] = time.monotonic):
        """
        Initializes the coordinator.

        :param source: Raw event channel.
        :param wait: Debounce window.
        :param name: Pipeline name, used in logs and the thread name.
        :param clock: Monotonic time source.
        """
        self.source = source
        self.wait = wait
        self.name = name
        self.clock = clock
        self.output = new_channel() if self.enabled else source
        self.thread = None

    @property
    def enabled(self) -> bool:
        return self.wait is not None and self.wait.enabled

    def start(self) -> queue.Queue:
        """
        Starts debouncing.

        :return: The trigger channel; the source itself when disabled.
        """
        if self.enabled:
            self.thread = threading.Thread(target=self._run, name=f"debounce {self.name}", daemon=True)
            self.thread.start()
        return self.output

    def join(self, timeout: Optional[float] = None):
        if self.thread:
            self.thread.join(timeout)

    def _run(self):
        pending = _NOTHING
        min_deadline = max_deadline = 0.0

        while True:
            timeout = None
            if pending is not _NOTHING:
                timeout = max(0.0, min(min_deadline, max_deadline) - self.clock())

            try:
                item = self.source.get(timeout=timeout)
            except queue.Empty:
                item = _NOTHING

            if item is CLOSED:
                close_channel(self.output)
                return

            now = self.clock()
            if item is not _NOTHING:
                if pending is _NOTHING:
                    max_deadline = now + self.wait.max
                pending = item
                min_deadline = now + self.wait.min

            if pending is not _NOTHING and now >= min(min_deadline, max_deadline):
                timer = "min" if now >= min_deadline else "max"
                logger.debug("Debounce %s timer fired for %s", timer, self.name)
                self.output.put(pending)
                pending = _NOTHING
