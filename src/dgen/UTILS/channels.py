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
Queue helpers shared by the event watcher, the debounce coordinators and the
generator's pipeline consumers.
"""
import queue


class _Closed:
    """Marker put on a queue to tell its consumer no more items will follow."""

    def __repr__(self):
        return "CLOSED"


CLOSED = _Closed()

DEFAULT_CHANNEL_SIZE = 100


def new_channel(maxsize: int = DEFAULT_CHANNEL_SIZE) -> queue.Queue:
    """Creates a bounded channel."""
    return queue.Queue(maxsize=maxsize)


def close_channel(channel: queue.Queue) -> None:
    """
    Closes a channel by enqueueing the close marker without blocking.

    When the channel is full the oldest buffered items are dropped to make
    room, so a stalled consumer cannot hold up the producer.
    """
    while True:
        try:
            channel.put_nowait(CLOSED)
            return
        except queue.Full:
            pass
        try:
            channel.get_nowait()
        except queue.Empty:
            pass
