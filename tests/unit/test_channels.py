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
Unit tests for channel helpers.
"""
from dgen.UTILS.channels import CLOSED, close_channel, new_channel


class TestCloseChannel:
    """Tests for close_channel."""

    def test_marker_follows_buffered_items(self):
        channel = new_channel(maxsize=3)
        channel.put("a")
        close_channel(channel)
        assert channel.get_nowait() == "a"
        assert channel.get_nowait() is CLOSED

    def test_full_channel_drops_oldest_item(self):
        channel = new_channel(maxsize=2)
        channel.put("a")
        channel.put("b")
        close_channel(channel)
        assert channel.get_nowait() == "b"
        assert channel.get_nowait() is CLOSED
        assert channel.empty()
