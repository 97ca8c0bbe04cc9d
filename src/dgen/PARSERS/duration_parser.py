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
Parser for duration strings such as ``500ms``, ``2s`` or ``1m30s``.
"""
import re

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

# Longest units first so "ms" is not read as "m" followed by "s"
_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> float:
    """
    Parses a duration into seconds.

    :param text: Duration such as ``250ms`` or ``1h15m``. A bare ``0`` is accepted.
    :return: Duration in seconds.
    :raises ValueError: If the text is not a valid non-negative duration.
    """
    value = text.strip()
    if value in ("0", "+0"):
        return 0.0
    if value.startswith("+"):
        value = value[1:]
    if not value:
        raise ValueError(f"invalid duration: {text!r}")

    total = 0.0
    pos = 0
    for match in _COMPONENT.finditer(value):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()

    if pos != len(value):
        raise ValueError(f"invalid duration: {text!r}")
    return total
