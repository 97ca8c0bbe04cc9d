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
Parsers for ``KEY=VALUE`` environment lists as reported by the Docker API.
"""
from typing import Dict, Iterable, Optional


class EnvParser:
    """
    Parser for container environment lists.
    """

    @staticmethod
    def parse_list(entries: Optional[Iterable[str]]) -> Dict[str, str]:
        """
        Splits ``KEY``, ``KEY=`` and ``KEY=VALUE`` entries at their first ``=``.

        Entries without ``=`` map to an empty string. When a key repeats, the
        later entry wins.

        Args:
            entries (Iterable[str]): Entries such as ``["A=1", "B=x=y"]``.

        Returns:
            Dict[str, str]: Dictionary of environment variables.
        """
        env = {}
        for entry in entries or []:
            key, _, value = entry.partition("=")
            env[key] = value
        return env
