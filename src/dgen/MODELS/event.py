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
Model for Docker daemon events.
"""
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict


class Event(BaseModel):
    """
    A container or network event received from the daemon's event stream.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    action: str
    actor_id: str = ""
    attributes: Dict[str, str] = {}

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Event":
        """
        Builds an event from a decoded event stream entry.

        Events from old daemons carry no ``Type`` and only a ``status``; those
        are always container events. Actions with a detail suffix, such as
        ``health_status: healthy``, keep only the part before the colon.

        :param raw: Decoded JSON object from the event stream.
        :return: Normalized event.
        """
        actor = raw.get("Actor") or {}
        action = raw.get("Action") or raw.get("status") or ""
        return cls(
            type=raw.get("Type") or "container",
            action=action.split(":", 1)[0].strip(),
            actor_id=actor.get("ID") or raw.get("id") or "",
            attributes={k: str(v) for k, v in (actor.get("Attributes") or {}).items()},
        )

    @property
    def short_id(self) -> str:
        return self.actor_id[:12]
