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
Resolution of dotted paths such as ``labels.com.example.vhost`` or
``addresses.0.port`` against container records, mappings and sequences.

A path that cannot be followed yields ``None``. Callers treat that as
"exclude" or "empty", never as an error.
"""
import logging
import weakref
from collections.abc import Mapping, Sequence
from typing import Any, List, Optional

from pydantic import BaseModel

from ..MODELS.container import Record

logger = logging.getLogger(__name__)

_NO_VALUE = object()


def _parse_index(component: str) -> Optional[int]:
    """Parses a non-negative decimal sequence index."""
    if not (component.isascii() and component.isdigit()):
        logger.debug("non-negative decimal number required for index, got %r", component)
        return None
    return int(component)


def _get_record_field(value: Any, name: str) -> Any:
    if isinstance(value, Record):
        return value.get_field(name, _NO_VALUE)
    if name in type(value).model_fields:
        return getattr(value, name)
    return _NO_VALUE


def _get_mapping_key(value: Mapping, path: List[str]):
    """
    Looks up the first component, then progressively longer dotted joins of
    the leading components, so keys containing dots can be addressed.

    :return: ``(found value, remaining path)``, the value being _NO_VALUE on a miss.
    """
    if path[0] in value:
        return value[path[0]], path[1:]

    for i in range(2, len(path) + 1):
        joined = ".".join(path[:i])
        if joined in value:
            return value[joined], path[i:]

    return _NO_VALUE, []


def _deep_get(value: Any, path: List[str]) -> Any:
    if value is None:
        return None
    if not path:
        return value

    if isinstance(value, weakref.ref):
        value = value()
        if isinstance(value, weakref.ref):
            logger.debug("unable to descend into a reference of a reference")
            return None
        if value is None:
            return None

    if isinstance(value, BaseModel):
        found = _get_record_field(value, path[0])
        if found is _NO_VALUE:
            return None
        return _deep_get(found, path[1:])

    if isinstance(value, Mapping):
        found, rest = _get_mapping_key(value, path)
        if found is _NO_VALUE:
            return None
        return _deep_get(found, rest)

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        index = _parse_index(path[0])
        if index is None:
            return None
        if index >= len(value):
            logger.debug("index %d out of bounds", index)
            return None
        return _deep_get(value[index], path[1:])

    logger.debug("unable to index by %s (value %r)", path[0], value)
    return None


def deep_get(item: Any, path: str) -> Any:
    """
    Returns the value at a dotted path, or None when any step cannot be
    resolved.

    Leading dots are ignored, so ``"ID"`` and ``"...ID"`` are the same path.
    An empty path returns ``item`` itself.

    :param item: Record, mapping, sequence or weak reference to one of those.
    :param path: Dotted path.
    :return: Resolved value or None.
    """
    parts = path.lstrip(".").split(".") if path else []
    if parts == [""]:
        parts = []
    return _deep_get(item, parts)
