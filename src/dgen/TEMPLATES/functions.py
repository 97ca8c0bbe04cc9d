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
Helper functions available to templates.

Every function is registered both as a Jinja2 global and as a filter, so
``where(containers, "state.running", true)`` and
``containers | where("state.running", true)`` are equivalent.

Keys are dotted paths resolved with :func:`dgen.UTILS.deep_get.deep_get`; an
unresolvable path counts as a missing value, not as an error.
"""
import hashlib
import json
import logging
import os
import re
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote_plus

import yaml
from pydantic import BaseModel

from ..MODELS.container import RuntimeContainer
from ..UTILS.deep_get import deep_get

logger = logging.getLogger(__name__)


def _entries(func_name: str, entries: Any) -> List[Any]:
    if isinstance(entries, Sequence) and not isinstance(entries, (str, bytes, bytearray)):
        return list(entries)
    raise TypeError(f"must pass an array or slice to '{func_name}'; received {entries!r}")


def _container(func_name: str, entry: Any) -> RuntimeContainer:
    if isinstance(entry, RuntimeContainer):
        return entry
    raise TypeError(f"must pass an array or slice of RuntimeContainer to '{func_name}'; received {entry!r}")


def _split(value: Any, sep: str) -> List[str]:
    return str(value).split(sep)


# Selection

def _generalized_where(func_name: str, entries: Any, key: str, test: Callable[[Any], bool]) -> List[Any]:
    return [entry for entry in _entries(func_name, entries) if test(deep_get(entry, key))]


def where(entries, key: str, cmp):
    """Keeps the entries whose value at ``key`` equals ``cmp``."""
    return _generalized_where("where", entries, key, lambda value: value == cmp)


def where_not(entries, key: str, cmp):
    """Keeps the entries whose value at ``key`` differs from ``cmp``."""
    return _generalized_where("where_not", entries, key, lambda value: value != cmp)


def where_exist(entries, key: str):
    return _generalized_where("where_exist", entries, key, lambda value: value is not None)


def where_not_exist(entries, key: str):
    return _generalized_where("where_not_exist", entries, key, lambda value: value is None)


def where_any(entries, key: str, sep: str, cmp: List[str]):
    """
    Keeps the entries whose value at ``key``, split on ``sep``, shares at
    least one item with ``cmp``.
    """
    return _generalized_where(
        "where_any", entries, key,
        lambda value: value is not None and len(intersect(cmp, _split(value, sep))) > 0,
    )


def where_all(entries, key: str, sep: str, cmp: List[str]):
    """
    Keeps the entries whose value at ``key``, split on ``sep``, contains every
    item of ``cmp``.
    """
    required = len(cmp)
    return _generalized_where(
        "where_all", entries, key,
        lambda value: value is not None and len(intersect(cmp, _split(value, sep))) == required,
    )


def _generalized_where_label(func_name: str, containers, label: str, test: Callable[[Optional[str]], bool]):
    selection = []
    for entry in _entries(func_name, containers):
        container = _container(func_name, entry)
        if test(container.labels.get(label)):
            selection.append(container)
    return selection


def where_label_exists(containers, label: str):
    return _generalized_where_label("where_label_exists", containers, label, lambda value: value is not None)


def where_label_does_not_exist(containers, label: str):
    return _generalized_where_label("where_label_does_not_exist", containers, label, lambda value: value is None)


def where_label_value_matches(containers, label: str, pattern: str):
    """Keeps the containers whose ``label`` matches the regular expression ``pattern``."""
    rx = re.compile(pattern)
    return _generalized_where_label(
        "where_label_value_matches", containers, label,
        lambda value: value is not None and rx.search(value) is not None,
    )


# Grouping

def _generalized_group_by(func_name: str, entries, get_value: Callable[[Any], Any],
                          add_entry: Callable[[Dict[str, List[Any]], Any, Any], None]) -> Dict[str, List[Any]]:
    groups: Dict[str, List[Any]] = {}
    for entry in _entries(func_name, entries):
        value = get_value(entry)
        if value is not None:
            add_entry(groups, value, entry)
    return groups


def _add_to_group(groups, value, entry):
    groups.setdefault(str(value), []).append(entry)


def group_by(entries, key: str):
    """
    Groups entries by their value at ``key``. Entries without a value are
    left out.
    """
    return _generalized_group_by("group_by", entries, lambda e: deep_get(e, key), _add_to_group)


def group_by_with_default(entries, key: str, default: str):
    """Like :func:`group_by`, but entries without a value go to ``default``."""
    return _generalized_group_by(
        "group_by_with_default", entries,
        lambda e: _coalesce_value(deep_get(e, key), default), _add_to_group,
    )


def group_by_keys(entries, key: str):
    return list(group_by(entries, key).keys())


def group_by_multi(entries, key: str, sep: str):
    """
    Groups entries under every item of their value at ``key`` split on
    ``sep``, so one entry can land in several groups.
    """
    def add_entry(groups, value, entry):
        for item in _split(value, sep):
            groups.setdefault(item, []).append(entry)

    return _generalized_group_by("group_by_multi", entries, lambda e: deep_get(e, key), add_entry)


def group_by_label(entries, label: str):
    return _generalized_group_by(
        "group_by_label", entries,
        lambda e: _container("group_by_label", e).labels.get(label), _add_to_group,
    )


def group_by_label_with_default(entries, label: str, default: str):
    return _generalized_group_by(
        "group_by_label_with_default", entries,
        lambda e: _container("group_by_label_with_default", e).labels.get(label, default), _add_to_group,
    )


def _coalesce_value(value, default):
    return default if value is None else value


# Sorting

def sort_strings_asc(values: List[str]) -> List[str]:
    return sorted(_entries("sort_strings_asc", values))


def sort_strings_desc(values: List[str]) -> List[str]:
    return sorted(_entries("sort_strings_desc", values), reverse=True)


def _field_as_string(item: Any, path: str) -> str:
    value = deep_get(item, path)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, datetime):
        return str(value)
    return ""


def sort_objects_by_keys_asc(objs, key: str):
    """
    Stable sort of records by the string form of their value at ``key``.

    Integers, strings, booleans and timestamps are compared as text; any
    other or missing value sorts as an empty string.
    """
    return sorted(_entries("sort_objects_by_keys_asc", objs), key=lambda o: _field_as_string(o, key))


def sort_objects_by_keys_desc(objs, key: str):
    return sorted(
        _entries("sort_objects_by_keys_desc", objs),
        key=lambda o: _field_as_string(o, key),
        reverse=True,
    )


# Collections and values

def intersect(l1, l2) -> List[Any]:
    """Items of ``l1`` that also appear in ``l2``, without duplicates."""
    wanted = set(l2)
    seen = []
    for value in l1:
        if value in wanted and value not in seen:
            seen.append(value)
    return seen


def keys(input):
    if input is None:
        return None
    if not isinstance(input, Mapping):
        raise TypeError(f"cannot call keys on a non-map value: {input!r}")
    return list(input.keys())


def contains(input, key) -> bool:
    """True if the mapping ``input`` has ``key``."""
    if isinstance(input, Mapping):
        return key in input
    return False


def coalesce(*values):
    for value in values:
        if value is not None:
            return value
    return None


def closest(values: List[str], input: str) -> str:
    """Returns the longest of ``values`` contained in ``input``."""
    best = ""
    for value in values:
        if value in input and len(value) > len(best):
            best = value
    return best


def dir_list(path: str) -> List[str]:
    try:
        return os.listdir(path)
    except OSError as e:
        logger.warning("Template error: %s", e)
        return []


def exists(path: str) -> bool:
    return os.path.exists(path)


def when(condition, true_value, false_value):
    return true_value if condition else false_value


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def to_json(value) -> str:
    return json.dumps(_plain(value), separators=(",", ":"))


def from_json(text: str):
    return json.loads(text)


def to_yaml(value) -> str:
    return yaml.safe_dump(_plain(value), default_flow_style=False)


def from_yaml(text: str):
    return yaml.safe_load(text)


def sha1(text: str) -> str:
    return hashlib.sha1(str(text).encode()).hexdigest()


def query_escape(text: str) -> str:
    return quote_plus(str(text))


def split(text: str, sep: str) -> List[str]:
    return text.split(sep)


def split_n(text: str, sep: str, n: int) -> List[str]:
    """
    Splits into at most ``n`` parts; ``n < 0`` splits on every separator and
    ``n == 0`` returns an empty list.
    """
    if n == 0:
        return []
    if n < 0:
        return text.split(sep)
    return text.split(sep, n - 1)


def replace(text: str, old: str, new: str, n: int = -1) -> str:
    return text.replace(old, new, n)


_TRUE_STRINGS = ("1", "t", "T", "TRUE", "true", "True")
_FALSE_STRINGS = ("0", "f", "F", "FALSE", "false", "False")


def parse_bool(text: str) -> bool:
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"invalid boolean: {text!r}")


def comment(delimiter: str, text: str) -> str:
    """Prefixes every line of ``text`` with ``delimiter``."""
    return delimiter + text.replace("\n", "\n" + delimiter)


TEMPLATE_FUNCTIONS: Dict[str, Callable] = {
    "where": where,
    "where_not": where_not,
    "where_exist": where_exist,
    "where_not_exist": where_not_exist,
    "where_any": where_any,
    "where_all": where_all,
    "where_label_exists": where_label_exists,
    "where_label_does_not_exist": where_label_does_not_exist,
    "where_label_value_matches": where_label_value_matches,
    "group_by": group_by,
    "group_by_with_default": group_by_with_default,
    "group_by_keys": group_by_keys,
    "group_by_multi": group_by_multi,
    "group_by_label": group_by_label,
    "group_by_label_with_default": group_by_label_with_default,
    "sort_strings_asc": sort_strings_asc,
    "sort_strings_desc": sort_strings_desc,
    "sort_objects_by_keys_asc": sort_objects_by_keys_asc,
    "sort_objects_by_keys_desc": sort_objects_by_keys_desc,
    "deep_get": deep_get,
    "intersect": intersect,
    "keys": keys,
    "contains": contains,
    "coalesce": coalesce,
    "closest": closest,
    "dir": dir_list,
    "exists": exists,
    "when": when,
    "to_json": to_json,
    "from_json": from_json,
    "to_yaml": to_yaml,
    "from_yaml": from_yaml,
    "sha1": sha1,
    "query_escape": query_escape,
    "split": split,
    "split_n": split_n,
    "replace": replace,
    "parse_bool": parse_bool,
    "comment": comment,
}
