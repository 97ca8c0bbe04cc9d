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
Unit tests for dotted path resolution.
"""
import weakref

from pydantic import BaseModel

from dgen.MODELS.container import Address, RuntimeContainer
from dgen.UTILS.deep_get import deep_get


class Plain(BaseModel):
    ID: str = ""


class Labels(dict):
    """Weak-referenceable mapping."""


class TestDeepGet:
    """Tests for deep_get."""

    def test_record_field_with_leading_dots(self):
        item = Plain(ID="x")
        assert deep_get(item, "ID") == "x"
        assert deep_get(item, "...ID") == "x"

    def test_nested_mapping(self):
        assert deep_get({"a": {"b": "c"}}, "a.b") == "c"

    def test_sequence_index(self):
        assert deep_get(["a", "b"], "1") == "b"

    def test_sequence_out_of_bounds_or_negative(self):
        assert deep_get(["a", "b"], "5") is None
        assert deep_get(["a", "b"], "-1") is None

    def test_non_ascii_digits_are_not_an_index(self):
        assert deep_get(["a", "b"], "١") is None

    def test_empty_path_returns_input(self):
        item = {"a": 1}
        assert deep_get(item, "") is item

    def test_mapping_key_with_dots(self):
        labels = {"com.example.vhost": "example.org"}
        assert deep_get({"labels": labels}, "labels.com.example.vhost") == "example.org"

    def test_direct_key_preferred_over_joined(self):
        data = {"a": {"b": 1}, "a.b": 2}
        assert deep_get(data, "a.b") == 1

    def test_missing_key(self):
        assert deep_get({"a": 1}, "b") is None
        assert deep_get({"a": 1}, "a.b") is None

    def test_none_input(self):
        assert deep_get(None, "a") is None

    def test_container_record(self):
        container = RuntimeContainer(
            id="abc",
            labels={"com.example.port": "8080"},
            addresses=[Address(port="80", proto="tcp")],
        )
        assert deep_get(container, "id") == "abc"
        assert deep_get(container, "labels.com.example.port") == "8080"
        assert deep_get(container, "addresses.0.port") == "80"
        assert deep_get(container, "image.repository") == ""
        assert deep_get(container, "state.running") is False

    def test_methods_are_not_fields(self):
        container = RuntimeContainer(id="abc")
        assert deep_get(container, "published_addresses") is None
        assert deep_get(container, "model_fields") is None

    def test_weak_reference_is_dereferenced_once(self):
        labels = Labels({"com.example.vhost": "example.org"})
        assert deep_get(weakref.ref(labels), "com.example.vhost") == "example.org"

        container = RuntimeContainer(id="abc")
        assert deep_get(weakref.ref(container), "id") == "abc"

    def test_dead_reference(self):
        labels = Labels(a="b")
        ref = weakref.ref(labels)
        del labels
        assert deep_get(ref, "a") is None

    def test_reference_to_reference_yields_nothing(self):
        labels = Labels(a="b")

        class RefToRef(weakref.ref):
            def __call__(self):
                return weakref.ref(labels)

        assert deep_get(RefToRef(labels), "a") is None
