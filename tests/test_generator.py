# Copyright 2025 Lars Marowsky-Brée <lars@marowsky-bree.eu>
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

"""Tests for pattern based and realistic value generation."""

import logging
import re

import pytest

from redaction_engine.generator import (
    PatternBasedGenerator,
    RealisticDataGenerator,
    UniqueValueIterator,
    estimate_cardinality,
    expand_placeholders,
)


def test_expand_placeholders() -> None:
    """Test that placeholders become alternations."""
    expanded = expand_placeholders("{users}-[0-9]")
    assert "{users}" not in expanded
    assert "alice" in expanded
    assert expanded.endswith("-[0-9]")


def test_emails_are_stable_and_distinct() -> None:
    """Test that the same original keeps its pseudonym and others differ."""
    generator = PatternBasedGenerator({"emails": "{emails}"})
    alice = generator.generate("emails", "alice@x.com")
    assert alice == generator.generate("emails", "alice@x.com")
    bob = generator.generate("emails", "bob@x.com")
    assert bob != alice
    assert re.fullmatch(r"[a-z]+\.[a-z]+@[a-z]+\.[a-z]+", alice)


def test_unknown_pattern() -> None:
    """Test that unknown names produce nothing."""
    generator = PatternBasedGenerator({})
    assert generator.generate("hosts", "db1") is None
    assert generator.generate_random("hosts") is None
    assert not generator.has_pattern("hosts")


def test_exhaustion_repeats_values(caplog: pytest.LogCaptureFixture) -> None:
    """Test that an exhausted template starts over with a warning."""
    generator = PatternBasedGenerator({"tiny": "(a|b)"})
    with caplog.at_level(logging.WARNING, logger="redaction_engine"):
        values = [generator.generate("tiny", original) for original in ("x", "y", "z")]
    assert values == ["a", "b", "a"]
    assert "exhausted" in caplog.text


def test_low_cardinality_warning(caplog: pytest.LogCaptureFixture) -> None:
    """Test that small templates are flagged at construction."""
    with caplog.at_level(logging.WARNING, logger="redaction_engine"):
        generator = PatternBasedGenerator({"tiny": "[ab]", "users": "user[0-9]{3}"})
    assert generator.low_cardinality == ["tiny"]
    assert generator.cardinality["tiny"] == 2
    assert "tiny" in caplog.text


def test_estimate_cardinality() -> None:
    """Test bounded counting of template values."""
    assert estimate_cardinality("[ab]{2}") == 4
    assert estimate_cardinality("[0-9]{5}") == 10000
    assert estimate_cardinality("(") == -1


def test_unique_value_iterator() -> None:
    """Test exhaustion and reset of the iterator."""
    iterator = UniqueValueIterator("[ab]")
    assert iterator.next_value() == "a"
    assert iterator.next_value() == "b"
    assert iterator.next_value() is None
    assert iterator.exhausted
    assert iterator.produced == 2

    iterator.reset()
    assert not iterator.exhausted
    assert iterator.next_value() == "a"


def test_generate_random() -> None:
    """Test random values from a template."""
    generator = PatternBasedGenerator({"code": "[A-Z]{3}-[0-9]{2}"})
    assert re.fullmatch(r"[A-Z]{3}-[0-9]{2}", generator.generate_random("code"))


def test_clear_caches() -> None:
    """Test that clearing a pattern's cache restarts its values."""
    generator = PatternBasedGenerator({"tiny": "[a-z]"})
    assert generator.generate("tiny", "x") == "a"
    assert generator.generate("tiny", "y") == "b"

    generator.clear_pattern_cache("tiny")
    assert generator.generate("tiny", "y") == "a"

    generator.clear_all_caches()
    assert generator.generate("tiny", "z") == "a"
    assert generator.pattern_names() == ["tiny"]


def test_realistic_values_are_deterministic() -> None:
    """Test that realistic values depend only on seed and original."""
    generator = RealisticDataGenerator(seed=7)
    assert generator.generate_email("a@b.com") == RealisticDataGenerator(seed=7).generate_email(
        "a@b.com"
    )
    assert "@" in generator.generate_email("a@b.com")
    assert generator.generate_hostname("db1.corp").endswith(".example")


def test_realistic_replacement_keeps_shape() -> None:
    """Test dispatch on the shape of the original value."""
    generator = RealisticDataGenerator()
    assert "@" in generator.generate_replacement("john@corp.com")
    assert generator.generate_replacement("10.1.2.3").startswith("10.")

    folder = generator.generate_replacement("/home/john/docs")
    assert folder.startswith("/home/")
    assert folder.endswith("/docs")
    assert folder != "/home/john/docs"
