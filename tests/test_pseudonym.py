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

"""Tests for pseudonymization."""

import hashlib
import re

from redaction_engine.models import PseudonymizationConfig, PseudonymizationScope
from redaction_engine.pseudonym import Pseudonymizer


def sha256_prefix(value: str, length: int = 8) -> str:
    return hashlib.sha256(value.encode()).hexdigest()[:length]


def test_disabled_returns_fallback() -> None:
    """Test that a disabled pseudonymizer returns the marker."""
    pseudonymizer = Pseudonymizer.disabled()
    assert not pseudonymizer.enabled
    assert pseudonymizer.pseudonymize("alice", "***") == "***"
    assert pseudonymizer.pseudonymize_port(8080) == 8080


def test_hash_mode() -> None:
    """Test stable hash pseudonyms in the default format."""
    pseudonymizer = Pseudonymizer(PseudonymizationConfig(enabled=True))
    alice = pseudonymizer.pseudonymize("alice", "***")
    assert alice == f"<redacted:{sha256_prefix('alice')}>"
    assert pseudonymizer.pseudonymize("alice", "***") == alice
    assert pseudonymizer.pseudonymize("bob", "***") != alice


def test_formats() -> None:
    """Test the hash and custom formats."""
    hashed = Pseudonymizer(PseudonymizationConfig(enabled=True, format="hash"))
    assert hashed.pseudonymize("alice", "***") == f"<hash:{sha256_prefix('alice')}>"

    custom = Pseudonymizer(
        PseudonymizationConfig(enabled=True, format="custom", custom_prefix="{", custom_suffix="}")
    )
    assert custom.pseudonymize("alice", "***") == f"{{{sha256_prefix('alice')}}}"


def test_hash_length_is_clamped() -> None:
    """Test that hash lengths stay between 6 and 32."""
    short = Pseudonymizer(PseudonymizationConfig(enabled=True, hash_length=2))
    assert short.pseudonymize("alice", "***") == f"<redacted:{sha256_prefix('alice', 6)}>"
    long = Pseudonymizer(PseudonymizationConfig(enabled=True, hash_length=100))
    assert long.pseudonymize("alice", "***") == f"<redacted:{sha256_prefix('alice', 32)}>"


def test_seed_changes_hashes() -> None:
    """Test that a seed produces different pseudonyms."""
    plain = Pseudonymizer(PseudonymizationConfig(enabled=True))
    seeded = Pseudonymizer(PseudonymizationConfig(enabled=True, seed=42))
    assert plain.pseudonymize("alice", "***") != seeded.pseudonymize("alice", "***")


def test_unknown_algorithm_falls_back() -> None:
    """Test that unknown hash algorithms fall back to sha256."""
    pseudonymizer = Pseudonymizer(PseudonymizationConfig(enabled=True, hash_algorithm="nope"))
    assert pseudonymizer.algorithm == "sha256"
    md5 = Pseudonymizer(PseudonymizationConfig(enabled=True, hash_algorithm="MD5"))
    assert md5.algorithm == "md5"


def test_counter_mode() -> None:
    """Test sequential pseudonyms."""
    pseudonymizer = Pseudonymizer(PseudonymizationConfig(enabled=True, mode="counter"))
    assert pseudonymizer.pseudonymize("alice", "***") == "<redacted:1>"
    assert pseudonymizer.pseudonymize("bob", "***") == "<redacted:2>"
    assert pseudonymizer.pseudonymize("alice", "***") == "<redacted:1>"

    pseudonymizer.clear_cache()
    assert pseudonymizer.pseudonymize("bob", "***") == "<redacted:1>"


def test_realistic_mode() -> None:
    """Test realistic looking pseudonyms."""
    pseudonymizer = Pseudonymizer(PseudonymizationConfig(enabled=True, mode="realistic", seed=3))
    email = pseudonymizer.pseudonymize("john@corp.com", "***")
    assert re.fullmatch(r"[a-z]+\.[a-z]+@[a-z.]+", email)
    assert pseudonymizer.pseudonymize("john@corp.com", "***") == email


def test_custom_replacements_win() -> None:
    """Test that explicit replacements are used first."""
    pseudonymizer = Pseudonymizer(
        PseudonymizationConfig(enabled=True, replacements={"alice": "ALICE"})
    )
    assert pseudonymizer.pseudonymize("alice", "***") == "ALICE"
    assert pseudonymizer.pseudonymize_with_pattern("alice", "emails", "***") == "ALICE"


def test_pattern_generators() -> None:
    """Test pseudonyms drawn from a category template."""
    pseudonymizer = Pseudonymizer(
        PseudonymizationConfig(enabled=True, pattern_generators={"hosts": "host[0-9]{2}"})
    )
    assert pseudonymizer.pseudonymize_with_pattern("db.corp", "hosts", "***") == "host00"
    assert pseudonymizer.pseudonymize_with_pattern("web.corp", "hosts", "***") == "host01"
    assert pseudonymizer.pseudonymize_with_pattern("db.corp", "hosts", "***") == "host00"
    assert pseudonymizer.pseudonymize_with_pattern("x", "other", "***").startswith("<redacted:")


def test_ports() -> None:
    """Test port numbers mapped from 1000 upwards."""
    pseudonymizer = Pseudonymizer(PseudonymizationConfig(enabled=True))
    assert pseudonymizer.pseudonymize_port(8080) == 1000
    assert pseudonymizer.pseudonymize_port(443) == 1001
    assert pseudonymizer.pseudonymize_port(8080) == 1000

    no_ports = Pseudonymizer(
        PseudonymizationConfig(enabled=True, scope=PseudonymizationScope(ports=False))
    )
    assert no_ports.pseudonymize_port(8080) == 8080
