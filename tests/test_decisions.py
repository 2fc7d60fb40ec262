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

"""Tests for keep/redact/replace decisions."""

from pathlib import Path

import yaml

from redaction_engine.decisions import (
    Decision,
    DecisionManager,
    apply_decisions,
    load_decisions,
    save_decisions,
)
from redaction_engine.discovery import DiscoveredPatterns
from redaction_engine.models import DiscoveredValue


class ScriptedPrompt:
    """Prompt answering from a fixed list and recording what it was asked."""

    def __init__(self, *answers: Decision) -> None:
        self.answers = list(answers)
        self.asked: list[str] = []

    def __call__(self, value: DiscoveredValue) -> Decision:
        self.asked.append(value.value)
        return self.answers.pop(0)


class RecordingProvider:
    """Decision provider with fixed answers per value."""

    def __init__(self, answers: dict[str, Decision]) -> None:
        self.answers = answers
        self.saved = 0

    def decide(self, value: DiscoveredValue) -> Decision:
        return self.answers.get(value.value, Decision("redact"))

    def save(self) -> None:
        self.saved += 1


def test_default_without_prompt() -> None:
    """Test that undecided values get the default action."""
    manager = DecisionManager()
    assert manager.decide(DiscoveredValue("bob", "username")).action == "redact"
    assert DecisionManager(default="keep").decide(DiscoveredValue("bob")).action == "keep"


def test_prompt_is_asked_once_per_value() -> None:
    """Test that answers are remembered."""
    prompt = ScriptedPrompt(Decision("keep"))
    manager = DecisionManager(prompt=prompt)
    value = DiscoveredValue("bob", "username")

    assert manager.decide(value).action == "keep"
    assert manager.decide(value).action == "keep"
    assert prompt.asked == ["bob"]


def test_apply_to_all_sets_type_policy() -> None:
    """Test that 'keep all' covers later values of the same type only."""
    prompt = ScriptedPrompt(Decision("keep", apply_to_all=True), Decision("redact"))
    manager = DecisionManager(prompt=prompt)

    assert manager.decide(DiscoveredValue("bob", "username")).action == "keep"
    assert manager.decide(DiscoveredValue("eve", "username")).action == "keep"
    assert manager.decide(DiscoveredValue("db1", "hostname")).action == "redact"
    assert prompt.asked == ["bob", "db1"]


def test_save_and_reload(tmp_path: Path) -> None:
    """Test that decisions persist between managers."""
    path = tmp_path / "decisions.yaml"
    manager = DecisionManager(path, prompt=ScriptedPrompt(Decision("replace", "jdoe")))
    manager.decide(DiscoveredValue("john_doe", "username"))
    manager.save()

    data = yaml.safe_load(path.read_text())
    assert data["version"] == 1
    assert data["decisions"]["username"]["john_doe"] == {"action": "replace", "replacement": "jdoe"}

    reloaded = DecisionManager(path, prompt=ScriptedPrompt())
    decision = reloaded.decide(DiscoveredValue("john_doe", "username"))
    assert decision == Decision("replace", "jdoe")


def test_save_without_path_is_noop(tmp_path: Path) -> None:
    """Test that a manager without a file saves nothing."""
    DecisionManager().save()
    assert list(tmp_path.iterdir()) == []


def test_load_missing_and_invalid(tmp_path: Path) -> None:
    """Test loading missing files and unknown actions."""
    assert load_decisions(tmp_path / "missing.yaml") == {}

    path = tmp_path / "decisions.yaml"
    path.write_text(
        "version: 1\ndecisions:\n  username:\n    bob:\n      action: shred\n"
        "    eve:\n      action: keep\n"
    )
    assert load_decisions(path) == {"username": {"eve": Decision("keep")}}


def test_save_decisions_creates_directories(tmp_path: Path) -> None:
    """Test that the decisions file's directory is created."""
    path = tmp_path / "nested" / "decisions.yaml"
    save_decisions(path, {"hostname": {"db1": Decision("redact")}})
    assert load_decisions(path) == {"hostname": {"db1": Decision("redact")}}


def test_apply_decisions() -> None:
    """Test that keep drops values and replace fixes their replacement."""
    discovered = DiscoveredPatterns()
    for name in ("alice", "bob", "carol"):
        discovered.add(name, "username", "home_directories")
    provider = RecordingProvider(
        {"alice": Decision("keep"), "bob": Decision("replace", "B")}
    )

    result = apply_decisions(discovered, provider)
    assert "alice" not in result
    assert result.get("bob").replacement == "B"
    assert result.get("carol").replacement is None
    assert result.get("carol").source == "home_directories"
    assert provider.saved == 1
