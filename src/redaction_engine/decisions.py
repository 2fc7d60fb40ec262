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

"""Per-value keep/redact/replace decisions for discovered values."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

import yaml

from .discovery import DiscoveredPatterns
from .models import DiscoveredValue

logger = logging.getLogger(__name__)

DecisionAction = Literal["keep", "redact", "replace"]
DECISIONS_VERSION = 1

Decisions = dict[str, dict[str, "Decision"]]


@dataclass
class Decision:
    """What to do with one discovered value."""

    action: DecisionAction
    replacement: str | None = None
    apply_to_all: bool = False


Prompt = Callable[[DiscoveredValue], Decision]


class DecisionProvider(Protocol):
    """Resolves discovered values and persists the outcome."""

    def decide(self, value: DiscoveredValue) -> Decision: ...

    def save(self) -> None: ...


def load_decisions(path: Path) -> Decisions:
    """Load decisions from file. Returns {type: {value: Decision}}."""
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        logger.warning("Ignoring unreadable decisions file %s: %s", path, e)
        return {}
    if not isinstance(data, dict) or not isinstance(data.get("decisions"), dict):
        return {}
    result: Decisions = {}
    for type_name, values in data["decisions"].items():
        for value, entry in (values or {}).items():
            entry = entry or {}
            action = entry.get("action", "redact")
            if action not in ("keep", "redact", "replace"):
                logger.warning("Ignoring decision with unknown action %r for %r", action, value)
                continue
            result.setdefault(str(type_name), {})[str(value)] = Decision(
                action=action, replacement=entry.get("replacement")
            )
    return result


def save_decisions(path: Path, decisions: Decisions) -> None:
    """Save decisions to file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "version": DECISIONS_VERSION,
        "decisions": {
            type_name: {
                value: {
                    k: v
                    for k, v in {"action": d.action, "replacement": d.replacement}.items()
                    if v is not None
                }
                for value, d in values.items()
            }
            for type_name, values in decisions.items()
        },
    }
    with path.open("w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


class DecisionManager:
    """Asks a prompt for undecided values and remembers the answers.

    Without a prompt every new value gets the default action. A decision
    made with apply_to_all becomes the policy for the rest of its type.
    """

    def __init__(
        self,
        path: Path | None = None,
        prompt: Prompt | None = None,
        default: DecisionAction = "redact",
    ) -> None:
        self.path = path
        self.prompt = prompt
        self.default = default
        self.decisions: Decisions = load_decisions(path) if path else {}
        self.policies: dict[str, Decision] = {}

    def decide(self, value: DiscoveredValue) -> Decision:
        known = self.decisions.get(value.type, {}).get(value.value)
        if known is not None:
            return known
        if value.type in self.policies:
            decision = self.policies[value.type]
        elif self.prompt is None:
            decision = Decision(self.default)
        else:
            decision = self.prompt(value)
            if decision.apply_to_all and decision.action != "replace":
                self.policies[value.type] = Decision(decision.action)
        stored = Decision(decision.action, decision.replacement)
        self.decisions.setdefault(value.type, {})[value.value] = stored
        return stored

    def save(self) -> None:
        if self.path is None:
            return
        save_decisions(self.path, self.decisions)
        logger.info("Saved decisions to %s", self.path)


def apply_decisions(discovered: DiscoveredPatterns, provider: DecisionProvider) -> DiscoveredPatterns:
    """Resolve every discovered value and return the ones still to redact."""
    result = DiscoveredPatterns(discovered.case_sensitive)
    kept = 0
    for value in discovered.values():
        decision = provider.decide(value)
        if decision.action == "keep":
            kept += 1
            continue
        entry = result.add(value.value, value.type, value.source, value.occurrences)
        if entry is not None and decision.action == "replace":
            entry.replacement = decision.replacement or ""
    provider.save()
    logger.info("Decisions: %d kept, %d to redact", kept, result.total)
    return result
