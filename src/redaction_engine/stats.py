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

"""Counters describing what a redaction run changed."""

from collections import Counter
from dataclasses import dataclass, field


@dataclass
class RedactionStats:
    """Event, field and redaction-type counters."""

    total_events: int = 0
    removed_events: int = 0
    redacted_fields: int = 0
    removed_by_type: Counter[str] = field(default_factory=Counter)
    redactions_by_type: Counter[str] = field(default_factory=Counter)
    fields: Counter[str] = field(default_factory=Counter)

    def record_event(self) -> None:
        self.total_events += 1

    def record_removed(self, type_name: str) -> None:
        self.removed_events += 1
        self.removed_by_type[type_name] += 1

    def record_redaction(self, field_name: str | None, kind: str) -> None:
        self.redacted_fields += 1
        self.redactions_by_type[kind] += 1
        if field_name:
            self.fields[field_name] += 1

    def top_fields(self, n: int = 10) -> list[tuple[str, int]]:
        return self.fields.most_common(n)

    def summary(self) -> str:
        """Render a short human readable report."""
        lines = [
            f"Events processed: {self.total_events}",
            f"Events removed: {self.removed_events}",
            f"Values redacted: {self.redacted_fields}",
        ]
        if self.redactions_by_type:
            lines.append("By type:")
            lines += [f"  {kind}: {count}" for kind, count in self.redactions_by_type.most_common()]
        if self.fields:
            lines.append("Top fields:")
            lines += [f"  {name}: {count}" for name, count in self.top_fields(5)]
        return "\n".join(lines)
