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

"""Discovery of sensitive values not covered by static patterns."""

import logging
import re
from collections import Counter
from collections.abc import Iterator
from typing import Any

from .matcher import PropertyMatcher, StringPatternEngine
from .models import (
    CategoryConfig,
    Configuration,
    DiscoveredValue,
    Event,
    PropertyExtraction,
    ValueType,
)

logger = logging.getLogger(__name__)

HEX_LITERAL = re.compile(r"0[xX][0-9a-fA-F]+")
EMAIL_LOCAL_PART = re.compile(r"([a-zA-Z0-9._%+-]+)@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


def is_candidate(token: str) -> bool:
    """Check whether token could be a sensitive value.

    A candidate contains at least one letter and is not a hexadecimal literal.
    """
    if not token or not any(c.isalpha() for c in token):
        return False
    return HEX_LITERAL.fullmatch(token) is None


class DiscoveredPatterns:
    """Distinct discovered values with their occurrence counts."""

    def __init__(self, case_sensitive: bool = False, whitelist: list[str] | None = None) -> None:
        self.case_sensitive = case_sensitive
        self.whitelist = {self._key(w) for w in whitelist or []}
        self._values: dict[str, DiscoveredValue] = {}

    def _key(self, value: str) -> str:
        return value if self.case_sensitive else value.lower()

    def add(
        self,
        value: str,
        type: ValueType = "custom",
        source: str | None = None,
        count: int = 1,
    ) -> DiscoveredValue | None:
        """Record count occurrences of value, unless it is whitelisted."""
        key = self._key(value)
        if not value or key in self.whitelist:
            return None
        entry = self._values.get(key)
        if entry is None:
            entry = self._values[key] = DiscoveredValue(value=value, type=type, source=source)
        entry.occurrences += count
        return entry

    def get(self, value: str) -> DiscoveredValue | None:
        return self._values.get(self._key(value))

    def contains(self, value: str) -> bool:
        return self._key(value) in self._values

    __contains__ = contains

    def remove(self, value: str) -> None:
        self._values.pop(self._key(value), None)

    def values(self, min_occurrences: int = 1) -> list[DiscoveredValue]:
        """Values seen at least min_occurrences times, longest first."""
        found = [v for v in self._values.values() if v.occurrences >= min_occurrences]
        return sorted(found, key=lambda v: (-len(v.value), v.value))

    def merge(self, other: "DiscoveredPatterns", min_occurrences: int = 1) -> None:
        """Add the values of other that were seen often enough."""
        for v in other.values(min_occurrences):
            entry = self.add(v.value, v.type, v.source, v.occurrences)
            if entry is not None and v.replacement is not None:
                entry.replacement = v.replacement

    def counts_by_type(self) -> dict[str, int]:
        return dict(Counter(v.type for v in self._values.values()))

    @property
    def total(self) -> int:
        return len(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[DiscoveredValue]:
        return iter(self.values())


class _Extractor:
    """A regex whose capture group yields candidate values."""

    def __init__(
        self,
        name: str,
        type: ValueType,
        pattern: str | re.Pattern[str],
        group: int,
        case_sensitive: bool,
        whitelist: list[str],
        min_occurrences: int,
        ignore_exact: list[str] | None = None,
        ignore: list[str] | None = None,
    ) -> None:
        self.name = name
        self.type = type
        self.regex = re.compile(pattern)
        self.group = group if self.regex.groups >= group else 0
        self.patterns = DiscoveredPatterns(case_sensitive, whitelist)
        self.min_occurrences = min_occurrences
        self.ignore_exact = {v.lower() for v in ignore_exact or []}
        self.ignore = [re.compile(p) for p in ignore or []]


class _PropertyExtractor:
    """Discovers values of event fields selected by their name."""

    def __init__(self, config: PropertyExtraction, whitelist: list[str]) -> None:
        self.config = config
        self.name = config.name
        self.type = config.type
        self.key_regex = re.compile(config.key_pattern)
        self.value_regex = re.compile(config.value_pattern)
        self.event_filter = re.compile(config.event_type_filter) if config.event_type_filter else None
        self.patterns = DiscoveredPatterns(config.case_sensitive, [*config.whitelist, *whitelist])
        self.min_occurrences = config.min_occurrences


class PatternDiscoveryEngine:
    """Collects values that the static configuration does not anticipate.

    Extractors come from string categories with discovery enabled and from
    the discovery section's custom and property extractions. Every captured
    value is filtered through is_candidate and skipped when an enabled
    category already matches it as a whole.
    """

    def __init__(
        self,
        config: Configuration,
        property_matcher: PropertyMatcher | None = None,
        string_engine: StringPatternEngine | None = None,
    ) -> None:
        self.config = config
        self.property_matcher = property_matcher or PropertyMatcher(config.properties)
        self.string_engine = string_engine or StringPatternEngine(config)
        self.extractors: list[_Extractor] = []
        self.property_extractors: list[_PropertyExtractor] = []
        self.units_analyzed = 0
        self.rejected = 0
        self._build()

    def _add_category(self, category: CategoryConfig) -> None:
        whitelist = [*category.discovery_whitelist, *self.config.discovery.whitelist]
        if category.name == "emails":
            sources = [(category.name, EMAIL_LOCAL_PART, 1)]
        else:
            many = len(category.patterns) > 1
            sources = [
                (f"{category.name}_{i}" if many else category.name, p, category.discovery_capture_group)
                for i, p in enumerate(category.patterns)
            ]
        for name, pattern, group in sources:
            self.extractors.append(
                _Extractor(
                    name,
                    category.discovery_type,
                    pattern,
                    group,
                    category.discovery_case_sensitive,
                    whitelist,
                    category.discovery_min_occurrences,
                    category.ignore_exact,
                    category.ignore,
                )
            )

    def _build(self) -> None:
        discovery = self.config.discovery
        if self.config.strings.enabled:
            for category in self.config.strings.categories:
                if category.enabled and category.enable_discovery and category.patterns:
                    self._add_category(category)
        for custom in discovery.custom_extractions:
            if custom.enabled:
                self.extractors.append(
                    _Extractor(
                        custom.name,
                        custom.type,
                        custom.pattern,
                        custom.capture_group,
                        custom.case_sensitive,
                        [*custom.whitelist, *discovery.whitelist],
                        custom.min_occurrences,
                    )
                )
        for prop in discovery.property_extractions:
            if prop.enabled:
                self.property_extractors.append(_PropertyExtractor(prop, discovery.whitelist))
        logger.info(
            "Compiled %d extraction patterns and %d property extractors",
            len(self.extractors),
            len(self.property_extractors),
        )

    def _record(
        self,
        patterns: DiscoveredPatterns,
        token: str | None,
        type: ValueType,
        source: str,
        ignore_exact: set[str] | None = None,
        ignore: list[re.Pattern[str]] | None = None,
    ) -> None:
        if not token or not is_candidate(token):
            self.rejected += 1
            return
        if ignore_exact and token.lower() in ignore_exact:
            return
        if ignore and any(p.fullmatch(token) for p in ignore):
            return
        if self.string_engine.covers(token):
            return
        patterns.add(token, type, source)

    def analyze_text(self, text: str, field_name: str | None = None) -> None:
        """Run every extractor over text."""
        self.units_analyzed += 1
        if not text or (field_name and self.property_matcher.matches(field_name)):
            return
        for ext in self.extractors:
            for m in ext.regex.finditer(text):
                self._record(
                    ext.patterns, m.group(ext.group), ext.type, ext.name, ext.ignore_exact, ext.ignore
                )

    def analyze_field(self, field_name: str, value: Any) -> None:
        if isinstance(value, str):
            self.analyze_text(value, field_name)
        elif isinstance(value, (list, tuple)):
            for item in value:
                self.analyze_field(field_name, item)

    def _analyze_properties(self, event: Event) -> None:
        for ext in self.property_extractors:
            if ext.event_filter and not ext.event_filter.search(event.type_name):
                continue
            # fields whose own name matches
            for name, value in event.fields:
                if isinstance(value, str) and ext.key_regex.fullmatch(name):
                    if ext.value_regex.fullmatch(value):
                        self._record(ext.patterns, value, ext.type, ext.name)
            # key/value pair events, e.g. system properties
            key = event.get(ext.config.key_property)
            value = event.get(ext.config.value_property)
            if isinstance(key, str) and isinstance(value, str) and ext.key_regex.fullmatch(key):
                if ext.value_regex.fullmatch(value):
                    self._record(ext.patterns, value, ext.type, ext.name)

    def analyze_event(self, event: Event) -> None:
        """Analyze all fields of an event."""
        self._analyze_properties(event)
        for name, value in event.fields:
            self.analyze_field(name, value)

    def discovered(self, min_occurrences: int | None = None) -> DiscoveredPatterns:
        """Return a snapshot of everything discovered so far."""
        discovery = self.config.discovery
        floor = discovery.min_occurrences if min_occurrences is None else min_occurrences
        result = DiscoveredPatterns(discovery.case_sensitive, discovery.whitelist)
        for ext in [*self.extractors, *self.property_extractors]:
            result.merge(ext.patterns, max(floor, ext.min_occurrences))
        return result

    def statistics(self) -> dict[str, Any]:
        snapshot = self.discovered()
        return {
            "units_analyzed": self.units_analyzed,
            "rejected": self.rejected,
            "discovered": snapshot.total,
            "by_type": snapshot.counts_by_type(),
            "by_extractor": {
                ext.name: ext.patterns.total for ext in [*self.extractors, *self.property_extractors]
            },
        }
