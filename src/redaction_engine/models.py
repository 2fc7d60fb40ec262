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

"""Data models for redaction configuration, rules and discovered values."""

import re
from dataclasses import dataclass, field
from typing import Any, Literal

RuleType = Literal["redact", "keep", "replace", "redact_prefix"]
DiscoveryMode = Literal["none", "fast", "two_pass"]
PseudonymMode = Literal["hash", "counter", "realistic"]
PseudonymFormat = Literal["redacted", "hash", "custom"]
ValueType = Literal["username", "hostname", "email_local_part", "custom"]

DEFAULT_REDACTION_TEXT = "***"

DEFAULT_PROPERTY_PATTERNS = [
    "(pass(word|wort|wd)?|pwd)",
    "secret",
    "token",
    "(api[_-]?)?key",
    "auth",
    "credential",
]

DEFAULT_REMOVED_EVENTS = [
    "jdk.OSInformation",
    "jdk.SystemProcess",
    "jdk.InitialEnvironmentVariable",
    "jdk.ProcessStart",
]


@dataclass
class PseudonymizationScope:
    """Which kinds of values are pseudonymized instead of masked."""

    properties: bool = True
    strings: bool = True
    network: bool = True
    paths: bool = True
    ports: bool = True


@dataclass
class PseudonymizationConfig:
    """Settings for replacing values with stable pseudonyms."""

    enabled: bool = False
    mode: PseudonymMode = "hash"
    format: PseudonymFormat = "redacted"
    custom_prefix: str = "<redacted:"
    custom_suffix: str = ">"
    hash_length: int = 8
    hash_algorithm: str = "sha256"
    seed: int | None = None
    scope: PseudonymizationScope = field(default_factory=PseudonymizationScope)
    replacements: dict[str, str] = field(default_factory=dict)
    pattern_generators: dict[str, str] = field(default_factory=dict)


@dataclass
class GeneralConfig:
    """Output settings shared by all redaction paths."""

    redaction_text: str = DEFAULT_REDACTION_TEXT
    partial_redaction: bool = False
    pseudonymization: PseudonymizationConfig = field(default_factory=PseudonymizationConfig)


@dataclass
class PropertyConfig:
    """Field names whose values are always redacted."""

    enabled: bool = True
    case_sensitive: bool = True
    full_match: bool = False
    patterns: list[str] = field(default_factory=lambda: list(DEFAULT_PROPERTY_PATTERNS))


@dataclass
class CategoryConfig:
    """A named group of regexes for one kind of sensitive string."""

    name: str
    enabled: bool = True
    patterns: list[str] = field(default_factory=list)
    capture_group: int = 0
    ignore_exact: list[str] = field(default_factory=list)
    ignore: list[str] = field(default_factory=list)
    ignore_after: list[str] = field(default_factory=list)
    enable_discovery: bool = False
    discovery_type: ValueType = "custom"
    discovery_capture_group: int = 0
    discovery_min_occurrences: int = 1
    discovery_case_sensitive: bool = False
    discovery_whitelist: list[str] = field(default_factory=list)


@dataclass
class StringConfig:
    """String category patterns applied to every string value."""

    enabled: bool = True
    no_redact: list[str] = field(default_factory=list)
    categories: list[CategoryConfig] = field(default_factory=list)

    def category(self, name: str) -> CategoryConfig | None:
        """Return the category called name, if configured."""
        for cat in self.categories:
            if cat.name == name:
                return cat
        return None


@dataclass
class FilteringConfig:
    """Glob based include/exclude filters for events."""

    include_events: list[str] = field(default_factory=list)
    exclude_events: list[str] = field(default_factory=list)
    include_categories: list[str] = field(default_factory=list)
    exclude_categories: list[str] = field(default_factory=list)
    include_threads: list[str] = field(default_factory=list)
    exclude_threads: list[str] = field(default_factory=list)

    def has_filters(self) -> bool:
        return any(
            (
                self.include_events,
                self.exclude_events,
                self.include_categories,
                self.exclude_categories,
                self.include_threads,
                self.exclude_threads,
            )
        )


@dataclass
class EventConfig:
    """Event types dropped entirely from the output."""

    remove_enabled: bool = True
    removed_types: list[str] = field(default_factory=lambda: list(DEFAULT_REMOVED_EVENTS))
    filtering: FilteringConfig = field(default_factory=FilteringConfig)


@dataclass
class CustomExtraction:
    """A regex whose capture group yields values to discover."""

    name: str
    pattern: str
    capture_group: int = 1
    type: ValueType = "custom"
    case_sensitive: bool = False
    min_occurrences: int = 1
    whitelist: list[str] = field(default_factory=list)
    enabled: bool = True


@dataclass
class PropertyExtraction:
    """Discovers values from event fields selected by name."""

    name: str
    key_pattern: str
    value_pattern: str = ".*"
    key_property: str = "key"
    value_property: str = "value"
    event_type_filter: str | None = None
    type: ValueType = "custom"
    case_sensitive: bool = False
    min_occurrences: int = 1
    whitelist: list[str] = field(default_factory=list)
    enabled: bool = True


@dataclass
class DiscoveryConfig:
    """How unknown sensitive values are discovered."""

    mode: DiscoveryMode = "none"
    snapshot_interval: int = 100
    min_occurrences: int = 1
    case_sensitive: bool = False
    whitelist: list[str] = field(default_factory=list)
    custom_extractions: list[CustomExtraction] = field(default_factory=list)
    property_extractions: list[PropertyExtraction] = field(default_factory=list)


@dataclass
class Configuration:
    """A fully resolved redaction configuration."""

    parent: str = "none"
    general: GeneralConfig = field(default_factory=GeneralConfig)
    properties: PropertyConfig = field(default_factory=PropertyConfig)
    strings: StringConfig = field(default_factory=StringConfig)
    events: EventConfig = field(default_factory=EventConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    source: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class WordRule:
    """A single word redaction rule."""

    type: RuleType
    pattern: str
    regex: re.Pattern[str] | None = None
    replacement: str | None = None

    def matches(self, word: str) -> bool:
        """Check whether the whole word is matched by this rule."""
        if self.regex is not None:
            return self.regex.fullmatch(word) is not None
        return word == self.pattern


@dataclass
class Event:
    """An event record handed over by an event source."""

    type_name: str
    fields: list[tuple[str, Any]] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    thread: str | None = None

    def get(self, name: str, default: Any = None) -> Any:
        for key, value in self.fields:
            if key == name:
                return value
        return default


@dataclass
class DiscoveredValue:
    """A value found during discovery and how often it was seen."""

    value: str
    type: ValueType = "custom"
    occurrences: int = 0
    source: str | None = None
    replacement: str | None = None
