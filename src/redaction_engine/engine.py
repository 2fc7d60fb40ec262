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

"""Field and event level redaction."""

import logging
from typing import Any

from .discovery import DiscoveredPatterns
from .matcher import PropertyMatcher, StringPatternEngine, glob_matches
from .models import Configuration, Event
from .pseudonym import Pseudonymizer
from .stats import RedactionStats

logger = logging.getLogger(__name__)


def _truncate(value: str, limit: int = 100) -> str:
    return value if len(value) <= limit else value[: limit - 3] + "..."


def is_port_field(field_name: str | None) -> bool:
    return bool(field_name) and "port" in field_name.lower()


class RedactionEngine:
    """Redacts single field values and decides which events to drop.

    A field whose name matches a property pattern is redacted as a whole.
    Otherwise string values go through the string categories and then the
    discovered values.
    """

    def __init__(
        self,
        config: Configuration,
        stats: RedactionStats | None = None,
        pseudonymizer: Pseudonymizer | None = None,
    ) -> None:
        self.config = config
        self.stats = stats or RedactionStats()
        self.pseudonymizer = pseudonymizer or Pseudonymizer(config.general.pseudonymization)
        self.property_matcher = PropertyMatcher(config.properties)
        self.strings = StringPatternEngine(config, self.pseudonymizer)
        self.discovered: DiscoveredPatterns | None = None
        logger.debug(
            "Engine ready: properties=%s strings=%s pseudonymization=%s event removal=%s",
            config.properties.enabled,
            config.strings.enabled,
            self.pseudonymizer.enabled,
            config.events.remove_enabled,
        )

    def set_discovered_patterns(self, patterns: DiscoveredPatterns | None) -> None:
        self.discovered = patterns
        self.strings.set_discovered(patterns)

    def is_sensitive(self, field_name: str | None) -> bool:
        return self.property_matcher.matches(field_name)

    def _redact_property(self, value: str) -> str:
        general = self.config.general
        if self.pseudonymizer.enabled and self.pseudonymizer.scope.properties:
            return self.pseudonymizer.pseudonymize(value, general.redaction_text)
        if general.partial_redaction and len(value) >= 4:
            return value[0] + general.redaction_text + value[-1]
        return general.redaction_text

    def redact_string(self, field_name: str | None, value: str) -> str:
        if self.is_sensitive(field_name):
            redacted = self._redact_property(value)
            self.stats.record_redaction(field_name, "property")
            logger.debug("Redacted property %s: %r -> %r", field_name, _truncate(value), redacted)
            return redacted
        result = self.strings.redact(field_name, value)
        if result.type is not None:
            self.stats.record_redaction(field_name, result.type)
        return result.value

    def redact(self, field_name: str | None, value: Any) -> Any:
        """Redact a value of any supported type.

        Non-string scalars pass through unless the field is sensitive, in which
        case they become a zero value. Port numbers are pseudonymized when
        pseudonymization is enabled.
        """
        if value is None:
            return None
        if isinstance(value, str):
            return self.redact_string(field_name, value)
        if isinstance(value, bool):
            return False if self.is_sensitive(field_name) else value
        if isinstance(value, int):
            if self.is_sensitive(field_name):
                return 0
            if is_port_field(field_name):
                port = self.pseudonymizer.pseudonymize_port(value)
                if port != value:
                    self.stats.record_redaction(field_name, "port")
                return port
            return value
        if isinstance(value, float):
            return 0.0 if self.is_sensitive(field_name) else value
        if isinstance(value, bytes):
            return bytes(len(value)) if self.is_sensitive(field_name) else value
        if isinstance(value, (list, tuple)):
            return type(value)(self.redact(field_name, v) for v in value)
        return value

    def should_remove_thread(self, thread: str | None) -> bool:
        filtering = self.config.events.filtering
        if thread is None:
            return False
        if filtering.include_threads and not glob_matches(thread, filtering.include_threads):
            return True
        return glob_matches(thread, filtering.exclude_threads)

    def should_remove_event(self, event: Event | str) -> bool:
        """Check whether an event is dropped by type or by the filters."""
        events = self.config.events
        type_name = event if isinstance(event, str) else event.type_name
        if events.remove_enabled and type_name in events.removed_types:
            return True
        if isinstance(event, str) or not events.filtering.has_filters():
            return False

        filtering = events.filtering
        if self.should_remove_thread(event.thread):
            return True
        if filtering.include_events or filtering.include_categories:
            included = glob_matches(type_name, filtering.include_events) or any(
                glob_matches(c, filtering.include_categories) for c in event.categories
            )
            if not included:
                return True
        if glob_matches(type_name, filtering.exclude_events):
            return True
        return any(glob_matches(c, filtering.exclude_categories) for c in event.categories)

    def redact_event(self, event: Event) -> Event | None:
        """Return the redacted event, or None when it is removed."""
        self.stats.record_event()
        if self.should_remove_event(event):
            self.stats.record_removed(event.type_name)
            logger.debug("Removing event %s", event.type_name)
            return None
        return Event(
            type_name=event.type_name,
            fields=[(name, self.redact(name, value)) for name, value in event.fields],
            categories=list(event.categories),
            thread=event.thread,
        )
