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

"""Pattern matching for sensitive field names and string categories."""

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from .models import CategoryConfig, Configuration, PropertyConfig

if TYPE_CHECKING:
    from .discovery import DiscoveredPatterns
    from .pseudonym import Pseudonymizer

logger = logging.getLogger(__name__)

NETWORK_CATEGORIES = {"ip_addresses", "hostnames", "ssh_hosts", "internal_urls"}
PATH_CATEGORIES = {"home_directories"}

# Characters that may not surround a discovered value for it to count as a match.
_TOKEN_CHARS = "A-Za-z0-9_"


@lru_cache(maxsize=256)
def glob_to_regex(glob: str) -> re.Pattern[str]:
    """Compile a glob with * and ? wildcards into an anchored regex."""
    parts = []
    for char in glob:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$")


def glob_matches(value: str | None, globs: Iterable[str]) -> bool:
    """Check whether value matches any of the globs."""
    if value is None:
        return False
    return any(glob_to_regex(g).match(value) for g in globs)


class PropertyMatcher:
    """Decides whether a field name marks its value as sensitive."""

    def __init__(self, config: PropertyConfig) -> None:
        self.config = config
        self._matchers = [self._compile(p) for p in config.patterns]
        self._results: dict[str, bool] = {}

    def _compile(self, pattern: str) -> Callable[[str], bool]:
        """Build a predicate for one pattern, falling back to literal matching."""
        flags = 0 if self.config.case_sensitive else re.IGNORECASE
        try:
            regex = re.compile(pattern, flags)
        except re.error:
            logger.warning("Invalid property pattern %r, matching it literally", pattern)
            literal = pattern if self.config.case_sensitive else pattern.lower()

            def literal_match(name: str) -> bool:
                if not self.config.case_sensitive:
                    name = name.lower()
                return name == literal if self.config.full_match else literal in name

            return literal_match
        if self.config.full_match:
            return lambda name: regex.fullmatch(name) is not None
        return lambda name: regex.search(name) is not None

    def matches(self, field_name: str | None) -> bool:
        """Check whether any configured pattern matches field_name."""
        if not self.config.enabled or not field_name:
            return False
        if field_name not in self._results:
            self._results[field_name] = any(m(field_name) for m in self._matchers)
        return self._results[field_name]


@dataclass
class RedactionResult:
    """Outcome of redacting a single string."""

    value: str
    type: str | None = None

    @property
    def redacted(self) -> bool:
        return self.type is not None


class _CompiledCategory:
    """Compiled regexes and ignore lists of one string category."""

    def __init__(self, config: CategoryConfig) -> None:
        self.name = config.name
        self.capture_group = config.capture_group
        self.regexes = [re.compile(p) for p in config.patterns]
        self.ignore_exact = {v.lower() for v in config.ignore_exact}
        self.ignore = [re.compile(p) for p in config.ignore]
        self.ignore_after = [self._compile_prefix(p) for p in config.ignore_after]

    @staticmethod
    def _compile_prefix(prefix: str) -> re.Pattern[str]:
        try:
            return re.compile(f"(?:{prefix})\\Z")
        except re.error:
            return re.compile(re.escape(prefix) + "\\Z")


class StringPatternEngine:
    """Redacts matches of the enabled string categories in a value."""

    def __init__(self, config: Configuration, pseudonymizer: "Pseudonymizer | None" = None) -> None:
        self.config = config
        self.strings = config.strings
        self.redaction_text = config.general.redaction_text
        self.pseudonymizer = pseudonymizer
        self.categories = [
            _CompiledCategory(c) for c in config.strings.categories if c.enabled and c.patterns
        ]
        self._discovered: list[tuple[str, str | None, re.Pattern[str]]] = []

    def _in_scope(self, category: str) -> bool:
        if self.pseudonymizer is None or not self.pseudonymizer.enabled:
            return False
        scope = self.pseudonymizer.scope
        if category in NETWORK_CATEGORIES:
            return scope.network
        if category in PATH_CATEGORIES:
            return scope.paths
        return scope.strings

    def replacement(self, value: str, category: str) -> str:
        """Return the marker or pseudonym that replaces value."""
        if self.pseudonymizer is not None and self._in_scope(category):
            return self.pseudonymizer.pseudonymize_with_pattern(
                value, category, self.redaction_text
            )
        return self.redaction_text

    def _keep(self, category: _CompiledCategory, matched: str, text: str, start: int) -> bool:
        """Check the no_redact and ignore lists for a single match."""
        if any(safe in matched for safe in self.strings.no_redact):
            return True
        if matched.lower() in category.ignore_exact:
            return True
        if any(p.fullmatch(matched) for p in category.ignore):
            return True
        return any(p.search(text, 0, start) for p in category.ignore_after)

    def _apply_category(self, category: _CompiledCategory, value: str) -> str:
        for regex in category.regexes:
            group = category.capture_group if regex.groups >= category.capture_group else 0

            def substitute(m: re.Match[str]) -> str:
                matched = m.group(group)
                if not matched or self._keep(category, matched, m.string, m.start(group)):
                    return m.group(0)
                whole = m.group(0)
                head = whole[: m.start(group) - m.start()]
                tail = whole[m.end(group) - m.start() :]
                return head + self.replacement(matched, category.name) + tail

            if category.capture_group and not group:
                continue
            value = regex.sub(substitute, value)
        return value

    def covers(self, token: str) -> bool:
        """Check whether token as a whole is matched by an enabled category."""
        return any(r.fullmatch(token) for c in self.categories for r in c.regexes)

    def set_discovered(self, patterns: "DiscoveredPatterns | None") -> None:
        """Install a snapshot of discovered values, applied after the categories."""
        self._discovered = []
        if patterns is None:
            return
        flags = 0 if patterns.case_sensitive else re.IGNORECASE
        for discovered in patterns.values():
            regex = re.compile(
                f"(?<![{_TOKEN_CHARS}]){re.escape(discovered.value)}(?![{_TOKEN_CHARS}])", flags
            )
            self._discovered.append((discovered.value, discovered.replacement, regex))
        logger.info("Loaded %d discovered values for redaction", len(self._discovered))

    def _apply_discovered(self, value: str) -> str:
        for original, fixed, regex in self._discovered:
            if regex.search(value):
                replacement = fixed if fixed is not None else self.replacement(original, "discovered")
                value = regex.sub(lambda m: replacement, value)
        return value

    def redact(self, field_name: str | None, value: str) -> RedactionResult:
        """Redact every category match in value.

        Categories are applied in configured order; the result names the first
        category that changed the value. Discovered values are applied last,
        to whatever the categories left untouched.
        """
        if not self.strings.enabled or not value:
            return RedactionResult(value)
        result = value
        first: str | None = None
        for category in self.categories:
            after = self._apply_category(category, result)
            if after != result:
                first = first or category.name
                result = after
        if self._discovered:
            after = self._apply_discovered(result)
            if after != result:
                first = first or "discovered"
                result = after
        if first is not None:
            logger.debug("Redacted %s in field %s", first, field_name)
        return RedactionResult(result, first)
