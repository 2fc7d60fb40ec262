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

"""Word level redaction rules.

Rule file grammar, one rule per line:

    - pattern               redact
    + pattern               keep
    ! pattern replacement   replace
    -$ prefix               redact words starting with prefix

A pattern wrapped in slashes is a regex, a pattern containing * is a
wildcard and anything else must equal the word. Rules are evaluated in
file order and the first matching rule decides.
"""

import logging
import re
from collections.abc import Iterable, Iterator
from pathlib import Path

from .discovery import is_candidate
from .errors import InvalidRule
from .models import DEFAULT_REDACTION_TEXT, Event, RuleType, WordRule

logger = logging.getLogger(__name__)

WORD_PATTERN = re.compile(r"[a-zA-Z0-9_\-+/]+")
_LETTER = re.compile(r"[a-zA-Z]")

_MARKERS: dict[str, RuleType] = {"-": "redact", "+": "keep", "!": "replace"}

# Fields holding code identifiers rather than data.
SKIPPED_FIELDS = re.compile(r"(?i)(method|class|package|module)(name)?")


def wildcard_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate * into .* and escape everything else."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")))


def _compile(pattern: str, line: str) -> re.Pattern[str] | None:
    if len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/"):
        try:
            return re.compile(pattern[1:-1])
        except re.error as e:
            raise InvalidRule(f"Invalid regular expression ({e})", line) from e
    if "*" in pattern:
        return wildcard_to_regex(pattern)
    return None


def parse_rule(line: str) -> WordRule | None:
    """Parse one rule line, returning None for lines that are not rules."""
    stripped = line.strip()
    if not stripped:
        return None
    if stripped.startswith("-$"):
        prefix = stripped[2:].strip()
        if not prefix:
            raise InvalidRule("Prefix rule must have format: -$ prefix", line)
        return WordRule("redact_prefix", prefix, wildcard_to_regex(prefix + "*"))

    rule_type = _MARKERS.get(stripped[0])
    if rule_type is None:
        return None
    rest = stripped[1:].strip()
    if not rest:
        raise InvalidRule("Rule has no pattern", line)

    replacement = None
    if rule_type == "replace":
        parts = rest.split(None, 1)
        if len(parts) < 2:
            raise InvalidRule("Replace rule must have format: ! pattern replacement", line)
        rest, replacement = parts[0], parts[1].strip()
    return WordRule(rule_type, rest, _compile(rest, line), replacement)


def parse_rules(text: str) -> list[WordRule]:
    """Parse all rules of a rule file, in order."""
    rules = []
    for line in text.splitlines():
        rule = parse_rule(line)
        if rule is not None:
            rules.append(rule)
    return rules


def load_rules_file(path: Path) -> list[WordRule]:
    """Load word rules from a file."""
    return parse_rules(path.read_text(encoding="utf-8"))


def format_rule(rule: WordRule) -> str:
    """Render a rule back into its file form."""
    if rule.type == "redact_prefix":
        return f"-$ {rule.pattern}"
    if rule.type == "replace":
        return f"! {rule.pattern} {rule.replacement}"
    marker = "+" if rule.type == "keep" else "-"
    return f"{marker} {rule.pattern}"


class WordRedactor:
    """Applies word rules to single words and to whole lines."""

    def __init__(self, rules: list[WordRule], redaction_text: str = DEFAULT_REDACTION_TEXT) -> None:
        self.rules = rules
        self.redaction_text = redaction_text
        self._memo: dict[str, str] = {}

    def apply_rules(self, word: str) -> str:
        """Return what word becomes under the first rule that matches it."""
        if word in self._memo:
            return self._memo[word]
        result = word
        for rule in self.rules:
            if not rule.matches(word):
                continue
            if rule.type == "replace":
                result = rule.replacement or ""
            elif rule.type != "keep":
                result = self.redaction_text
            break
        self._memo[word] = result
        return result

    def _redact_token(self, m: re.Match[str]) -> str:
        token = m.group()
        if not _LETTER.search(token):
            return token
        return self.apply_rules(token)

    def redact_text(self, text: str) -> str:
        """Redact every word of text, keeping everything between words."""
        return WORD_PATTERN.sub(self._redact_token, text)

    def redact_lines(self, lines: Iterable[str]) -> Iterator[str]:
        for line in lines:
            yield self.redact_text(line)


class WordDiscovery:
    """Collects the distinct candidate words of some text or events."""

    def __init__(self) -> None:
        self.words: set[str] = set()

    def discover_text(self, text: str) -> None:
        for m in WORD_PATTERN.finditer(text):
            if is_candidate(m.group()):
                self.words.add(m.group())

    def discover_event(self, event: Event) -> None:
        for name, value in event.fields:
            if SKIPPED_FIELDS.fullmatch(name):
                continue
            if isinstance(value, str):
                self.discover_text(value)

    def sorted_words(self) -> list[str]:
        return sorted(self.words)

    def format_rules(self) -> str:
        """Render the words as redact rules for review."""
        return "".join(f"- {word}\n" for word in self.sorted_words())
