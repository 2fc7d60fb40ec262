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

"""Redaction runs over text lines and event streams.

The discovery mode decides how a run proceeds:

- none: only the static configuration (and word rules) apply.
- two_pass: the whole input is analyzed first, decisions are collected,
  then a second pass redacts with everything that was discovered.
- fast: one pass; discovered values are installed every
  snapshot_interval units, so early occurrences of a value discovered
  later in the stream stay unredacted.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import TextIO, TypeVar

from .decisions import DecisionProvider, apply_decisions
from .discovery import DiscoveredPatterns, PatternDiscoveryEngine
from .engine import RedactionEngine
from .models import Configuration, Event, WordRule
from .stats import RedactionStats
from .words import WordRedactor

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class FileLines:
    """Lines of a file, read afresh on every iteration."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def __iter__(self) -> Iterator[str]:
        with self.path.open(encoding="utf-8", errors="replace", newline="") as f:
            yield from f


class _Redactor:
    """Discovery-mode state machine shared by text and event runs.

    Every run starts from an empty discovery state, so values found in one
    input never leak into the next.
    """

    def __init__(
        self,
        config: Configuration,
        decisions: DecisionProvider | None = None,
        engine: RedactionEngine | None = None,
    ) -> None:
        self.config = config
        self.mode = config.discovery.mode
        self.decisions = decisions
        self.engine = engine or RedactionEngine(config)
        self.interval = max(1, config.discovery.snapshot_interval)
        self.discovery: PatternDiscoveryEngine | None = None

    @property
    def stats(self) -> RedactionStats:
        return self.engine.stats

    def _start_run(self) -> PatternDiscoveryEngine | None:
        self.engine.set_discovered_patterns(None)
        if self.mode == "none":
            self.discovery = None
        else:
            self.discovery = PatternDiscoveryEngine(
                self.config, self.engine.property_matcher, self.engine.strings
            )
        return self.discovery

    def _snapshot(self, discovery: PatternDiscoveryEngine) -> DiscoveredPatterns:
        snapshot = discovery.discovered()
        self.engine.set_discovered_patterns(snapshot)
        return snapshot

    def _finish_discovery(self, discovery: PatternDiscoveryEngine) -> DiscoveredPatterns:
        snapshot = discovery.discovered()
        logger.info(
            "Discovery found %d values %s", snapshot.total, snapshot.counts_by_type() or ""
        )
        if self.decisions is not None:
            snapshot = apply_decisions(snapshot, self.decisions)
        self.engine.set_discovered_patterns(snapshot)
        return snapshot

    def _run(
        self,
        units: Iterable[T],
        analyze: Callable[[PatternDiscoveryEngine, T], None],
        redact: Callable[[T], R | None],
    ) -> Iterator[R]:
        discovery = self._start_run()
        if discovery is None:
            for unit in units:
                out = redact(unit)
                if out is not None:
                    yield out
            return

        if self.mode == "two_pass":
            if iter(units) is units:
                units = list(units)
            for unit in units:
                analyze(discovery, unit)
            self._finish_discovery(discovery)
            for unit in units:
                out = redact(unit)
                if out is not None:
                    yield out
            return

        processed = 0
        for unit in units:
            analyze(discovery, unit)
            processed += 1
            if processed % self.interval == 0:
                self._snapshot(discovery)
            out = redact(unit)
            if out is not None:
                yield out
        self._snapshot(discovery)
        logger.info("Processed %d units in fast discovery mode", processed)


class TextRedactor(_Redactor):
    """Redacts plain text line by line."""

    def __init__(
        self,
        config: Configuration,
        decisions: DecisionProvider | None = None,
        word_rules: list[WordRule] | None = None,
        engine: RedactionEngine | None = None,
    ) -> None:
        super().__init__(config, decisions, engine)
        self.words = WordRedactor(word_rules, config.general.redaction_text) if word_rules else None

    def _analyze(self, discovery: PatternDiscoveryEngine, line: str) -> None:
        discovery.analyze_text(line)

    def redact_line(self, line: str) -> str:
        result = self.engine.redact_string(None, line)
        if self.words is not None:
            result = self.words.redact_text(result)
        return result

    def redact_lines(self, lines: Iterable[str]) -> Iterator[str]:
        """Redact lines; two_pass mode reads the input twice."""
        return self._run(lines, self._analyze, self.redact_line)

    def redact_text(self, text: str) -> str:
        return "".join(self.redact_lines(text.splitlines(keepends=True)))

    def redact_file(self, input_path: Path, output: TextIO) -> int:
        """Redact a file into output, return the number of lines written."""
        count = 0
        for line in self.redact_lines(FileLines(input_path)):
            output.write(line)
            count += 1
        return count


class EventRedactor(_Redactor):
    """Redacts a stream of events; removed events are never analyzed."""

    def _analyze(self, discovery: PatternDiscoveryEngine, event: Event) -> None:
        if not self.engine.should_remove_event(event):
            discovery.analyze_event(event)

    def redact_events(self, events: Iterable[Event]) -> Iterator[Event]:
        return self._run(events, self._analyze, self.engine.redact_event)
