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

"""Consistent pseudonyms for redacted values."""

import hashlib
import logging
import zlib

from .generator import PatternBasedGenerator, RealisticDataGenerator
from .models import PseudonymizationConfig, PseudonymizationScope

logger = logging.getLogger(__name__)

MIN_HASH_LENGTH = 6
MAX_HASH_LENGTH = 32
FIRST_PORT = 1000


def _normalize_algorithm(name: str) -> str:
    """Map names like 'SHA-256' onto hashlib names, falling back to sha256."""
    normalized = name.lower().replace("-", "").replace("_", "")
    for candidate in hashlib.algorithms_available:
        if candidate.replace("-", "").replace("_", "") == normalized and not candidate.startswith(
            "shake"
        ):
            return candidate
    logger.warning("Unknown hash algorithm %r, using sha256", name)
    return "sha256"


class Pseudonymizer:
    """Replaces values with pseudonyms that stay the same for the same input."""

    def __init__(self, config: PseudonymizationConfig | None = None) -> None:
        self.config = config or PseudonymizationConfig()
        self.enabled = self.config.enabled
        self.scope: PseudonymizationScope = self.config.scope
        self.hash_length = max(MIN_HASH_LENGTH, min(MAX_HASH_LENGTH, self.config.hash_length))
        self.algorithm = _normalize_algorithm(self.config.hash_algorithm)
        self.replacements = dict(self.config.replacements)
        self._cache: dict[str, str] = {}
        self._counter = 0
        self._port_counter = FIRST_PORT
        self._ports: dict[int, int] = {}

        seed = self.config.seed
        if seed is None:
            seed = zlib.crc32((self.config.custom_prefix + self.config.custom_suffix).encode())
        self.realistic = RealisticDataGenerator(seed)
        self.generator = (
            PatternBasedGenerator(self.config.pattern_generators)
            if self.config.pattern_generators
            else None
        )

    @classmethod
    def disabled(cls) -> "Pseudonymizer":
        return cls(PseudonymizationConfig(enabled=False))

    def _hash(self, value: str) -> str:
        h = hashlib.new(self.algorithm)
        if self.config.seed is not None:
            h.update(f"{self.config.seed}:".encode())
        h.update(value.encode())
        return h.hexdigest()

    def _format(self, identifier: str) -> str:
        if self.config.format == "hash":
            return f"<hash:{identifier}>"
        if self.config.format == "custom":
            return f"{self.config.custom_prefix}{identifier}{self.config.custom_suffix}"
        return f"<redacted:{identifier}>"

    def _generate(self, value: str) -> str:
        if self.config.mode == "realistic":
            return self.realistic.generate_replacement(value)
        if self.config.mode == "counter":
            self._counter += 1
            return self._format(str(self._counter))
        return self._format(self._hash(value)[: self.hash_length])

    def pseudonymize(self, value: str, fallback: str) -> str:
        """Return the pseudonym for value, or fallback when disabled."""
        if not self.enabled or value is None:
            return fallback
        if value in self.replacements:
            return self.replacements[value]
        if value not in self._cache:
            self._cache[value] = self._generate(value)
            logger.debug("New pseudonym (cache size %d)", len(self._cache))
        return self._cache[value]

    def pseudonymize_with_pattern(self, value: str, pattern_name: str, fallback: str) -> str:
        """Like pseudonymize, but prefer the regex template named pattern_name."""
        if not self.enabled or value is None:
            return fallback
        if value in self.replacements:
            return self.replacements[value]
        if value in self._cache:
            return self._cache[value]
        if self.generator is not None and self.generator.has_pattern(pattern_name):
            generated = self.generator.generate(pattern_name, value)
            if generated is not None:
                self._cache[value] = generated
                return generated
        return self.pseudonymize(value, fallback)

    def pseudonymize_port(self, port: int) -> int:
        """Map a port number onto a stable port counting up from 1000."""
        if not self.enabled or not self.scope.ports:
            return port
        if port not in self._ports:
            self._ports[port] = self._port_counter
            self._port_counter += 1
        return self._ports[port]

    def clear_cache(self) -> None:
        self._cache.clear()
        self._ports.clear()
        self._counter = 0
        self._port_counter = FIRST_PORT
        if self.generator is not None:
            self.generator.clear_all_caches()
