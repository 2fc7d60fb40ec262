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

"""Generation of replacement values from regex templates and sample data."""

import hashlib
import itertools
import logging
import random
import re
from collections.abc import Iterator

import exrex

logger = logging.getLogger(__name__)

FIRST_NAMES = [
    "alice", "bob", "charlie", "diana", "eve", "frank", "grace", "henry", "iris",
    "jack", "kate", "leo", "mary", "nathan", "olivia", "peter", "quinn", "rachel",
    "sam", "tina", "uma", "victor", "wendy", "xavier", "yara", "zoe",
]  # fmt: skip

LAST_NAMES = [
    "smith", "johnson", "williams", "brown", "jones", "garcia", "miller", "davis",
    "rodriguez", "martinez", "hernandez", "lopez", "gonzalez", "wilson", "anderson",
    "thomas", "taylor", "moore", "jackson", "martin", "lee", "perez", "thompson",
]  # fmt: skip

COMPANIES = ["acme", "globex", "initech", "umbrella", "hooli", "vandelay", "stark", "wayne"]
DOMAINS = ["example.com", "example.org", "example.net", "test.com", "demo.io"]
HOST_ROLES = ["app", "db", "web", "build", "cache", "worker"]

_USERS = "(" + "|".join(FIRST_NAMES) + ")"
_SURNAMES = "(smith|johnson|williams|brown|jones|garcia|miller|davis)"

PLACEHOLDERS = {
    "{users}": _USERS,
    "{emails}": _USERS + r"\." + _SURNAMES + r"@(example|test|demo|sample)\.(com|org|net|io)",
    "{names}": _USERS + r"\." + _SURNAMES,
}

MIN_RECOMMENDED_CARDINALITY = 100
CARDINALITY_CAP = 10000
REPEAT_LIMIT = 20

_EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_IPV4 = re.compile(r"(?:[0-9]{1,3}\.){3}[0-9]{1,3}")
_HOME = re.compile(r"(/Users/|/home/|C:\\Users\\)([^/\\]+)(.*)", re.DOTALL)
_HOSTNAME = re.compile(r"[a-zA-Z0-9-]+(?:\.[a-zA-Z0-9-]+)+")


def expand_placeholders(template: str) -> str:
    """Replace {users}, {emails} and {names} with their sample alternations."""
    for placeholder, expansion in PLACEHOLDERS.items():
        template = template.replace(placeholder, expansion)
    return template


def estimate_cardinality(template: str, cap: int = CARDINALITY_CAP) -> int:
    """Count the distinct values of a template, up to cap.

    Returns -1 when the template cannot be enumerated.
    """
    try:
        return sum(1 for _ in itertools.islice(exrex.generate(template, REPEAT_LIMIT), cap))
    except Exception as e:  # exrex raises a variety of errors for unsupported syntax
        logger.debug("Cannot estimate cardinality of %r: %s", template, e)
        return -1


class UniqueValueIterator:
    """Resumable iterator over the distinct strings a template can produce."""

    def __init__(self, template: str, limit: int = REPEAT_LIMIT) -> None:
        self.template = template
        self.limit = limit
        self.produced = 0
        self.exhausted = False
        self._seen: set[str] = set()
        self._values: Iterator[str] = exrex.generate(template, limit)

    def next_value(self) -> str | None:
        """Return the next value not produced before, or None when exhausted."""
        if self.exhausted:
            return None
        for value in self._values:
            if value not in self._seen:
                self._seen.add(value)
                self.produced += 1
                return value
        self.exhausted = True
        return None

    def reset(self) -> None:
        """Start over from the first value of the template."""
        self.produced = 0
        self.exhausted = False
        self._seen.clear()
        self._values = exrex.generate(self.template, self.limit)


class PatternBasedGenerator:
    """Generates stable replacement values from named regex templates."""

    def __init__(self, templates: dict[str, str]) -> None:
        self.templates = {name: expand_placeholders(t) for name, t in templates.items()}
        self.cardinality: dict[str, int] = {}
        self._iterators: dict[str, UniqueValueIterator] = {}
        self._memo: dict[str, dict[str, str]] = {}
        for name, template in self.templates.items():
            count = estimate_cardinality(template)
            self.cardinality[name] = count
            if 0 <= count < MIN_RECOMMENDED_CARDINALITY:
                logger.warning(
                    "Pattern '%s' only produces %d distinct values (recommended: at least %d); "
                    "pseudonyms may repeat",
                    name,
                    count,
                    MIN_RECOMMENDED_CARDINALITY,
                )

    @property
    def low_cardinality(self) -> list[str]:
        """Names of patterns below the recommended cardinality."""
        return [n for n, c in self.cardinality.items() if 0 <= c < MIN_RECOMMENDED_CARDINALITY]

    def has_pattern(self, name: str) -> bool:
        return name in self.templates

    def pattern_names(self) -> list[str]:
        return list(self.templates)

    def generate(self, name: str, original: str) -> str | None:
        """Return the value for original, the same one on every call."""
        if name not in self.templates:
            return None
        memo = self._memo.setdefault(name, {})
        if original in memo:
            return memo[original]

        iterator = self._iterators.get(name)
        if iterator is None:
            iterator = self._iterators[name] = UniqueValueIterator(self.templates[name])
        value = iterator.next_value()
        if value is None:
            logger.warning(
                "Pattern '%s' exhausted after %d unique values; values will repeat",
                name,
                iterator.produced,
            )
            iterator.reset()
            value = iterator.next_value()
            if value is None:
                return None
        memo[original] = value
        return value

    def generate_random(self, name: str) -> str | None:
        """Return a random value of the named pattern."""
        if name not in self.templates:
            return None
        return exrex.getone(self.templates[name], REPEAT_LIMIT)

    def clear_pattern_cache(self, name: str) -> None:
        self._memo.pop(name, None)
        self._iterators.pop(name, None)

    def clear_all_caches(self) -> None:
        self._memo.clear()
        self._iterators.clear()


class RealisticDataGenerator:
    """Produces plausible looking usernames, emails, hosts and paths.

    Each value is derived from a random generator seeded with the original,
    so the same input always yields the same output for a given seed.
    """

    def __init__(self, seed: int = 0) -> None:
        self.seed = seed

    def _rng(self, original: str) -> random.Random:
        digest = hashlib.sha256(f"{self.seed}:{original}".encode()).digest()
        return random.Random(int.from_bytes(digest[:8], "big"))

    def generate_username(self, original: str = "") -> str:
        rng = self._rng(original)
        style = rng.randrange(3)
        if style == 0:
            return f"user{rng.randrange(1, 100):02d}"
        if style == 1:
            return f"user_{rng.randrange(1, 100):02d}"
        return f"{rng.choice(FIRST_NAMES)}.{rng.choice(LAST_NAMES)}"

    def generate_email(self, original: str = "") -> str:
        rng = self._rng(original)
        return f"{rng.choice(FIRST_NAMES)}.{rng.choice(LAST_NAMES)}@{rng.choice(DOMAINS)}"

    def generate_hostname(self, original: str = "") -> str:
        rng = self._rng(original)
        return f"{rng.choice(HOST_ROLES)}-{rng.randrange(1, 100):02d}.{rng.choice(COMPANIES)}.example"

    def generate_ip(self, original: str = "") -> str:
        h = hashlib.sha256(f"{self.seed}:{original}".encode()).digest()
        return f"10.{h[0]}.{h[1]}.{h[2]}"

    def generate_user_folder(self, original: str) -> str:
        """Replace the user name of a home directory path, keeping its style."""
        m = _HOME.fullmatch(original)
        if not m:
            return self.generate_path(original)
        return f"{m.group(1)}{self._rng(m.group(2)).choice(FIRST_NAMES)}{m.group(3)}"

    def generate_path(self, original: str = "") -> str:
        rng = self._rng(original)
        base = rng.choice(["/Users/", "/home/", "C:\\Users\\"])
        return f"{base}{rng.choice(FIRST_NAMES)}"

    def generate_replacement(self, value: str) -> str:
        """Pick a generator according to what value looks like."""
        if _EMAIL.fullmatch(value):
            return self.generate_email(value)
        if _HOME.fullmatch(value):
            return self.generate_user_folder(value)
        if _IPV4.fullmatch(value):
            return self.generate_ip(value)
        if _HOSTNAME.fullmatch(value) and any(c.isalpha() for c in value):
            return self.generate_hostname(value)
        return self.generate_username(value)
