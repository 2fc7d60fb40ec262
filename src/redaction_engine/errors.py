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

"""Exceptions raised by configuration loading and rule parsing."""


class RedactionError(Exception):
    """Base exception for redaction engine errors."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class ConfigurationError(RedactionError):
    """A configuration could not be resolved."""


class ConfigurationNotFound(ConfigurationError):
    """Preset, file or URL does not exist or yields nothing."""

    def __init__(self, source: str, message: str | None = None, suggestion: str | None = None):
        self.source = source
        super().__init__(message or f"Configuration not found: {source}", suggestion)


class ConfigurationInvalid(ConfigurationError):
    """A configuration document is malformed or contains unknown keys."""

    def __init__(
        self,
        message: str,
        key: str | None = None,
        line: int | None = None,
        column: int | None = None,
        context: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.key = key
        self.line = line
        self.column = column
        self.context = context
        full = message
        if line is not None:
            full = f"{message} (line {line}, column {column})"
        if context:
            full = f"{full}\n\nNear line {line}:\n{context}"
        super().__init__(full, suggestion)


class CircularDependency(ConfigurationError):
    """A parent chain refers back to a configuration that is still loading."""

    def __init__(self, chain: list[str]) -> None:
        self.chain = chain
        super().__init__(
            f"Circular parent reference detected: {chain[-1]}",
            f"Loading chain: {' -> '.join(chain)}",
        )


class NetworkFailure(ConfigurationNotFound):
    """A remote configuration could not be fetched."""

    def __init__(self, url: str, cause: BaseException | str) -> None:
        self.url = url
        self.cause = cause
        super().__init__(
            url,
            f"Failed to fetch configuration from {url}: {cause}",
            "Check the URL and your network connection, or use a local file.",
        )


class InvalidRule(RedactionError):
    """A word rule line could not be parsed."""

    def __init__(self, message: str, line: str) -> None:
        self.line = line
        super().__init__(f"{message}: {line!r}")
