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

"""Configuration loading, validation and inheritance."""

import copy
import logging
import re
from dataclasses import asdict
from pathlib import Path
from typing import Any
from urllib.parse import urlparse
from urllib.request import url2pathname

import httpx
import yaml

from .errors import (
    CircularDependency,
    ConfigurationError,
    ConfigurationInvalid,
    ConfigurationNotFound,
    NetworkFailure,
)
from .generator import expand_placeholders
from .models import (
    CategoryConfig,
    Configuration,
    CustomExtraction,
    DiscoveryConfig,
    EventConfig,
    FilteringConfig,
    GeneralConfig,
    PropertyConfig,
    PropertyExtraction,
    PseudonymizationConfig,
    PseudonymizationScope,
    StringConfig,
)

logger = logging.getLogger(__name__)

PRESETS_DIR = Path(__file__).parent / "presets"
PRESET_NAMES = ("default", "strict", "hserr")
PARENT_MARKER = "$PARENT"
URL_PREFIXES = ("http://", "https://", "file://")
NETWORK_TIMEOUT = httpx.Timeout(10.0, connect=10.0, read=10.0)

EMAIL_PATTERN = r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"

# Built-in string categories, in the order they are applied.
BUILTIN_CATEGORIES: dict[str, dict[str, Any]] = {
    "home_directories": {
        "patterns": [
            r"/Users/([^/\s]+)",
            r"C:\\Users\\([a-zA-Z0-9_\-]+)",
            r"/home/([^/\s]+)",
        ],
        "capture_group": 1,
        "enable_discovery": True,
        "discovery_type": "username",
        "discovery_capture_group": 1,
    },
    "emails": {
        "patterns": [EMAIL_PATTERN],
        "enable_discovery": True,
        "discovery_type": "email_local_part",
    },
    "ip_addresses": {
        "patterns": [
            r"\b(?:[0-9]{1,3}\.){3}[0-9]{1,3}\b",
            r"\b(?:[0-9a-fA-F]{1,4}:){7}[0-9a-fA-F]{1,4}\b",
        ],
        "ignore_exact": ["127.0.0.1", "0.0.0.0"],
    },
    "uuids": {
        "enabled": False,
        "patterns": [
            r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
        ],
    },
    "ssh_hosts": {
        "enabled": False,
        "patterns": [
            r"ssh://([a-zA-Z0-9.-]+)",
            r"(?:ssh|sftp)://(?:[^@\s]+@)?([a-zA-Z0-9.-]+)",
            r"(?<=ssh\s)[a-zA-Z0-9_-]+@([a-zA-Z0-9.-]+)",
        ],
        "discovery_type": "hostname",
        "discovery_capture_group": 1,
    },
    "hostnames": {
        "enabled": False,
        "patterns": [
            r"\b([a-zA-Z0-9-]+)(?:\.[a-zA-Z0-9-]+)*\.(?:internal|local|corp|lan|intranet)\b"
        ],
        "ignore_exact": ["localhost"],
        "discovery_type": "hostname",
        "discovery_capture_group": 1,
    },
    "internal_urls": {
        "enabled": False,
        "patterns": [
            r"https?://[a-zA-Z0-9.-]+\.(?:internal|local|corp|lan|intranet)(?::[0-9]+)?(?:/\S*)?"
        ],
    },
}

_REQUIRED = "__required__"
_VALUE_TYPES = frozenset({"username", "hostname", "email_local_part", "custom"})

_CATEGORY_SCHEMA: dict[str, Any] = {
    "enabled": bool,
    "patterns": list,
    "capture_group": int,
    "ignore_exact": list,
    "ignore": list,
    "ignore_after": list,
    "enable_discovery": bool,
    "discovery_type": _VALUE_TYPES,
    "discovery_capture_group": int,
    "discovery_min_occurrences": int,
    "discovery_case_sensitive": bool,
    "discovery_whitelist": list,
}

SCHEMA: dict[str, Any] = {
    "parent": str,
    "general": {
        "redaction_text": str,
        "partial_redaction": bool,
        "pseudonymization": {
            "enabled": bool,
            "mode": frozenset({"hash", "counter", "realistic"}),
            "format": frozenset({"redacted", "hash", "custom"}),
            "custom_prefix": str,
            "custom_suffix": str,
            "hash_length": int,
            "hash_algorithm": str,
            "seed": int,
            "scope": {
                "properties": bool,
                "strings": bool,
                "network": bool,
                "paths": bool,
                "ports": bool,
            },
            "replacements": dict,
            "pattern_generators": dict,
        },
    },
    "properties": {
        "enabled": bool,
        "case_sensitive": bool,
        "full_match": bool,
        "patterns": list,
    },
    "strings": {
        "enabled": bool,
        "no_redact": list,
        "patterns": {
            **{name: _CATEGORY_SCHEMA for name in BUILTIN_CATEGORIES},
            "custom": [{_REQUIRED: ("name",), "name": str, **_CATEGORY_SCHEMA}],
        },
    },
    "events": {
        "remove_enabled": bool,
        "removed_types": list,
        "filtering": {
            "include_events": list,
            "exclude_events": list,
            "include_categories": list,
            "exclude_categories": list,
            "include_threads": list,
            "exclude_threads": list,
        },
    },
    "discovery": {
        "mode": frozenset({"none", "fast", "two_pass", "default"}),
        "snapshot_interval": int,
        "min_occurrences": int,
        "case_sensitive": bool,
        "whitelist": list,
        "custom_extractions": [
            {
                _REQUIRED: ("name", "pattern"),
                "name": str,
                "pattern": str,
                "capture_group": int,
                "type": _VALUE_TYPES,
                "case_sensitive": bool,
                "min_occurrences": int,
                "whitelist": list,
                "enabled": bool,
            }
        ],
        "property_extractions": [
            {
                _REQUIRED: ("name", "key_pattern"),
                "name": str,
                "key_pattern": str,
                "value_pattern": str,
                "key_property": str,
                "value_property": str,
                "event_type_filter": str,
                "type": _VALUE_TYPES,
                "case_sensitive": bool,
                "min_occurrences": int,
                "whitelist": list,
                "enabled": bool,
            }
        ],
    },
}

# Lists of mappings merged by their "name" entry instead of by value.
_NAMED_LISTS = {"custom", "custom_extractions", "property_extractions"}


def is_none_source(source: str | None) -> bool:
    """Check whether source means 'no configuration'."""
    return source is None or not str(source).strip() or str(source).strip().lower() == "none"


def preset_names() -> list[str]:
    """Return the names of the bundled presets."""
    return list(PRESET_NAMES)


def _context(text: str, line: int) -> str:
    """Return the lines around a 1-based line number, marking the line itself."""
    lines = text.splitlines()
    start = max(1, line - 3)
    end = min(len(lines), line + 2)
    out = []
    for n in range(start, end + 1):
        marker = ">>> " if n == line else "    "
        out.append(f"{marker}{n:4d}: {lines[n - 1]}")
    return "\n".join(out)


def _invalid(
    message: str, key: str, node: yaml.Node, text: str, suggestion: str | None = None
) -> ConfigurationInvalid:
    line = node.start_mark.line + 1
    column = node.start_mark.column + 1
    return ConfigurationInvalid(
        message,
        key=key,
        line=line,
        column=column,
        context=_context(text, line),
        suggestion=suggestion,
    )


def _validate_node(node: yaml.Node, value: Any, schema: Any, path: str, text: str) -> None:
    """Check a document subtree against the schema, reporting node positions."""
    if value is None:
        return
    if isinstance(schema, dict):
        if not isinstance(value, dict) or not isinstance(node, yaml.MappingNode):
            raise _invalid(f"Property '{path}' must be a mapping", path, node, text)
        valid = [k for k in schema if k != _REQUIRED]
        for key_node, value_node in node.value:
            key = str(key_node.value)
            key_path = f"{path}.{key}" if path else key
            if key not in valid:
                raise _invalid(
                    f"Unknown property '{key_path}'",
                    key_path,
                    key_node,
                    text,
                    suggestion=f"Valid properties here: {', '.join(valid)}",
                )
            _validate_node(value_node, value.get(key), schema[key], key_path, text)
        for key in schema.get(_REQUIRED, ()):
            if key not in value:
                raise _invalid(f"Missing required property '{key}' in '{path}'", path, node, text)
    elif isinstance(schema, list):
        if not isinstance(value, list) or not isinstance(node, yaml.SequenceNode):
            raise _invalid(f"Property '{path}' must be a list", path, node, text)
        for i, (item_node, item) in enumerate(zip(node.value, value)):
            if item is None:
                raise _invalid(f"Empty entry in '{path}'", f"{path}[{i}]", item_node, text)
            _validate_node(item_node, item, schema[0], f"{path}[{i}]", text)
    elif schema is list:
        if not isinstance(value, list):
            raise _invalid(f"Property '{path}' must be a list", path, node, text)
        for item_node, item in zip(node.value, value):
            if isinstance(item, (dict, list)):
                raise _invalid(f"Entries of '{path}' must be plain values", path, item_node, text)
    elif schema is dict:
        if not isinstance(value, dict):
            raise _invalid(f"Property '{path}' must be a mapping", path, node, text)
    elif schema is bool:
        if not isinstance(value, bool):
            raise _invalid(f"Property '{path}' must be true or false", path, node, text)
    elif schema is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _invalid(f"Property '{path}' must be an integer", path, node, text)
    elif schema is str:
        if isinstance(value, (bool, dict, list)):
            raise _invalid(f"Property '{path}' must be a string", path, node, text)
    elif isinstance(schema, frozenset):
        if str(value).lower() not in schema:
            raise _invalid(
                f"Invalid value '{value}' for '{path}'",
                path,
                node,
                text,
                suggestion=f"Use one of: {', '.join(sorted(schema))}",
            )


def parse_document(text: str, source: str) -> dict[str, Any]:
    """Parse and validate a configuration document."""
    try:
        node = yaml.compose(text, Loader=yaml.SafeLoader)
        data = yaml.safe_load(text)
    except yaml.MarkedYAMLError as e:
        mark = e.problem_mark or e.context_mark
        line = mark.line + 1 if mark else None
        raise ConfigurationInvalid(
            f"YAML syntax error in {source}: {e.problem or e}",
            line=line,
            column=mark.column + 1 if mark else None,
            context=_context(text, line) if line else None,
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationInvalid(f"YAML syntax error in {source}: {e}") from e

    if data is None:
        raise ConfigurationNotFound(source, f"Configuration is empty: {source}")
    if not isinstance(data, dict):
        raise ConfigurationInvalid(
            f"Invalid format in {source}: expected a mapping of sections", line=1, column=1
        )
    _validate_node(node, data, SCHEMA, "", text)
    return data


def _merge_named(parent: list[Any], child: list[Any]) -> list[Any]:
    """Merge lists of mappings keyed by name, child entries replacing parent ones."""
    result = [copy.deepcopy(p) for p in parent if p != PARENT_MARKER]
    positions = {item.get("name"): i for i, item in enumerate(result) if isinstance(item, dict)}
    for item in child:
        if item == PARENT_MARKER:
            continue
        name = item.get("name") if isinstance(item, dict) else None
        if name in positions:
            result[positions[name]] = merge_configs(result[positions[name]], item)
        else:
            result.append(copy.deepcopy(item))
    return result


def _merge_lists(parent: list[Any], child: list[Any]) -> list[Any]:
    """Ordered union of two lists, honouring the $PARENT marker."""
    result: list[Any] = []
    if PARENT_MARKER in child:
        for item in child:
            items = parent if item == PARENT_MARKER else [item]
            result.extend(i for i in items if i not in result)
        return result
    for item in [*parent, *child]:
        if item not in result:
            result.append(copy.deepcopy(item))
    return result


def merge_configs(parent: dict[str, Any], child: dict[str, Any]) -> dict[str, Any]:
    """Merge a child document onto its parent.

    Lists are unioned (parent entries first), scalars present in the child
    override the parent and mappings are merged recursively.
    """
    result = copy.deepcopy(parent)
    for key, value in child.items():
        if value is None:
            continue
        base = result.get(key)
        if isinstance(value, dict) and isinstance(base, dict):
            result[key] = merge_configs(base, value)
        elif isinstance(value, list) and isinstance(base, list):
            if key in _NAMED_LISTS:
                result[key] = _merge_named(base, value)
            else:
                result[key] = _merge_lists(base, value)
        else:
            result[key] = strip_parent_markers(copy.deepcopy(value))
    return result


def strip_parent_markers(data: Any) -> Any:
    """Remove $PARENT markers from a document that has no parent."""
    if isinstance(data, dict):
        return {k: strip_parent_markers(v) for k, v in data.items()}
    if isinstance(data, list):
        return [strip_parent_markers(v) for v in data if v != PARENT_MARKER]
    return data


def _present(data: dict[str, Any] | None, exclude: tuple[str, ...] = ()) -> dict[str, Any]:
    """Return the entries of data that are set."""
    return {k: v for k, v in (data or {}).items() if v is not None and k not in exclude}


def _str_list(values: list[Any] | None) -> list[str]:
    return [str(v) for v in values or []]


def _build_category(name: str, data: dict[str, Any]) -> CategoryConfig:
    values = _present(data, exclude=("name",))
    for key in ("patterns", "ignore_exact", "ignore", "ignore_after", "discovery_whitelist"):
        if key in values:
            values[key] = _str_list(values[key])
    if "discovery_type" in values:
        values["discovery_type"] = str(values["discovery_type"]).lower()
    return CategoryConfig(name=str(name), **values)


def _build_strings(data: dict[str, Any]) -> StringConfig:
    patterns = data.get("patterns") or {}
    categories = [
        _build_category(name, {**defaults, **_present(patterns.get(name))})
        for name, defaults in BUILTIN_CATEGORIES.items()
    ]
    for custom in patterns.get("custom") or []:
        categories.append(_build_category(custom["name"], custom))
    return StringConfig(
        enabled=data.get("enabled", True) is not False,
        no_redact=_str_list(data.get("no_redact")),
        categories=categories,
    )


def _build_pseudonymization(data: dict[str, Any]) -> PseudonymizationConfig:
    values = _present(data, exclude=("scope",))
    for key in ("mode", "format"):
        if key in values:
            values[key] = str(values[key]).lower()
    for key in ("replacements", "pattern_generators"):
        if key in values:
            values[key] = {str(k): str(v) for k, v in values[key].items()}
    for key in ("custom_prefix", "custom_suffix", "hash_algorithm"):
        if key in values:
            values[key] = str(values[key])
    scope = PseudonymizationScope(**_present(data.get("scope")))
    return PseudonymizationConfig(scope=scope, **values)


def _build_discovery(data: dict[str, Any]) -> DiscoveryConfig:
    values = _present(data, exclude=("custom_extractions", "property_extractions"))
    if "mode" in values:
        mode = str(values["mode"]).lower()
        values["mode"] = "two_pass" if mode == "default" else mode
    if "whitelist" in values:
        values["whitelist"] = _str_list(values["whitelist"])
    custom = []
    for item in data.get("custom_extractions") or []:
        item = _present(item)
        if "type" in item:
            item["type"] = str(item["type"]).lower()
        custom.append(CustomExtraction(**item))
    props = []
    for item in data.get("property_extractions") or []:
        item = _present(item)
        if "type" in item:
            item["type"] = str(item["type"]).lower()
        props.append(PropertyExtraction(**item))
    return DiscoveryConfig(custom_extractions=custom, property_extractions=props, **values)


def build_configuration(data: dict[str, Any], source: str | None = None) -> Configuration:
    """Build a Configuration from a validated, merged document."""
    general = data.get("general") or {}
    properties = _present(data.get("properties"))
    if "patterns" in properties:
        properties["patterns"] = _str_list(properties["patterns"])
    events = _present(data.get("events"), exclude=("filtering",))
    if "removed_types" in events:
        events["removed_types"] = _str_list(events["removed_types"])
    filtering = {k: _str_list(v) for k, v in _present((data.get("events") or {}).get("filtering")).items()}

    config = Configuration(
        parent=str(data.get("parent") or "none"),
        general=GeneralConfig(
            pseudonymization=_build_pseudonymization(general.get("pseudonymization") or {}),
            **{k: (str(v) if k == "redaction_text" else v)
               for k, v in _present(general, exclude=("pseudonymization",)).items()},
        ),
        properties=PropertyConfig(**properties),
        strings=_build_strings(data.get("strings") or {}),
        events=EventConfig(filtering=FilteringConfig(**filtering), **events),
        discovery=_build_discovery(data.get("discovery") or {}),
        source=source,
    )
    config.data = config_to_dict(config)
    return config


def config_to_dict(config: Configuration) -> dict[str, Any]:
    """Return the effective document of a configuration."""
    patterns: dict[str, Any] = {}
    custom = []
    for cat in config.strings.categories:
        entry = asdict(cat)
        if cat.name in BUILTIN_CATEGORIES:
            del entry["name"]
            patterns[cat.name] = entry
        else:
            custom.append(entry)
    patterns["custom"] = custom
    return {
        "parent": config.parent,
        "general": asdict(config.general),
        "properties": asdict(config.properties),
        "strings": {
            "enabled": config.strings.enabled,
            "no_redact": list(config.strings.no_redact),
            "patterns": patterns,
        },
        "events": asdict(config.events),
        "discovery": asdict(config.discovery),
    }


def dump_config(config: Configuration) -> str:
    """Serialize a configuration to YAML."""
    return yaml.dump(config_to_dict(config), default_flow_style=False, sort_keys=False)


def _check_regexes(config: Configuration) -> None:
    """Compile every regex of a configuration, failing on the first invalid one."""
    checks: list[tuple[str, str]] = []
    for cat in config.strings.categories:
        base = f"strings.patterns.{cat.name}"
        checks += [(f"{base}.patterns", p) for p in cat.patterns]
        checks += [(f"{base}.ignore", p) for p in cat.ignore]
    generators = config.general.pseudonymization.pattern_generators
    for name, template in generators.items():
        key = f"general.pseudonymization.pattern_generators.{name}"
        checks.append((key, expand_placeholders(template)))
    for ext in config.discovery.custom_extractions:
        checks.append((f"discovery.custom_extractions.{ext.name}.pattern", ext.pattern))
    for prop in config.discovery.property_extractions:
        base = f"discovery.property_extractions.{prop.name}"
        checks.append((f"{base}.key_pattern", prop.key_pattern))
        checks.append((f"{base}.value_pattern", prop.value_pattern))
        if prop.event_type_filter:
            checks.append((f"{base}.event_type_filter", prop.event_type_filter))
    for key, pattern in checks:
        try:
            re.compile(pattern)
        except re.error as e:
            raise ConfigurationInvalid(
                f"Invalid regular expression '{pattern}' in {key}: {e}", key=key
            ) from e


class ConfigLoader:
    """Resolves configurations from presets, files and URLs.

    Resolved configurations are cached by source string for the lifetime of
    the loader. Parent chains are followed recursively and merged.
    """

    def __init__(self, client: httpx.Client | None = None) -> None:
        self._client = client
        self._cache: dict[str, Configuration] = {}
        self._loading: list[str] = []

    def clear_cache(self) -> None:
        """Forget every cached configuration."""
        self._cache.clear()
        self._loading.clear()

    def load(self, source: str | None) -> Configuration:
        return self.resolve(source)

    def resolve(self, source: str | None) -> Configuration:
        """Resolve source and its parent chain into a merged Configuration."""
        if is_none_source(source):
            return build_configuration({}, source="none")
        source = str(source)
        if source in self._cache:
            logger.debug("Using cached configuration for %s", source)
            return self._cache[source]
        if source in self._loading:
            raise CircularDependency([*self._loading, source])

        self._loading.append(source)
        try:
            text, base_dir = self._read(source)
            raw = parse_document(text, source)
            parent_ref = raw.get("parent")
            if is_none_source(parent_ref):
                merged = strip_parent_markers(raw)
            else:
                parent = self._resolve_parent(str(parent_ref), base_dir, source)
                merged = merge_configs(parent.data, raw)
            config = build_configuration(merged, source=source)
            _check_regexes(config)
        finally:
            self._loading.pop()

        self._cache[source] = config
        logger.debug("Loaded configuration %s (parent: %s)", source, config.parent)
        return config

    def _resolve_parent(self, parent_ref: str, base_dir: Path | None, source: str) -> Configuration:
        ref = parent_ref
        if base_dir is not None and not self._is_preset(ref) and not ref.startswith(URL_PREFIXES):
            path = Path(ref).expanduser()
            if not path.is_absolute():
                ref = str(base_dir / path)
        try:
            return self.resolve(ref)
        except CircularDependency:
            raise
        except ConfigurationNotFound as e:
            e.message = (
                f"Failed to load parent configuration: {parent_ref}\n"
                f"Referenced from: {source}\n{e.message}"
            )
            raise

    @staticmethod
    def _is_preset(source: str) -> bool:
        return source.lower() in PRESET_NAMES

    def _read(self, source: str) -> tuple[str, Path | None]:
        """Return the document text of source and the directory it lives in."""
        if self._is_preset(source):
            path = PRESETS_DIR / f"{source.lower()}.yaml"
            return path.read_text(encoding="utf-8"), None
        if source.startswith(("http://", "https://")):
            return self._fetch_url(source), None
        if source.startswith("file://"):
            parsed = urlparse(source)
            if parsed.netloc not in ("", "localhost"):
                raise NetworkFailure(source, f"unsupported file URL host '{parsed.netloc}'")
            path = Path(url2pathname(parsed.path))
            return self._read_file(path, source), path.parent
        path = Path(source).expanduser()
        return self._read_file(path, source), path.parent

    def _read_file(self, path: Path, source: str) -> str:
        if not path.exists():
            raise ConfigurationNotFound(
                source,
                f"Configuration file not found: {path}",
                f"Use one of the presets ({', '.join(PRESET_NAMES)}) or an existing file.",
            )
        if not path.is_file():
            raise ConfigurationNotFound(source, f"Configuration path is not a file: {path}")
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationNotFound(source, f"Configuration file not readable: {path}: {e}") from e
        if not text.strip():
            raise ConfigurationNotFound(source, f"Configuration file is empty: {path}")
        return text

    def _fetch_url(self, url: str) -> str:
        logger.info("Fetching configuration from %s", url)
        try:
            if self._client is not None:
                response = self._client.get(url, timeout=NETWORK_TIMEOUT, follow_redirects=True)
            else:
                response = httpx.get(url, timeout=NETWORK_TIMEOUT, follow_redirects=True)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkFailure(url, e) from e
        if not response.text.strip():
            raise ConfigurationNotFound(url, f"Configuration at {url} is empty")
        return response.text


def validate_file(path: Path, loader: ConfigLoader | None = None) -> list[str]:
    """Validate a configuration file, return list of error messages (empty if valid)."""
    loader = loader or ConfigLoader()
    try:
        loader.resolve(str(path))
    except ConfigurationError as e:
        return [str(e)]
    return []
