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

"""Command-line interface for the redaction engine."""

import argparse
import copy
import logging
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import NoReturn, TextIO

from .config import ConfigLoader, dump_config, preset_names, validate_file
from .decisions import Decision, DecisionManager
from .engine import RedactionEngine
from .errors import RedactionError
from .models import Configuration, DiscoveredValue
from .redactor import FileLines, TextRedactor
from .words import WordDiscovery, WordRedactor, load_rules_file

logger = logging.getLogger(__name__)

DISCOVERY_MODES = ["none", "fast", "two_pass", "default"]

PROMPT_CHOICES = {
    "k": Decision("keep"),
    "r": Decision("redact"),
    "K": Decision("keep", apply_to_all=True),
    "R": Decision("redact", apply_to_all=True),
}


def _configure_logging(args: argparse.Namespace) -> None:
    if args.debug:
        level = logging.DEBUG
    elif args.verbose:
        level = logging.INFO
    elif args.quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(stream=sys.stderr, format="%(levelname)s: %(message)s")
    logging.getLogger("redaction_engine").setLevel(level)


def _load_config(
    source: str | None, discovery_mode: str | None = None, pseudonymize: bool = False
) -> Configuration:
    """Resolve a configuration and apply command-line overrides to a copy."""
    config = ConfigLoader().resolve(source)
    if not discovery_mode and not pseudonymize:
        return config
    config = copy.deepcopy(config)
    if discovery_mode:
        config.discovery.mode = "two_pass" if discovery_mode == "default" else discovery_mode
    if pseudonymize:
        config.general.pseudonymization.enabled = True
    return config


def terminal_prompt(value: DiscoveredValue) -> Decision:
    """Ask on the terminal what to do with a discovered value."""
    print(
        f"\nDiscovered {value.type} '{value.value}' "
        f"({value.occurrences} occurrence(s), found by {value.source})",
        file=sys.stderr,
    )
    while True:
        print(
            "[k]eep, [r]edact, re[p]lace, [K]eep all, [R]edact all: ",
            end="",
            file=sys.stderr,
            flush=True,
        )
        answer = sys.stdin.readline()
        if not answer:
            return Decision("redact")
        answer = answer.strip()
        if answer in PROMPT_CHOICES:
            choice = PROMPT_CHOICES[answer]
            return Decision(choice.action, apply_to_all=choice.apply_to_all)
        if answer == "p":
            print("Replacement: ", end="", file=sys.stderr, flush=True)
            replacement = sys.stdin.readline().strip()
            if replacement:
                return Decision("replace", replacement)
        print(f"Unknown choice '{answer}'", file=sys.stderr)


def _write_lines(lines: Iterable[str], output: TextIO) -> int:
    count = 0
    for line in lines:
        output.write(line)
        count += 1
    return count


def _emit(lines: Iterable[str], output: str | None) -> int:
    """Write lines to the output file, or stdout when none is given."""
    if output:
        with Path(output).open("w", encoding="utf-8", newline="") as f:
            return _write_lines(lines, f)
    return _write_lines(lines, sys.stdout)


def _input_lines(name: str) -> Iterable[str] | None:
    if name == "-":
        return sys.stdin
    path = Path(name)
    if not path.is_file():
        print(f"Error: File not found: {path}", file=sys.stderr)
        return None
    return FileLines(path)


def cmd_redact_text(args: argparse.Namespace) -> int:
    """Redact a text file."""
    if args.interactive and args.input == "-":
        print("Error: --interactive needs an input file, stdin answers the prompts", file=sys.stderr)
        return 1
    lines = _input_lines(args.input)
    if lines is None:
        return 1

    config = _load_config(args.config, args.discovery_mode, args.pseudonymize)
    decisions = None
    if args.interactive or args.decisions:
        if config.discovery.mode != "two_pass":
            logger.warning("Decisions are only collected in two_pass discovery mode")
        decisions = DecisionManager(
            Path(args.decisions) if args.decisions else None,
            prompt=terminal_prompt if args.interactive else None,
        )
    rules = load_rules_file(Path(args.rules)) if args.rules else None

    redactor = TextRedactor(config, decisions, rules)
    count = _emit(redactor.redact_lines(lines), args.output)
    logger.info("Wrote %d lines", count)

    if args.stats:
        print(redactor.stats.summary(), file=sys.stderr)
        if redactor.discovery is not None:
            stats = redactor.discovery.statistics()
            print(f"Discovered values: {stats['discovered']}", file=sys.stderr)
            for kind, n in stats["by_type"].items():
                print(f"  {kind}: {n}", file=sys.stderr)
    return 0


def cmd_words_discover(args: argparse.Namespace) -> int:
    """Collect candidate words into a rules file for review."""
    discovery = WordDiscovery()
    for name in args.files:
        lines = _input_lines(name)
        if lines is None:
            return 1
        for line in lines:
            discovery.discover_text(line)

    rules = discovery.format_rules()
    if args.output:
        Path(args.output).write_text(rules, encoding="utf-8")
        print(f"Wrote {len(discovery.words)} words to {args.output}", file=sys.stderr)
    else:
        sys.stdout.write(rules)
    return 0


def cmd_words_redact(args: argparse.Namespace) -> int:
    """Apply a word rules file to a text file."""
    lines = _input_lines(args.input)
    if lines is None:
        return 1
    rules_path = Path(args.rules)
    if not rules_path.is_file():
        print(f"Error: File not found: {rules_path}", file=sys.stderr)
        return 1
    redactor = WordRedactor(load_rules_file(rules_path))
    _emit(redactor.redact_lines(lines), args.output)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a configuration file and its parents."""
    path = Path(args.config)
    errors = validate_file(path)
    if errors:
        print(f"Validation errors in {path}:", file=sys.stderr)
        for err in errors:
            print(f"  {err}", file=sys.stderr)
        return 1
    print(f"{path}: OK")
    return 0


def cmd_generate_config(args: argparse.Namespace) -> int:
    """Write the effective configuration of a preset as YAML."""
    config = ConfigLoader().resolve(args.preset)
    text = f"# Generated from preset '{args.preset}'\n" + dump_config(config)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Wrote {args.output}", file=sys.stderr)
    else:
        sys.stdout.write(text)
    return 0


def cmd_test(args: argparse.Namespace) -> int:
    """Show what a configuration does to a single value or event type."""
    engine = RedactionEngine(_load_config(args.config))
    if args.event:
        removed = engine.should_remove_event(args.event)
        print(f"{args.event}: {'removed' if removed else 'kept'}")
        return 0
    redacted = engine.redact(args.field, args.value)
    if args.field and engine.is_sensitive(args.field):
        print(f"Field '{args.field}' is sensitive", file=sys.stderr)
    print(redacted)
    return 0


def main() -> int | NoReturn:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="redact-engine", description="Redact sensitive data from text and events"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show progress information")
    parser.add_argument("--debug", action="store_true", help="Show debug output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only show errors")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # redact-text subcommand
    text_parser = subparsers.add_parser("redact-text", help="Redact a text file")
    text_parser.add_argument("input", help="Input file, - for stdin")
    text_parser.add_argument("-o", "--output", help="Output file (default: stdout)")
    text_parser.add_argument("--config", help="Preset name, file path or URL")
    text_parser.add_argument("--discovery-mode", choices=DISCOVERY_MODES, help="Discovery mode")
    text_parser.add_argument("--decisions", help="File to load and save decisions")
    text_parser.add_argument(
        "--interactive", action="store_true", help="Ask about every discovered value"
    )
    text_parser.add_argument(
        "--pseudonymize", action="store_true", help="Replace values with stable pseudonyms"
    )
    text_parser.add_argument("--rules", help="Word rules applied after redaction")
    text_parser.add_argument("--stats", action="store_true", help="Print statistics to stderr")

    # words subcommand group
    words_parser = subparsers.add_parser("words", help="Word based redaction")
    words_sub = words_parser.add_subparsers(dest="words_command", required=True)

    # words discover
    discover_parser = words_sub.add_parser("discover", help="Collect candidate words")
    discover_parser.add_argument("files", nargs="+", help="Files to scan")
    discover_parser.add_argument("-o", "--output", help="Rules file to write")

    # words redact
    words_redact_parser = words_sub.add_parser("redact", help="Apply word rules to a file")
    words_redact_parser.add_argument("input", help="Input file, - for stdin")
    words_redact_parser.add_argument("--rules", required=True, help="Word rules file")
    words_redact_parser.add_argument("-o", "--output", help="Output file (default: stdout)")

    # validate subcommand
    validate_parser = subparsers.add_parser("validate", help="Validate a configuration file")
    validate_parser.add_argument("config", help="Configuration file")

    # generate-config subcommand
    generate_parser = subparsers.add_parser(
        "generate-config", help="Print the effective configuration of a preset"
    )
    generate_parser.add_argument(
        "--preset", default="default", choices=preset_names(), help="Preset to start from"
    )
    generate_parser.add_argument("-o", "--output", help="Output file (default: stdout)")

    # test subcommand
    test_parser = subparsers.add_parser("test", help="Try a configuration on one value")
    test_parser.add_argument("--config", help="Preset name, file path or URL")
    test_parser.add_argument("--field", help="Field name of the value")
    target = test_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--value", help="Value to redact")
    target.add_argument("--event", help="Event type to check for removal")

    args = parser.parse_args()
    _configure_logging(args)

    commands = {
        "redact-text": cmd_redact_text,
        "validate": cmd_validate,
        "generate-config": cmd_generate_config,
        "test": cmd_test,
    }
    try:
        if args.command == "words":
            if args.words_command == "discover":
                return cmd_words_discover(args)
            if args.words_command == "redact":
                return cmd_words_redact(args)
        if args.command in commands:
            return commands[args.command](args)
    except RedactionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1
