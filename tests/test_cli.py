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

"""Tests for CLI."""

import io
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from redaction_engine.cli import main


@pytest.fixture
def project_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Set up a test project directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def log_file(project_dir: Path) -> Path:
    """Create an input file mentioning a user several times."""
    path = project_dir / "app.log"
    path.write_text("User john_doe logged in\n/home/john_doe/x\nbye john_doe\n")
    return path


def run_cli(*args: str, stdin_text: str = "") -> tuple[int, str, str]:
    """Run CLI with given args and capture output."""
    stdout = io.StringIO()
    stderr = io.StringIO()
    stdin = io.StringIO(stdin_text)
    with (
        patch.object(sys, "argv", ["redact-engine", *args]),
        patch.object(sys, "stdout", stdout),
        patch.object(sys, "stderr", stderr),
        patch.object(sys, "stdin", stdin),
    ):
        try:
            code = main()
        except SystemExit as e:
            code = e.code if isinstance(e.code, int) else 1
    return code, stdout.getvalue(), stderr.getvalue()


def test_redact_text_default(log_file: Path) -> None:
    """Test redacting a file with the default configuration."""
    code, out, err = run_cli("redact-text", str(log_file))
    assert code == 0
    assert out == "User john_doe logged in\n/home/***/x\nbye john_doe\n"


def test_redact_text_two_pass(log_file: Path) -> None:
    """Test the discovery mode override."""
    code, out, err = run_cli("redact-text", str(log_file), "--discovery-mode", "two_pass")
    assert code == 0
    assert out == "User *** logged in\n/home/***/x\nbye ***\n"


def test_redact_text_to_output_file(log_file: Path, project_dir: Path) -> None:
    """Test writing the redacted text to a file."""
    output = project_dir / "out.log"
    code, out, err = run_cli("redact-text", str(log_file), "-o", str(output), "--stats")
    assert code == 0
    assert out == ""
    assert output.read_text().startswith("User john_doe logged in\n/home/***/x\n")
    assert "Values redacted: 1" in err


def test_redact_text_from_stdin(project_dir: Path) -> None:
    """Test reading the input from stdin."""
    code, out, err = run_cli("redact-text", "-", stdin_text="mail bob@corp.com\n")
    assert code == 0
    assert out == "mail ***\n"


def test_redact_text_interactive(log_file: Path, project_dir: Path) -> None:
    """Test answering discovery prompts on stdin."""
    decisions = project_dir / "decisions.yaml"
    code, out, err = run_cli(
        "redact-text",
        str(log_file),
        "--discovery-mode",
        "two_pass",
        "--interactive",
        "--decisions",
        str(decisions),
        stdin_text="p\njdoe\n",
    )
    assert code == 0
    assert out == "User jdoe logged in\n/home/***/x\nbye jdoe\n"
    assert "Discovered username 'john_doe'" in err

    data = yaml.safe_load(decisions.read_text())
    assert data["decisions"]["username"]["john_doe"]["replacement"] == "jdoe"


def test_redact_text_pseudonymize(project_dir: Path) -> None:
    """Test the pseudonymization switch."""
    code, out, err = run_cli("redact-text", "-", "--pseudonymize", stdin_text="bob@corp.com\n")
    assert code == 0
    assert out.startswith("<redacted:")


def test_redact_text_with_rules(log_file: Path, project_dir: Path) -> None:
    """Test word rules applied after redaction."""
    rules = project_dir / "rules.txt"
    rules.write_text("- john_doe\n")
    code, out, err = run_cli("redact-text", str(log_file), "--rules", str(rules))
    assert code == 0
    assert out == "User *** logged in\n/home/***/x\nbye ***\n"


def test_redact_text_missing_input(project_dir: Path) -> None:
    """Test that a missing input file fails."""
    code, out, err = run_cli("redact-text", "missing.log")
    assert code == 1
    assert "File not found" in err


def test_redact_text_bad_config(log_file: Path) -> None:
    """Test that configuration errors are reported."""
    code, out, err = run_cli("redact-text", str(log_file), "--config", "nowhere.yaml")
    assert code == 1
    assert "Error: Configuration file not found" in err
    assert out == ""


def test_words_discover(log_file: Path, project_dir: Path) -> None:
    """Test collecting candidate words into a rules file."""
    rules = project_dir / "rules.txt"
    code, out, err = run_cli("words", "discover", str(log_file), "-o", str(rules))
    assert code == 0
    assert "- john_doe\n" in rules.read_text()
    assert "Wrote" in err


def test_words_redact(log_file: Path, project_dir: Path) -> None:
    """Test applying a rules file."""
    rules = project_dir / "rules.txt"
    rules.write_text("+ User\n- /.*john_doe.*/\n")
    code, out, err = run_cli("words", "redact", str(log_file), "--rules", str(rules))
    assert code == 0
    assert out == "User *** logged in\n***\nbye ***\n"


def test_words_redact_invalid_rule(log_file: Path, project_dir: Path) -> None:
    """Test that malformed rules are reported."""
    rules = project_dir / "rules.txt"
    rules.write_text("! john_doe\n")
    code, out, err = run_cli("words", "redact", str(log_file), "--rules", str(rules))
    assert code == 1
    assert "Replace rule must have format" in err


def test_validate_ok(project_dir: Path) -> None:
    """Test validating a correct configuration."""
    path = project_dir / "config.yaml"
    path.write_text("parent: strict\ngeneral:\n  redaction_text: '[X]'\n")
    code, out, err = run_cli("validate", str(path))
    assert code == 0
    assert "OK" in out


def test_validate_errors(project_dir: Path) -> None:
    """Test validating a configuration with an unknown key."""
    path = project_dir / "config.yaml"
    path.write_text("general:\n  colour: red\n")
    code, out, err = run_cli("validate", str(path))
    assert code == 1
    assert "Unknown property 'general.colour'" in err


def test_generate_config(project_dir: Path) -> None:
    """Test printing a preset's effective configuration."""
    code, out, err = run_cli("generate-config", "--preset", "strict")
    assert code == 0
    assert out.startswith("# Generated from preset 'strict'")
    assert yaml.safe_load(out)["discovery"]["mode"] == "two_pass"


def test_generate_config_to_file(project_dir: Path) -> None:
    """Test that a generated configuration validates."""
    path = project_dir / "generated.yaml"
    code, out, err = run_cli("generate-config", "-o", str(path))
    assert code == 0
    assert run_cli("validate", str(path))[0] == 0


def test_test_value(project_dir: Path) -> None:
    """Test redacting a single value."""
    code, out, err = run_cli("test", "--field", "password", "--value", "hunter2")
    assert code == 0
    assert out == "***\n"
    assert "sensitive" in err

    code, out, err = run_cli("test", "--value", "ping 10.0.0.1")
    assert out == "ping ***\n"


def test_test_event(project_dir: Path) -> None:
    """Test checking event removal."""
    code, out, err = run_cli("test", "--event", "jdk.OSInformation")
    assert code == 0
    assert out == "jdk.OSInformation: removed\n"

    code, out, err = run_cli("test", "--config", "none", "--event", "jdk.GC")
    assert out == "jdk.GC: kept\n"


def test_test_requires_target(project_dir: Path) -> None:
    """Test that test needs --value or --event."""
    code, out, err = run_cli("test", "--field", "password")
    assert code == 2
