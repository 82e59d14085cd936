"""CLI tests for Persuader -- run, health and session via Click's CliRunner.

The provider factory is patched to return a scripted FakeProvider, so no
command ever reaches a real back-end.
"""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from persuader.cli import cli
from persuader.cli.commands.run import load_schema, parse_input
from persuader.providers.errors import ProviderAuthError
from persuader.providers.protocols import ProviderHealth
from tests.conftest import VALID_TECHNIQUE, FakeProvider, Technique

SCHEMA_REF = "tests.conftest:Technique"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner():
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture
def fake(monkeypatch):
    """Install a FakeProvider behind the CLI's provider factory."""
    provider = FakeProvider()
    monkeypatch.setattr("persuader.cli._build_provider", lambda ctx: provider)
    monkeypatch.delenv("PERSUADER_MODEL", raising=False)
    return provider


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_load_schema(self):
        assert load_schema(SCHEMA_REF) is Technique

    @pytest.mark.parametrize("ref", ["Technique", "tests.conftest:", ":Technique"])
    def test_load_schema_malformed(self, ref):
        import click

        with pytest.raises(click.BadParameter, match="expected"):
            load_schema(ref)

    def test_load_schema_missing_attribute(self):
        import click

        with pytest.raises(click.BadParameter, match="no attribute"):
            load_schema("tests.conftest:Nope")

    def test_parse_input(self):
        assert parse_input('{"a": 1}') == {"a": 1}
        assert parse_input("plain notes") == "plain notes"


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------

class TestRunCommand:
    def test_success(self, runner, fake):
        fake.script = [VALID_TECHNIQUE]
        result = runner.invoke(
            cli, ["run", SCHEMA_REF, "-c", "Extract the technique."],
            input="Armbar from side control.",
        )
        assert result.exit_code == 0, result.output
        assert "Success" in result.output
        assert "armbar" in result.output
        assert fake.closed

    def test_json_output(self, runner, fake):
        fake.script = [VALID_TECHNIQUE]
        result = runner.invoke(cli, ["run", SCHEMA_REF, "--json"], input="notes")
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == VALID_TECHNIQUE

    def test_retry_then_success(self, runner, fake):
        fake.script = [{"name": "armbar"}, VALID_TECHNIQUE]
        result = runner.invoke(cli, ["run", SCHEMA_REF, "--json"], input="notes")
        assert result.exit_code == 0, result.output
        assert len(fake.prompts) == 2

    def test_failure_exits_one(self, runner, fake):
        fake.script = [{"name": "armbar", "position": "side-contrl", "difficulty": 3}]
        result = runner.invoke(cli, ["run", SCHEMA_REF, "-r", "0"], input="notes")
        assert result.exit_code == 1
        assert "Failed" in result.output
        assert "retries_exhausted" in result.output
        assert "side-control" in result.output

    def test_provider_error_exits_one(self, runner, fake):
        fake.script = [ProviderAuthError("bad credentials")]
        result = runner.invoke(cli, ["run", SCHEMA_REF], input="notes")
        assert result.exit_code == 1
        assert "fatal_provider_error" in result.output

    def test_bad_schema_ref(self, runner, fake):
        result = runner.invoke(cli, ["run", "no_such_module_xyz:Thing"], input="notes")
        assert result.exit_code == 2
        assert "cannot import" in result.output
        assert fake.prompts == []

    def test_context_and_context_file_conflict(self, runner, fake):
        with runner.isolated_filesystem():
            with open("task.txt", "w") as f:
                f.write("Extract.")
            result = runner.invoke(
                cli, ["run", SCHEMA_REF, "-c", "x", "--context-file", "task.txt"], input="n"
            )
        assert result.exit_code == 2
        assert "not both" in result.output

    def test_context_file_and_input_file(self, runner, fake):
        fake.script = [VALID_TECHNIQUE]
        with runner.isolated_filesystem():
            with open("task.txt", "w") as f:
                f.write("Extract the technique from the notes.")
            with open("notes.json", "w") as f:
                json.dump({"notes": "armbar"}, f)
            result = runner.invoke(
                cli,
                ["run", SCHEMA_REF, "--context-file", "task.txt", "-i", "notes.json", "--json"],
            )
        assert result.exit_code == 0, result.output
        assert "Extract the technique from the notes." in fake.created[0][0]
        assert '"notes": "armbar"' in fake.sent[0]

    def test_model_option_reaches_provider(self, runner, fake):
        fake.script = [VALID_TECHNIQUE]
        result = runner.invoke(cli, ["--model", "m-test", "run", SCHEMA_REF, "--json"], input="n")
        assert result.exit_code == 0, result.output
        assert fake.prompts[0][2].model == "m-test"


# ---------------------------------------------------------------------------
# health
# ---------------------------------------------------------------------------

class TestHealthCommand:
    def test_healthy(self, runner, fake):
        result = runner.invoke(cli, ["health"])
        assert result.exit_code == 0, result.output
        assert "fake healthy" in result.output

    def test_unhealthy(self, runner, fake):
        fake.health = ProviderHealth(healthy=False, response_time_ms=3.0, error="no route")
        result = runner.invoke(cli, ["health"])
        assert result.exit_code == 1
        assert "unhealthy" in result.output
        assert "no route" in result.output


# ---------------------------------------------------------------------------
# session init
# ---------------------------------------------------------------------------

class TestSessionInit:
    def test_creates_session(self, runner, fake):
        result = runner.invoke(cli, ["session", "init", "-c", "You extract techniques."])
        assert result.exit_code == 0, result.output
        assert "session-1" in result.output
        assert fake.created[0][0] == "You extract techniques."

    def test_initial_prompt_response_printed(self, runner, fake):
        fake.script = ["Ready."]
        result = runner.invoke(
            cli, ["session", "init", "-c", "ctx", "--prompt", "Are you ready?"]
        )
        assert result.exit_code == 0, result.output
        assert "Ready." in result.output
        assert fake.prompts[0][:2] == ("session-1", "Are you ready?")

    def test_requires_context(self, runner, fake):
        result = runner.invoke(cli, ["session", "init"])
        assert result.exit_code == 2
        assert "needs --context" in result.output

    def test_provider_without_sessions(self, runner, monkeypatch):
        provider = FakeProvider(supports_sessions=False)
        monkeypatch.setattr("persuader.cli._build_provider", lambda ctx: provider)
        result = runner.invoke(cli, ["session", "init", "-c", "ctx"])
        assert result.exit_code == 1
        assert "Error:" in result.output
