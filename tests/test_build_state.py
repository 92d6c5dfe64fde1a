"""Tests for build state and result types."""

from texbuild_mcp.build.state import (
    BuildError,
    BuildResult,
    BuildState,
    StepOutcome,
    StepOutcomeKind,
    ToolchainError,
)


class TestBuildState:
    """Tests for BuildState enum."""

    def test_values(self):
        assert BuildState.IDLE.value == "idle"
        assert BuildState.PREPROCESSING.value == "preprocessing"
        assert BuildState.RUNNING.value == "running"
        assert BuildState.RETRYING.value == "retrying"
        assert BuildState.SUCCEEDED.value == "succeeded"
        assert BuildState.FAILED.value == "failed"
        assert BuildState.SUPERSEDED.value == "superseded"

    def test_string_comparison(self):
        """Test str mixin allows comparing with plain strings."""
        assert BuildState.IDLE == "idle"


class TestStepOutcome:
    """Tests for StepOutcome."""

    def test_success_flags(self):
        outcome = StepOutcome(kind=StepOutcomeKind.SUCCESS, command="pdflatex", exit_code=0)
        assert outcome.success is True
        assert outcome.fatal is False

    def test_fatal_flags(self):
        outcome = StepOutcome(kind=StepOutcomeKind.FATAL, command="pdflatex", error="ENOENT")
        assert outcome.success is False
        assert outcome.fatal is True

    def test_to_dict_minimal(self):
        outcome = StepOutcome(kind=StepOutcomeKind.SUCCESS, command="bibtex", args=["main"])
        assert outcome.to_dict() == {"kind": "success", "command": "bibtex", "args": ["main"]}

    def test_to_dict_failure(self):
        outcome = StepOutcome(
            kind=StepOutcomeKind.FAILURE, command="pdflatex", signal="SIGKILL", error="killed"
        )
        result = outcome.to_dict()
        assert result["kind"] == "failure"
        assert result["signal"] == "SIGKILL"
        assert result["error"] == "killed"
        assert "exitCode" not in result

    def test_to_dict_exit_code_zero_kept(self):
        outcome = StepOutcome(kind=StepOutcomeKind.SUCCESS, command="x", exit_code=0)
        assert outcome.to_dict()["exitCode"] == 0


class TestBuildError:
    """Tests for BuildError."""

    def test_message(self):
        error = BuildError("bad toolchain")
        assert str(error) == "bad toolchain"
        assert error.to_dict() == {"error": "bad toolchain"}

    def test_exit_code(self):
        error = BuildError("failed", exit_code=2)
        assert error.to_dict() == {"error": "failed", "exitCode": 2}

    def test_toolchain_error(self):
        error = ToolchainError("invalid")
        assert isinstance(error, BuildError)
        assert error.exit_code is None


class TestBuildResult:
    """Tests for BuildResult."""

    def test_success(self):
        result = BuildResult(root_file="/a/main.tex", state=BuildState.SUCCEEDED, steps_run=2)
        assert result.success is True

    def test_failed_not_success(self):
        result = BuildResult(root_file="/a/main.tex", state=BuildState.FAILED)
        assert result.success is False

    def test_to_dict(self):
        result = BuildResult(
            root_file="/a/main.tex",
            state=BuildState.FAILED,
            steps_run=3,
            retried=True,
            outcome=StepOutcome(kind=StepOutcomeKind.FAILURE, command="pdflatex", exit_code=1),
            duration_ms=12.3456,
        )
        data = result.to_dict()
        assert data["success"] is False
        assert data["state"] == "failed"
        assert data["rootFile"] == "/a/main.tex"
        assert data["stepsRun"] == 3
        assert data["retried"] is True
        assert data["durationMs"] == 12.35
        assert data["outcome"]["exitCode"] == 1
        assert "superseded" not in data
        assert "error" not in data

    def test_to_dict_superseded(self):
        result = BuildResult(
            root_file="/a/main.tex", state=BuildState.SUPERSEDED, superseded=True
        )
        assert result.to_dict()["superseded"] is True

    def test_summary_success(self):
        result = BuildResult(
            root_file="/a/main.tex", state=BuildState.SUCCEEDED, steps_run=2, duration_ms=1500
        )
        summary = result.to_summary()
        assert "[OK] Build succeeded" in summary
        assert "Root file: /a/main.tex" in summary
        assert "Steps run: 2" in summary
        assert "Duration: 1500ms" in summary

    def test_summary_failed_step(self):
        result = BuildResult(
            root_file="/a/main.tex",
            state=BuildState.FAILED,
            retried=True,
            outcome=StepOutcome(
                kind=StepOutcomeKind.FAILURE, command="pdflatex", signal="SIGKILL"
            ),
        )
        summary = result.to_summary()
        assert "[FAILED] Build failed" in summary
        assert "Retried after cleaning auxiliary files" in summary
        assert "Failed step: pdflatex (exit -, SIGKILL)" in summary

    def test_summary_error_preferred(self):
        result = BuildResult(
            root_file="/a/main.tex", state=BuildState.FAILED, error="Invalid toolchain"
        )
        summary = result.to_summary()
        assert "Error: Invalid toolchain" in summary
        assert "Failed step" not in summary

    def test_summary_superseded(self):
        result = BuildResult(
            root_file="/a/main.tex", state=BuildState.SUPERSEDED, superseded=True
        )
        assert "[SUPERSEDED]" in result.to_summary()
