"""Tests for single-step execution."""

import json
from unittest.mock import patch

import pytest

from polyflow.workflow.executor import PreparedStep, StepExecutor, VerifyPlan
from tests.unit.workflow_fixtures import FakeBackend, step


def _shell(name, command, **kwargs):
    return PreparedStep(step=step(name, backend="", shell=command, **kwargs), shell=command)


class TestShellSteps:
    @pytest.mark.asyncio
    async def test_success_captures_output(self, backend_factory, tmp_path):
        executor = StepExecutor(backend_factory, tmp_path)
        result = await executor.execute(_shell("s", "echo hello"))

        assert result.success is True
        assert result.output.strip() == "hello"
        assert result.backend is None

    @pytest.mark.asyncio
    async def test_stderr_merged_and_nonzero_exit_fails(self, backend_factory, tmp_path):
        executor = StepExecutor(backend_factory, tmp_path)
        result = await executor.execute(_shell("s", "echo out; echo err 1>&2; exit 3"))

        assert result.success is False
        assert "out" in result.output
        assert "err" in result.output

    @pytest.mark.asyncio
    async def test_runs_in_working_dir(self, backend_factory, tmp_path):
        (tmp_path / "marker.txt").write_text("here")
        executor = StepExecutor(backend_factory, tmp_path)
        result = await executor.execute(_shell("s", "cat marker.txt"))
        assert result.output == "here"


class TestBackendSteps:
    @pytest.mark.asyncio
    async def test_query_success(self, backend_factory, fake_backend, tmp_path):
        fake_backend.default = "answer"
        executor = StepExecutor(backend_factory, tmp_path)

        result = await executor.execute(PreparedStep(step=step("ask"), prompt="question?"))

        assert result.success is True
        assert result.output == "answer"
        assert result.backend == "fake"
        assert fake_backend.prompts == ["question?"]

    @pytest.mark.asyncio
    async def test_backend_not_found(self, backend_factory, tmp_path):
        executor = StepExecutor(backend_factory, tmp_path)
        result = await executor.execute(PreparedStep(step=step("ask", backend="missing")))

        assert result.success is False
        assert result.output == "Backend not found: missing"
        assert result.elapsed_ms == 0

    @pytest.mark.asyncio
    async def test_backend_creation_failure(self, tmp_path):
        def factory(name):
            raise RuntimeError("no key")

        executor = StepExecutor(factory, tmp_path)
        result = await executor.execute(PreparedStep(step=step("ask")))

        assert result.success is False
        assert result.output == "Failed to create backend: no key"

    @pytest.mark.asyncio
    async def test_backend_unavailable_not_invoked(self, tmp_path):
        backend = FakeBackend(available=False)
        executor = StepExecutor({"fake": backend}.get, tmp_path)

        result = await executor.execute(PreparedStep(step=step("ask"), prompt="hi"))

        assert result.success is False
        assert result.output == "Backend fake not available"
        assert backend.prompts == []

    @pytest.mark.asyncio
    async def test_backend_error_becomes_output(self, tmp_path):
        backend = FakeBackend(error="Timeout (300s)")
        executor = StepExecutor({"fake": backend}.get, tmp_path)

        result = await executor.execute(PreparedStep(step=step("ask"), prompt="hi"))

        assert result.success is False
        assert "Timeout (300s)" in result.output


class TestEditApply:
    @pytest.mark.asyncio
    async def test_edits_applied_and_counted(self, tmp_path):
        (tmp_path / "app.py").write_text("retries = 1\n")
        answer = json.dumps({"edits": [{"file": "app.py", "old": "retries = 1", "new": "retries = 3"}]})
        executor = StepExecutor({"fake": FakeBackend(default=answer)}.get, tmp_path)

        result = await executor.execute(PreparedStep(step=step("fix", apply_edits=True), prompt="fix"))

        assert result.success is True
        assert result.output.endswith("Applied 1 edit(s)")
        assert (tmp_path / "app.py").read_text() == "retries = 3\n"

    @pytest.mark.asyncio
    async def test_failed_edit_leaves_file_unchanged(self, tmp_path):
        original = b"retries = 1\n"
        (tmp_path / "app.py").write_bytes(original)
        answer = json.dumps([{"file": "app.py", "old": "retries = 2", "new": "retries = 3"}])
        executor = StepExecutor({"fake": FakeBackend(default=answer)}.get, tmp_path)

        result = await executor.execute(PreparedStep(step=step("fix", apply_edits=True), prompt="fix"))

        assert result.success is False
        assert "Failed to apply edits" in result.output
        assert (tmp_path / "app.py").read_bytes() == original

    @pytest.mark.asyncio
    async def test_unusable_path_in_edits_fails_step(self, tmp_path):
        answer = json.dumps({"edits": [{"file": "a\u0000b", "old": "x", "new": "y"}]})
        executor = StepExecutor({"fake": FakeBackend(default=answer)}.get, tmp_path)

        result = await executor.execute(PreparedStep(step=step("fix", apply_edits=True), prompt="fix"))

        assert result.success is False
        assert "Failed to apply edits" in result.output

    @pytest.mark.asyncio
    async def test_no_edits_in_output_fails(self, tmp_path):
        executor = StepExecutor({"fake": FakeBackend(default="nothing to do")}.get, tmp_path)
        result = await executor.execute(PreparedStep(step=step("fix", apply_edits=True), prompt="fix"))

        assert result.success is False
        assert "No edits found" in result.output

    @pytest.mark.asyncio
    async def test_edits_skipped_when_dispatch_failed(self, tmp_path):
        executor = StepExecutor({"fake": FakeBackend(error="boom")}.get, tmp_path)
        result = await executor.execute(PreparedStep(step=step("fix", apply_edits=True), prompt="fix"))

        assert result.success is False
        assert "Failed to apply edits" not in result.output


class TestVerify:
    @pytest.mark.asyncio
    async def test_literal_verify_failure_appends_diagnostics(self, backend_factory, tmp_path):
        executor = StepExecutor(backend_factory, tmp_path)
        prepared = PreparedStep(step=step("ask"), prompt="p", verify="echo type error at line 3; exit 1")

        result = await executor.execute(prepared)

        assert result.success is False
        assert result.output.startswith("ok")
        assert "Verification failed" in result.output
        assert "type error at line 3" in result.output

    @pytest.mark.asyncio
    async def test_keyword_without_detected_language_runs_nothing(self, backend_factory, tmp_path):
        executor = StepExecutor(backend_factory, tmp_path)
        result = await executor.execute(PreparedStep(step=step("ask"), prompt="p", verify="true"))
        # "true" is a keyword, so with no detectable language there is nothing to run
        assert result.success is True
        assert result.output == "ok"

    @pytest.mark.asyncio
    async def test_format_failure_is_not_fatal(self, backend_factory, tmp_path):
        executor = StepExecutor(backend_factory, tmp_path)
        plan = VerifyPlan(verify_command="true", format_command="exit 7")

        with patch.object(executor, "plan_verify", return_value=plan):
            result = await executor.execute(PreparedStep(step=step("ask"), prompt="p", verify="auto"))

        assert result.success is True
        assert result.output == "ok"


class TestPlanVerify:
    def test_empty(self, backend_factory, tmp_path):
        plan = StepExecutor(backend_factory, tmp_path).plan_verify("  ")
        assert plan.verify_command is None and plan.format_command is None

    def test_literal_command_has_no_format(self, backend_factory, tmp_path):
        plan = StepExecutor(backend_factory, tmp_path).plan_verify("make check")
        assert plan.verify_command == "make check"
        assert plan.format_command is None

    def test_auto_uses_detected_language(self, backend_factory, tmp_path):
        (tmp_path / "Cargo.toml").write_text("[package]\nname = 'x'\n")
        plan = StepExecutor(backend_factory, tmp_path).plan_verify("auto")
        assert plan.verify_command == "cargo check"
        assert plan.format_command == "cargo fmt"

    def test_explicit_language(self, backend_factory, tmp_path):
        plan = StepExecutor(backend_factory, tmp_path).plan_verify("go")
        assert plan.verify_command == "go build ./..."

    def test_disabled(self, backend_factory, tmp_path):
        plan = StepExecutor(backend_factory, tmp_path).plan_verify("off")
        assert plan.verify_command is None


class TestUnexpectedErrors:
    @pytest.mark.asyncio
    async def test_exception_becomes_failed_result(self, backend_factory, tmp_path):
        executor = StepExecutor(backend_factory, tmp_path)

        with patch.object(executor, "plan_verify", side_effect=RuntimeError("kaboom")):
            result = await executor.execute(PreparedStep(step=step("ask"), prompt="hi"))

        assert result.success is False
        assert result.output == "Error: kaboom"
        assert result.backend == "fake"
