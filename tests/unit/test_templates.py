"""Tests for template interpolation."""

import pytest

from polyflow.workflow.dag import ResultStore, StepResult
from polyflow.workflow.errors import MissingStepOutput, UnknownVariable
from polyflow.workflow.templates import (
    TemplateResolver,
    backends_label,
    referenced_steps,
    validate_templates,
)
from tests.unit.workflow_fixtures import make_workflow, step, store_with


@pytest.fixture
def resolver():
    return TemplateResolver(args=["first", "second"], env={"HOME_DIR": "/home/dev"})


class TestStepOutput:
    def test_substitutes_exact_output(self, resolver):
        results = store_with(scan="line one\nline two\n")
        assert resolver.resolve("Got: {{ steps.scan.output }}", results) == "Got: line one\nline two\n"

    def test_whitespace_inside_braces_optional(self, resolver):
        results = store_with(scan="X")
        assert resolver.resolve("{{steps.scan.output}}|{{  steps.scan.output  }}", results) == "X|X"

    def test_missing_step_raises(self, resolver):
        with pytest.raises(MissingStepOutput) as exc_info:
            resolver.resolve("{{ steps.scan.output }}", ResultStore(), step_name="review")
        assert exc_info.value.step == "scan"
        assert exc_info.value.referenced_by == "review"

    def test_failed_step_output_still_available(self, resolver):
        results = ResultStore()
        results.record(StepResult(name="scan", output="Error: boom", success=False))
        assert resolver.resolve("{{ steps.scan.output }}", results) == "Error: boom"

    def test_output_containing_braces_not_rescanned(self, resolver):
        results = store_with(scan="template text {{ steps.nope.output }} and {{ bogus }}")
        resolved = resolver.resolve("{{ steps.scan.output }}", results)
        assert resolved == "template text {{ steps.nope.output }} and {{ bogus }}"


class TestStepField:
    def test_field_from_fenced_json(self, resolver):
        results = store_with(review='Here you go:\n```json\n{"verdict": "APPROVE"}\n```\n')
        assert resolver.resolve("{{ steps.review.verdict }}", results) == "APPROVE"

    def test_field_from_bare_object(self, resolver):
        results = store_with(review='Result: {"score": 7, "tags": ["a", "b"]} done')
        assert resolver.resolve("{{ steps.review.score }}", results) == "7"
        assert resolver.resolve("{{ steps.review.tags }}", results) == '["a", "b"]'

    def test_raw_newline_in_string_recovered(self, resolver):
        results = store_with(review='{"summary": "first line\nsecond line", "verdict": "REJECT"}')
        assert resolver.resolve("{{ steps.review.verdict }}", results) == "REJECT"
        assert resolver.resolve("{{ steps.review.summary }}", results) == "first line\nsecond line"

    def test_missing_field_marker(self, resolver):
        results = store_with(review='{"verdict": "APPROVE"}')
        assert (
            resolver.resolve("{{ steps.review.score }}", results)
            == "[field 'score' not found in step 'review']"
        )

    def test_no_json_marker(self, resolver):
        results = store_with(review="plain prose")
        assert "not found in step 'review'" in resolver.resolve("{{ steps.review.verdict }}", results)

    def test_missing_step_raises(self, resolver):
        with pytest.raises(MissingStepOutput):
            resolver.resolve("{{ steps.review.verdict }}", ResultStore())


class TestEnvAndArgs:
    def test_env_value(self, resolver):
        assert resolver.resolve("{{ env.HOME_DIR }}", ResultStore()) == "/home/dev"

    def test_env_missing_marker(self, resolver):
        assert resolver.resolve("{{ env.NOPE }}", ResultStore()) == "[env var 'NOPE' not set]"

    def test_args_are_one_indexed(self, resolver):
        assert resolver.resolve("{{ arg.1 }}-{{ arg.2 }}", ResultStore()) == "first-second"

    def test_arg_out_of_range_marker(self, resolver):
        assert resolver.resolve("{{ arg.3 }}", ResultStore()) == "[arg 3 not provided]"
        assert resolver.resolve("{{ arg.0 }}", ResultStore()) == "[arg 0 not provided]"


class TestWorkflowBackends:
    def test_default_label(self, resolver):
        assert resolver.resolve("{{ workflow.backends }}", ResultStore()) == "Polyflow"

    def test_label_from_results(self, resolver):
        results = ResultStore()
        for name, backend in (("a", "codex"), ("b", "claude"), ("c", "codex")):
            results.record(StepResult(name=name, output="", success=True, backend=backend))
        assert resolver.resolve("{{ workflow.backends }}", results) == "Claude+Codex"

    def test_backends_label(self):
        assert backends_label(["gemini", "Claude", "gemini"]) == "Claude+Gemini"
        assert backends_label([]) == "Polyflow"


class TestUnknownVariable:
    def test_names_exact_token(self, resolver):
        with pytest.raises(UnknownVariable) as exc_info:
            resolver.resolve("Hello {{ user.name }}!", ResultStore())
        assert exc_info.value.token == "{{ user.name }}"

    def test_empty_and_none_templates(self, resolver):
        assert resolver.resolve("", ResultStore()) == ""
        assert resolver.resolve(None, ResultStore()) is None


class TestValidateTemplates:
    def test_reference_to_undefined_step(self):
        wf = make_workflow(step("a", prompt="{{ steps.ghost.output }}"))
        with pytest.raises(MissingStepOutput) as exc_info:
            validate_templates(wf)
        assert exc_info.value.step == "ghost"

    def test_unknown_namespace(self):
        wf = make_workflow(step("a", shell="echo {{ secrets.token }}", backend=""))
        with pytest.raises(UnknownVariable):
            validate_templates(wf)

    def test_shell_step_prompt_ignored(self):
        wf = make_workflow(step("a", backend="", shell="ls", prompt="{{ junk }}"))
        validate_templates(wf)

    def test_valid_workflow(self):
        wf = make_workflow(
            step("a", backend="", shell="echo {{ arg.1 }}"),
            step("b", "a", prompt="{{ steps.a.output }} {{ env.X }} {{ workflow.backends }}"),
        )
        validate_templates(wf)

    def test_referenced_steps(self):
        assert referenced_steps("{{ steps.a.output }} {{ steps.b.verdict }} {{ steps.a.x }}") == ["a", "b"]

    def test_reference_to_sibling_rejected(self):
        wf = make_workflow(
            step("root", backend="", shell="true"),
            step("b", "root", prompt="x"),
            step("c", "root", prompt="{{ steps.b.output }}"),
        )
        with pytest.raises(MissingStepOutput) as exc_info:
            validate_templates(wf)
        assert exc_info.value.step == "b"
        assert exc_info.value.referenced_by == "c"

    def test_reference_to_later_step_rejected(self):
        wf = make_workflow(step("a", prompt="{{ steps.b.verdict }}"), step("b", "a"))
        with pytest.raises(MissingStepOutput):
            validate_templates(wf)

    def test_self_reference_rejected(self):
        wf = make_workflow(step("a", prompt="{{ steps.a.output }}"))
        with pytest.raises(MissingStepOutput):
            validate_templates(wf)

    def test_transitive_dependency_allowed(self):
        wf = make_workflow(
            step("a", backend="", shell="echo 1"),
            step("b", "a"),
            step("c", "b", verify="test -n '{{ steps.a.output }}'"),
        )
        validate_templates(wf)
