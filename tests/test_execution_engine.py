"""
Tests for the execution harness.
"""

import json
import shutil

import pytest

from block_grader_core.code_generator import emit
from block_grader_core.exceptions import InvocationTimeout, RuntimeFault
from block_grader_core.execution_engine import (
    STATUS_ACCEPTED, STATUS_WRONG_ANSWER, ExecutionContext, ExecutionHarness, Outcome,
    TestCase, TestResult, deep_equals, format_error, score_results,
)
from block_grader_core.models import BlockGraph, BlockNode

from graph_builders import doubled_sum_graph, function, get, plain_sum_graph

requires_node = pytest.mark.skipif(shutil.which("node") is None, reason="Node.js not installed")


def case(case_id, args, expected, sample=False):
    return TestCase(id=case_id, input=args, expected_output=expected, is_sample=sample)


class TestPythonHarness:
    """Test cases for grading generated Python."""

    def setup_method(self):
        self.harness = ExecutionHarness("python", timeout=1.0)

    def test_correct_program_is_accepted(self, doubling_cases):
        report = self.harness.run(emit(doubled_sum_graph(), "python"), "solution", doubling_cases)
        assert [r.outcome for r in report.results] == [Outcome.PASSED, Outcome.PASSED]
        assert [r.actual_output for r in report.results] == [16, 16]
        assert report.score == 100.0
        assert report.status == STATUS_ACCEPTED
        assert report.accepted

    def test_wrong_program_scores_zero(self, doubling_cases):
        report = self.harness.run(emit(plain_sum_graph(), "python"), "solution", doubling_cases)
        assert [r.actual_output for r in report.results] == [8, 8]
        assert report.score == 0.0
        assert report.status == STATUS_WRONG_ANSWER
        assert all(r.outcome is Outcome.WRONG_ANSWER for r in report.results)

    def test_partial_score(self):
        cases = [case(1, [5, 3], 16), case(2, [1, 1], 2), case(3, [0, 0], 0)]
        report = self.harness.run(emit(plain_sum_graph(), "python"), "solution", cases)
        assert report.passed_count == 2
        assert report.score == 66.67
        assert report.status == STATUS_WRONG_ANSWER

    def test_fault_in_one_case_does_not_stop_others(self):
        program = "def solution(a):\n    return 10 / a\n"
        report = self.harness.run(program, "solution", [case(1, [0], 0), case(2, [2], 5)])
        first, second = report.results
        assert first.outcome is Outcome.RUNTIME_ERROR
        assert first.console_text == "Error: ZeroDivisionError: division by zero\n"
        assert first.actual_output is None
        assert second.passed
        assert report.score == 50.0

    def test_error_output_keeps_console_text(self):
        program = "def solution(a):\n    print('before')\n    return [][a]\n"
        report = self.harness.run(program, "solution", [case(1, [0], None)])
        text = report.results[0].console_text
        assert text.startswith("Error: IndexError:")
        assert text.endswith("before\n")

    @pytest.mark.parametrize("where, expected", [
        ("FROM_START", [10, 30, None, None, None]),
        ("FROM_END", [30, 10, None, None, None]),
    ])
    def test_list_positions_outside_the_list_fail(self, where, expected):
        pick = BlockNode("lists_getIndex", {"MODE": "GET", "WHERE": where},
                         children={"VALUE": get("values"), "AT": get("at")})
        graph = BlockGraph([function("solution", ["values", "at"], returns=pick)])
        cases = [case(i, [[10, 20, 30], at], expected[i]) for i, at in enumerate([1, 3, 0, 4, -1])]
        report = self.harness.run(emit(graph, "python"), "solution", cases)
        assert [r.actual_output for r in report.results] == expected
        assert [r.outcome for r in report.results[2:]] == [Outcome.RUNTIME_ERROR] * 3
        assert report.results[2].console_text.startswith("Error: IndexError:")

    def test_runaway_invocation_times_out(self):
        harness = ExecutionHarness("python", timeout=0.2)
        program = "def solution(n):\n    while n > 0:\n        pass\n    return n\n"
        report = harness.run(program, "solution", [case(1, [1], 1), case(2, [0], 0)])
        first, second = report.results
        assert first.outcome is Outcome.TIMEOUT
        assert first.console_text == "Error: Execution timed out after 0.2s\n"
        assert second.passed

    def test_console_is_captured_per_case(self):
        program = "print('loading')\ndef solution(a):\n    print('got', a)\n    return a\n"
        report = self.harness.run(program, "solution", [case(1, [1], 1), case(2, [2], 2)])
        assert report.load_output == "loading\n"
        assert [r.console_text for r in report.results] == ["got 1\n", "got 2\n"]

    def test_inputs_are_not_mutated(self):
        program = "def solution(items):\n    items.append(4)\n    return len(items)\n"
        cases = [case(1, [[1, 2, 3]], 4)]
        report = self.harness.run(program, "solution", cases)
        assert report.results[0].passed
        assert cases[0].input == ([1, 2, 3],)

    def test_math_import_is_allowed(self):
        program = "import math\ndef solution(x):\n    return math.floor(x)\n"
        report = self.harness.run(program, "solution", [case(1, [2.7], 2)])
        assert report.accepted

    def test_other_imports_are_blocked(self):
        program = "import os\ndef solution():\n    return 1\n"
        report = self.harness.run(program, "solution", [case(1, [], 1), case(2, [], 1)])
        assert all(r.outcome is Outcome.RUNTIME_ERROR for r in report.results)
        assert report.results[0].console_text.startswith("Error: ImportError:")
        assert report.score == 0.0

    def test_open_is_not_available(self):
        program = "def solution():\n    return open('x')\n"
        report = self.harness.run(program, "solution", [case(1, [], None)])
        assert report.results[0].console_text.startswith("Error: NameError:")

    def test_missing_entry_point(self):
        report = self.harness.run("x = 1\n", "solution", [case(1, [], 1)])
        result = report.results[0]
        assert result.outcome is Outcome.RUNTIME_ERROR
        assert "Entry point 'solution' is not defined" in result.console_text

    def test_syntax_error_fails_every_case(self):
        report = self.harness.run("def solution(:\n", "solution", [case(1, [], 1), case(2, [], 2)])
        assert [r.outcome for r in report.results] == [Outcome.RUNTIME_ERROR] * 2
        assert report.results[0].console_text.startswith("Error: SyntaxError:")

    def test_no_cases(self):
        report = self.harness.run("def solution():\n    return 1\n", "solution", [])
        assert report.total == 0
        assert report.score == 0.0
        assert report.status == STATUS_WRONG_ANSWER

    def test_runs_are_isolated(self):
        program = "count = 0\ndef solution():\n    global count\n    count += 1\n    return count\n"
        first = self.harness.run(program, "solution", [case(1, [], 1)])
        second = self.harness.run(program, "solution", [case(1, [], 1)])
        assert first.accepted and second.accepted

    def test_run_script_collects_output(self):
        result = self.harness.run_script("print('a')\nprint('b', 2)\n")
        assert result.success
        assert result.output == "a\nb 2\n"
        assert str(result) == "Success: a\nb 2\n"

    def test_run_script_failure(self):
        result = self.harness.run_script("print('a')\nraise ValueError('bad')\n")
        assert not result.success
        assert isinstance(result.error, ValueError)
        assert result.output == "Error: ValueError: bad\na\n"

    def test_unknown_language(self):
        with pytest.raises(ValueError):
            ExecutionHarness("php")

    def test_default_timeout_comes_from_settings(self):
        assert ExecutionHarness("python").timeout > 0


class TestExecutionContext:

    def test_print_without_sink_is_silent(self):
        context = ExecutionContext()
        context.load("print('nobody listening')\n")

    def test_capture_nests(self):
        context = ExecutionContext()
        context.load("def say(x):\n    print(x)\n")
        say = context.entry_point("say")
        with context.capture() as outer:
            context.invoke(say, ["outer"])
            with context.capture() as inner:
                context.invoke(say, ["inner"])
        assert outer.getvalue() == "outer\n"
        assert inner.getvalue() == "inner\n"

    def test_entry_point_must_be_callable(self):
        context = ExecutionContext()
        context.load("solution = 3\n")
        with pytest.raises(RuntimeFault):
            context.entry_point("solution")

    def test_timeout_raises(self):
        context = ExecutionContext()
        with pytest.raises(InvocationTimeout):
            context.load("while True:\n    pass\n", timeout=0.1)


class TestScoring:

    @pytest.mark.parametrize("actual,expected,equal", [
        (1, 1.0, True),
        (None, None, True),
        (None, 0, False),
        (0, None, False),
        (True, 1, False),
        (1, True, False),
        (True, True, True),
        ("1", 1, False),
        ("abc", "abc", True),
        ([1, [2, "x"]], (1, [2.0, "x"]), True),
        ([1, 2], [1, 2, 3], False),
        ({"a": 1}, {"a": 1.0}, True),
        ({"a": 1}, {"b": 1}, False),
        ({"a": 1}, [1], False),
    ])
    def test_deep_equals(self, actual, expected, equal):
        assert deep_equals(actual, expected) is equal

    def test_score_results(self):
        tc = case(1, [], 1)
        results = [TestResult(tc, passed=True), TestResult(tc, passed=False),
                   TestResult(tc, passed=True)]
        assert score_results(results) == (66.67, STATUS_WRONG_ANSWER)
        assert score_results(results[:1]) == (100.0, STATUS_ACCEPTED)
        assert score_results([]) == (0.0, STATUS_WRONG_ANSWER)

    def test_format_error(self):
        assert format_error(ValueError("bad")) == "Error: ValueError: bad\n"
        assert format_error(ValueError("bad"), "out\n") == "Error: ValueError: bad\nout\n"
        assert format_error(InvocationTimeout(2)) == "Error: Execution timed out after 2s\n"

    def test_result_serialization(self):
        result = TestResult(case(7, [1, 2], [3]), [3], "hi\n", True, Outcome.PASSED)
        assert result.output_json() == "[3]"
        data = result.to_dict()
        assert data["test_case_id"] == 7
        assert data["input"] == [1, 2]
        assert data["outcome"] == "passed"
        assert json.dumps(data)


class TestNodeHarness:

    @requires_node
    def test_correct_program_is_accepted(self, doubling_cases):
        harness = ExecutionHarness("javascript", timeout=2.0)
        report = harness.run(emit(doubled_sum_graph(), "javascript"), "solution", doubling_cases)
        assert report.score == 100.0
        assert report.accepted

    @requires_node
    def test_fault_and_console_per_case(self):
        harness = ExecutionHarness("javascript", timeout=2.0)
        program = ("function solution(a) {\n  console.log('got', a);\n"
                   "  if (a === 0) { throw new TypeError('zero'); }\n  return a;\n}\n")
        report = harness.run(program, "solution", [case(1, [0], 0), case(2, [2], 2)])
        first, second = report.results
        assert first.outcome is Outcome.RUNTIME_ERROR
        assert first.console_text == "Error: TypeError: zero\ngot 0\n"
        assert second.passed
        assert second.console_text == "got 2\n"

    @requires_node
    def test_runaway_invocation_times_out(self):
        harness = ExecutionHarness("javascript", timeout=0.3)
        program = "function solution() {\n  while (true) {}\n}\n"
        report = harness.run(program, "solution", [case(1, [], 1)])
        assert report.results[0].outcome is Outcome.TIMEOUT

    @requires_node
    def test_run_script(self):
        result = ExecutionHarness("javascript", timeout=2.0).run_script("console.log('hi');\n")
        assert result.success
        assert result.output == "hi\n"

    def test_missing_node_fails_every_case(self):
        harness = ExecutionHarness("javascript", timeout=1.0)
        harness.executor._node_path = None
        report = harness.run("function solution() { return 1; }", "solution",
                             [case(1, [], 1), case(2, [], 1)])
        assert [r.outcome for r in report.results] == [Outcome.RUNTIME_ERROR] * 2
        assert "Node.js runtime not found on PATH" in report.results[0].console_text
        assert not harness.executor.available
