"""
Execution Engine for grading generated programs against test cases.

Supports two executors:
  • PythonExecutor in-process exec() inside a restricted ExecutionContext
  • NodeExecutor   subprocess via Node.js, program loaded into a vm context

Both load the program once per run, invoke the entry point once per test
case with that case's inputs spread positionally, and capture console
output per invocation. A fault in one case never stops the others.
"""

import builtins
import copy
import importlib
import io
import json
import logging
import numbers
import os
import shutil
import subprocess
import sys
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .config import get_settings
from .exceptions import InvocationTimeout, RuntimeFault

logger = logging.getLogger(__name__)

PROGRAM_FILENAME = "<block-program>"

STATUS_ACCEPTED = "accepted"
STATUS_WRONG_ANSWER = "wrong answer"

ALLOWED_MODULES = ("math",)

_SAFE_BUILTIN_NAMES = (
    "abs", "all", "any", "bool", "dict", "divmod", "enumerate", "filter", "float",
    "int", "isinstance", "len", "list", "map", "max", "min", "pow", "range", "repr",
    "reversed", "round", "set", "sorted", "str", "sum", "tuple", "zip",
    "ArithmeticError", "Exception", "IndexError", "KeyError", "NameError",
    "OverflowError", "RecursionError", "StopIteration", "TypeError",
    "UnboundLocalError", "ValueError", "ZeroDivisionError",
)


def _run_subprocess(*args, **kwargs):
    """subprocess.run with UTF-8 decoding forced for text mode."""
    if kwargs.get('text', False) and 'encoding' not in kwargs:
        kwargs['encoding'] = 'utf-8'
        kwargs['errors'] = 'replace'
    return subprocess.run(*args, **kwargs)


class Outcome(Enum):
    """How a single test case ended."""
    PASSED = "passed"
    WRONG_ANSWER = "wrong_answer"
    RUNTIME_ERROR = "runtime_error"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class TestCase:
    """One input/expectation pair. Inputs are spread positionally."""
    id: Any
    input: Tuple[Any, ...]
    expected_output: Any
    is_sample: bool = False

    __test__ = False  # not a pytest class

    def __post_init__(self):
        object.__setattr__(self, "input", tuple(self.input))


@dataclass
class TestResult:
    """The outcome of invoking the program on one test case."""
    test_case: TestCase
    actual_output: Any = None
    console_text: str = ""
    passed: bool = False
    outcome: Outcome = Outcome.WRONG_ANSWER
    execution_time: float = 0.0

    __test__ = False

    def output_json(self) -> str:
        return json.dumps(self.actual_output, default=repr)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'test_case_id': self.test_case.id,
            'input': list(self.test_case.input),
            'expected': self.test_case.expected_output,
            'output': self.actual_output,
            'passed': self.passed,
            'outcome': self.outcome.value,
            'console_output': self.console_text,
        }


@dataclass
class RunReport:
    """Aggregated results of one run."""
    results: List[TestResult] = field(default_factory=list)
    score: float = 0.0
    status: str = STATUS_WRONG_ANSWER
    load_output: str = ""

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed_count(self) -> int:
        return sum(1 for result in self.results if result.passed)

    @property
    def accepted(self) -> bool:
        return self.status == STATUS_ACCEPTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'score': self.score,
            'status': self.status,
            'passed': self.passed_count,
            'total': self.total,
            'load_output': self.load_output,
            'results': [result.to_dict() for result in self.results],
        }


class ExecutionResult:
    """Represents the result of running a whole program once."""

    def __init__(self, success: bool, output: str = "", error: Optional[Exception] = None,
                 execution_time: float = 0.0):
        self.success = success
        self.output = output
        self.error = error
        self.execution_time = execution_time

    def __str__(self) -> str:
        if self.success:
            return f"Success: {self.output}"
        return f"Error: {self.error}"


def deep_equals(actual: Any, expected: Any) -> bool:
    """Value-level equality between a program result and an expectation.

    Numbers compare numerically (1 == 1.0) but never against strings or
    booleans; sequences compare element-wise; mappings key-wise.
    """
    if actual is None or expected is None:
        return actual is None and expected is None
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if isinstance(actual, numbers.Number) or isinstance(expected, numbers.Number):
        return (isinstance(actual, numbers.Number) and isinstance(expected, numbers.Number)
                and actual == expected)
    if isinstance(actual, str) or isinstance(expected, str):
        return isinstance(actual, str) and isinstance(expected, str) and actual == expected
    if isinstance(actual, (list, tuple)) and isinstance(expected, (list, tuple)):
        return len(actual) == len(expected) and all(
            deep_equals(a, e) for a, e in zip(actual, expected))
    if isinstance(actual, dict) and isinstance(expected, dict):
        return actual.keys() == expected.keys() and all(
            deep_equals(actual[k], expected[k]) for k in actual)
    return False


def score_results(results: Sequence[TestResult]) -> Tuple[float, str]:
    """Score as a percentage rounded to two places, plus the overall status."""
    if not results:
        return 0.0, STATUS_WRONG_ANSWER
    passed = sum(1 for result in results if result.passed)
    score = round(100 * passed / len(results), 2)
    status = STATUS_ACCEPTED if passed == len(results) else STATUS_WRONG_ANSWER
    return score, status


def format_error(error: BaseException, console: str = "") -> str:
    """Console text recorded for a failed invocation."""
    if isinstance(error, InvocationTimeout):
        message = f"Error: {error}"
    else:
        message = f"Error: {type(error).__name__}: {error}"
    return f"{message}\n{console}" if console else f"{message}\n"


class _Deadline:
    """Line tracer that aborts program code once a wall-clock budget is spent."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires = time.monotonic() + seconds

    def _check(self):
        if time.monotonic() > self.expires:
            raise InvocationTimeout(self.seconds)

    def global_trace(self, frame, event, arg):
        if frame.f_code.co_filename != PROGRAM_FILENAME:
            return None
        self._check()
        return self.local_trace

    def local_trace(self, frame, event, arg):
        if event == "line":
            self._check()
        return self.local_trace


class ExecutionContext:
    """An isolated namespace for one run of a generated Python program.

    ``print`` inside the program writes to whatever sink is current; each
    invocation swaps in a fresh sink through ``capture``.
    """

    def __init__(self, allowed_modules: Sequence[str] = ALLOWED_MODULES):
        self.allowed_modules = tuple(allowed_modules)
        self._sink: Optional[io.StringIO] = None
        safe = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}
        safe["print"] = self._print
        safe["__import__"] = self._import
        self.namespace: Dict[str, Any] = {"__builtins__": safe, "__name__": "__block_program__"}

    def _print(self, *args, sep=" ", end="\n", file=None, flush=False):
        if self._sink is not None:
            self._sink.write((" " if sep is None else sep).join(str(a) for a in args)
                             + ("\n" if end is None else end))

    def _import(self, name, globals=None, locals=None, fromlist=(), level=0):
        if level != 0 or name not in self.allowed_modules:
            raise ImportError(f"Import of {name!r} is not allowed")
        return importlib.import_module(name)

    @contextmanager
    def capture(self) -> Iterator[io.StringIO]:
        previous = self._sink
        sink = io.StringIO()
        self._sink = sink
        try:
            yield sink
        finally:
            self._sink = previous

    def _guarded(self, timeout: Optional[float], call: Callable[[], Any]) -> Any:
        if not timeout:
            return call()
        deadline = _Deadline(timeout)
        previous = sys.gettrace()
        sys.settrace(deadline.global_trace)
        try:
            return call()
        finally:
            sys.settrace(previous)

    def load(self, program: str, timeout: Optional[float] = None):
        code = compile(program, PROGRAM_FILENAME, "exec")
        self._guarded(timeout, lambda: exec(code, self.namespace))

    def entry_point(self, name: str) -> Callable:
        function = self.namespace.get(name)
        if not callable(function):
            raise RuntimeFault(f"Entry point {name!r} is not defined")
        return function

    def invoke(self, function: Callable, args: List[Any], timeout: Optional[float] = None) -> Any:
        return self._guarded(timeout, lambda: function(*args))


class PythonExecutor:
    """Runs generated Python in-process inside an ExecutionContext."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def run_cases(self, program: str, entry_point: str,
                  test_cases: Sequence[TestCase]) -> Tuple[str, List[TestResult]]:
        context = ExecutionContext()
        load_error: Optional[BaseException] = None
        with context.capture() as load_sink:
            try:
                context.load(program, self.timeout)
                function = context.entry_point(entry_point)
            except Exception as e:
                load_error = e
        load_output = load_sink.getvalue()
        if load_error is not None:
            logger.warning("Program failed to load: %s", load_error)

        results = []
        for case in test_cases:
            if load_error is not None:
                outcome = (Outcome.TIMEOUT if isinstance(load_error, InvocationTimeout)
                           else Outcome.RUNTIME_ERROR)
                results.append(TestResult(case, None, format_error(load_error, load_output),
                                          False, outcome))
                continue

            start_time = time.perf_counter()
            with context.capture() as sink:
                try:
                    actual = context.invoke(function, copy.deepcopy(list(case.input)), self.timeout)
                except InvocationTimeout as e:
                    result = TestResult(case, None, format_error(e, sink.getvalue()),
                                        False, Outcome.TIMEOUT)
                except Exception as e:
                    result = TestResult(case, None, format_error(e, sink.getvalue()),
                                        False, Outcome.RUNTIME_ERROR)
                else:
                    passed = deep_equals(actual, case.expected_output)
                    result = TestResult(case, actual, sink.getvalue(), passed,
                                        Outcome.PASSED if passed else Outcome.WRONG_ANSWER)
            result.execution_time = time.perf_counter() - start_time
            results.append(result)
        return load_output, results

    def execute(self, program: str) -> ExecutionResult:
        """Run a whole program once, returning everything it printed."""
        context = ExecutionContext()
        start_time = time.perf_counter()
        with context.capture() as sink:
            try:
                context.load(program, self.timeout)
            except Exception as e:
                return ExecutionResult(False, format_error(e, sink.getvalue()), e,
                                       time.perf_counter() - start_time)
        return ExecutionResult(True, sink.getvalue(), None, time.perf_counter() - start_time)


# Driver run by Node: reads a job from stdin, writes a JSON report to stdout.
NODE_DRIVER = r"""
const vm = require('vm');
let raw = '';
process.stdin.setEncoding('utf8');
process.stdin.on('data', (chunk) => { raw += chunk; });
process.stdin.on('end', () => {
  const job = JSON.parse(raw);
  const sink = { text: '' };
  const log = (...args) => { sink.text += args.map(String).join(' ') + '\n'; };
  const context = vm.createContext({ console: { log, info: log, warn: log, error: log } });
  const describe = (e) => ({
    type: (e && e.name) || 'Error',
    message: (e && e.message !== undefined) ? String(e.message) : String(e),
    timeout: !!(e && e.code === 'ERR_SCRIPT_EXECUTION_TIMEOUT'),
  });
  const options = job.timeout_ms ? { timeout: job.timeout_ms } : {};
  const out = { load_output: '', load_error: null, results: [] };
  try {
    new vm.Script(job.program, { filename: 'block-program.js' }).runInContext(context, options);
    if (job.entry_point && typeof context[job.entry_point] !== 'function') {
      out.load_error = { type: 'ReferenceError', message: job.entry_point + ' is not defined', timeout: false };
    }
  } catch (e) {
    out.load_error = describe(e);
  }
  out.load_output = sink.text;
  for (const testCase of job.cases) {
    sink.text = '';
    const entry = { value: null, error: null, console: '' };
    if (!out.load_error) {
      context.__block_args = testCase;
      try {
        const value = new vm.Script(job.entry_point + '.apply(null, __block_args)')
          .runInContext(context, options);
        entry.value = value === undefined ? null : value;
      } catch (e) {
        entry.error = describe(e);
      }
    }
    entry.console = sink.text;
    out.results.push(entry);
  }
  process.stdout.write(JSON.stringify(out));
});
"""


class NodeError(RuntimeFault):
    """An error reported from inside the Node.js vm context."""

    def __init__(self, type_name: str, message: str):
        super().__init__(message)
        self.type_name = type_name


def _node_error(described: Dict[str, Any], timeout: Optional[float]) -> RuntimeFault:
    if described.get('timeout'):
        return InvocationTimeout(timeout or 0)
    return NodeError(described.get('type', 'Error'), described.get('message', ''))


class NodeExecutor:
    """Runs generated JavaScript via a Node.js subprocess.

    Each run starts one Node process; the program is loaded once into a
    ``vm`` context and each case gets a fresh console buffer.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._node_path: Optional[str] = shutil.which('node')

    @property
    def available(self) -> bool:
        return self._node_path is not None

    def _run_job(self, job: Dict[str, Any]) -> Dict[str, Any]:
        if not self._node_path:
            raise RuntimeFault('Node.js runtime not found on PATH')
        tmp_file = None
        budget = (self.timeout or 30) * (len(job['cases']) + 1) + 5
        try:
            tmp_fd, tmp_file = tempfile.mkstemp(suffix='.js', prefix='blockgrader_')
            with os.fdopen(tmp_fd, 'w', encoding='utf-8') as f:
                f.write(NODE_DRIVER)
            proc = _run_subprocess(
                [self._node_path, tmp_file],
                input=json.dumps(job),
                capture_output=True,
                text=True,
                timeout=budget,
            )
        except subprocess.TimeoutExpired as e:
            raise RuntimeFault(f'Node.js did not finish within {budget:g}s', e)
        except OSError as e:
            raise RuntimeFault(f'Could not start Node.js: {e}', e)
        finally:
            if tmp_file and os.path.exists(tmp_file):
                os.unlink(tmp_file)
        if proc.returncode != 0:
            raise RuntimeFault((proc.stderr or '').strip() or f'Node.js exited with code {proc.returncode}')
        try:
            return json.loads(proc.stdout)
        except ValueError as e:
            raise RuntimeFault('Node.js returned an unreadable report', e)

    def _job(self, program: str, entry_point: Optional[str], cases: List[List[Any]]):
        return {
            'program': program,
            'entry_point': entry_point,
            'cases': cases,
            'timeout_ms': int(self.timeout * 1000) if self.timeout else 0,
        }

    def run_cases(self, program: str, entry_point: str,
                  test_cases: Sequence[TestCase]) -> Tuple[str, List[TestResult]]:
        try:
            report = self._run_job(self._job(program, entry_point,
                                             [list(case.input) for case in test_cases]))
        except RuntimeFault as e:
            logger.warning("JavaScript run failed: %s", e)
            return "", [TestResult(case, None, format_error(e), False, Outcome.RUNTIME_ERROR)
                        for case in test_cases]

        load_output = report.get('load_output', '')
        load_error = report.get('load_error')
        results = []
        for case, entry in zip(test_cases, report.get('results', [])):
            failure = load_error or entry.get('error')
            if failure:
                error = _node_error(failure, self.timeout)
                console = load_output if load_error else entry.get('console', '')
                outcome = Outcome.TIMEOUT if isinstance(error, InvocationTimeout) \
                    else Outcome.RUNTIME_ERROR
                results.append(TestResult(case, None, _node_error_text(error, console),
                                          False, outcome))
                continue
            actual = entry.get('value')
            passed = deep_equals(actual, case.expected_output)
            results.append(TestResult(case, actual, entry.get('console', ''), passed,
                                      Outcome.PASSED if passed else Outcome.WRONG_ANSWER))
        return load_output, results

    def execute(self, program: str) -> ExecutionResult:
        start_time = time.perf_counter()
        try:
            report = self._run_job(self._job(program, None, []))
        except RuntimeFault as e:
            return ExecutionResult(False, format_error(e), e, time.perf_counter() - start_time)
        output = report.get('load_output', '')
        if report.get('load_error'):
            error = _node_error(report['load_error'], self.timeout)
            return ExecutionResult(False, _node_error_text(error, output), error,
                                   time.perf_counter() - start_time)
        return ExecutionResult(True, output, None, time.perf_counter() - start_time)


def _node_error_text(error: RuntimeFault, console: str) -> str:
    if isinstance(error, NodeError):
        message = f"Error: {error.type_name}: {error}"
        return f"{message}\n{console}" if console else f"{message}\n"
    return format_error(error, console)


EXECUTORS = {
    'python': PythonExecutor,
    'javascript': NodeExecutor,
}


class ExecutionHarness:
    """Runs one generated program against a list of test cases and scores it."""

    def __init__(self, language: str = "python", timeout: Optional[float] = None):
        if language not in EXECUTORS:
            raise ValueError(f"No executor for language {language!r}")
        self.language = language
        self.timeout = timeout if timeout is not None else get_settings().invocation_timeout
        self.executor = EXECUTORS[language](self.timeout)

    def run(self, program: str, entry_point: str, test_cases: Sequence[TestCase]) -> RunReport:
        """Load ``program`` once and invoke ``entry_point`` for each case, in order."""
        load_output, results = self.executor.run_cases(program, entry_point, list(test_cases))
        score, status = score_results(results)
        report = RunReport(results=results, score=score, status=status, load_output=load_output)
        logger.info("Ran %d case(s) in %s: %d passed, score %s (%s)",
                    report.total, self.language, report.passed_count, score, status)
        return report

    def run_script(self, program: str) -> ExecutionResult:
        """Run a whole program once (playground mode)."""
        return self.executor.execute(program)
