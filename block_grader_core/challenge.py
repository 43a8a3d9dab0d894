"""
Challenge orchestration.

``ChallengeWorkbench`` wires one learner's attempt together: the editor and
its workspace manager, the emitters, the execution harness, the session
timer and the submissions client. ``Playground`` is the ungraded variant
with an in-memory workspace and whole-program runs.
"""

import json
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .code_generator import emit, emit_all, supported_languages
from .config import get_settings
from .debounce import TimerFactory
from .exceptions import (CodegenError, HarnessBusyError, SessionStateError,
                         SubmissionTransportError)
from .execution_engine import ExecutionHarness, ExecutionResult, RunReport, TestCase
from .session_timer import SessionController, parse_elapsed
from .storage import MemoryStore, SessionStore
from .submissions import SubmissionPayload, SubmissionsClient
from .workspace import (PRACTICE_SCOPE, EditorBridge, EditorEvent, HeadlessEditor,
                        RestoreSource, WorkspaceManager, WorkspaceMode, workspace_key)

logger = logging.getLogger(__name__)


def _parse_input(raw) -> Tuple[Any, ...]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return (raw,)
    if isinstance(raw, (list, tuple)):
        return tuple(raw)
    return (raw,)


@dataclass
class Challenge:
    """A challenge definition as served by the challenges API."""
    id: Any
    slug: str
    function_name: str
    initial_xml: str = ""
    test_cases: List[TestCase] = field(default_factory=list)
    max_attempts: Optional[int] = None
    parameters: Tuple[str, ...] = ()
    title: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Challenge':
        if not data.get('function_name'):
            raise ValueError("Challenge has no function_name")
        cases = [
            TestCase(
                id=case.get('id', index),
                input=_parse_input(case.get('input', [])),
                expected_output=case.get('expected_output'),
                is_sample=bool(case.get('is_sample', False)),
            )
            for index, case in enumerate(data.get('test_cases') or [])
        ]
        max_attempts = data.get('max_attempts')
        return cls(
            id=data.get('id'),
            slug=str(data.get('slug') or data.get('id')),
            function_name=data['function_name'],
            initial_xml=data.get('initial_xml') or "",
            test_cases=cases,
            max_attempts=int(max_attempts) if max_attempts is not None else None,
            parameters=tuple(data.get('parameters') or ()),
            title=data.get('title', ""),
            description=data.get('description', ""),
        )

    @property
    def sample_cases(self) -> List[TestCase]:
        return [case for case in self.test_cases if case.is_sample]


@dataclass
class SubmissionOutcome:
    submission_id: Any
    report: RunReport
    time_spent: int


class _RunGuard:
    """Rejects a run while another one is in flight."""

    def __init__(self):
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self):
        if not self._lock.acquire(blocking=False):
            raise HarnessBusyError("A run is already in progress")
        try:
            yield
        finally:
            self._lock.release()


class ChallengeWorkbench:
    """One learner working on one challenge."""

    def __init__(self, challenge: Challenge, user_id, store: Optional[SessionStore] = None,
                 editor: Optional[EditorBridge] = None,
                 client: Optional[SubmissionsClient] = None,
                 language: Optional[str] = None, timeout: Optional[float] = None,
                 clock: Callable[[], float] = time.time,
                 debounce_ms: Optional[int] = None,
                 timer_factory: Optional[TimerFactory] = None):
        self.challenge = challenge
        self.user_id = user_id
        self.store = store if store is not None else MemoryStore()
        self.editor = editor or HeadlessEditor()
        self.key = workspace_key(challenge.slug, user_id)
        self.workspace = WorkspaceManager(
            self.editor, self.store, self.key, WorkspaceMode.CHALLENGE,
            initial_xml=challenge.initial_xml, debounce_ms=debounce_ms,
            timer_factory=timer_factory)
        self.session = SessionController(self.store, challenge.slug, user_id, clock, self.key)
        self.harness = ExecutionHarness(language or get_settings().primary_language, timeout)
        self._client = client
        self._guard = _RunGuard()
        self._code: Dict[str, str] = {}
        self._codegen_error: Optional[CodegenError] = None
        self.samples_run = False
        self.last_report: Optional[RunReport] = None

    @property
    def client(self) -> SubmissionsClient:
        if self._client is None:
            self._client = SubmissionsClient()
        return self._client

    # -- lifecycle ------------------------------------------------------

    def open(self) -> RestoreSource:
        """Enter the challenge: start or resume the timer and restore the workspace."""
        self.session.enter()
        source = self.workspace.mount()
        self.editor.add_change_listener(self._on_editor_event)
        self.refresh_code()
        return source

    def close(self):
        self.editor.remove_change_listener(self._on_editor_event)
        self.workspace.unmount()

    def switch_display_language(self, language: str):
        self.workspace.switch_display_language(language)
        self.refresh_code()

    def _on_editor_event(self, event: EditorEvent):
        if event.changes_content:
            self.refresh_code()

    # -- generated code -------------------------------------------------

    def refresh_code(self):
        """Regenerate every language from the current graph."""
        try:
            self._code = emit_all(self.editor.graph, self.challenge.function_name,
                                  self.challenge.parameters)
            self._codegen_error = None
        except CodegenError as e:
            logger.info("Cannot generate code for %s: %s", self.key, e)
            self._code = {}
            self._codegen_error = e

    def generated_code(self, language: str) -> Optional[str]:
        return self._code.get(language)

    @property
    def code_by_language(self) -> Dict[str, str]:
        return dict(self._code)

    @property
    def codegen_error(self) -> Optional[CodegenError]:
        return self._codegen_error

    @property
    def running(self) -> bool:
        return self._guard.running

    @property
    def can_run(self) -> bool:
        return (self._codegen_error is None and not self.editor.graph.is_empty()
                and self.harness.language in self._code and not self.running)

    @property
    def can_submit(self) -> bool:
        return self.can_run and self.samples_run and self.session.record is not None

    def _program(self) -> str:
        if self.running:
            raise HarnessBusyError("A run is already in progress")
        if self._codegen_error is not None:
            raise self._codegen_error
        if self.editor.graph.is_empty() or self.harness.language not in self._code:
            raise CodegenError("Nothing to run")
        return self._code[self.harness.language]

    # -- runs -----------------------------------------------------------

    def run_samples(self) -> RunReport:
        """Run the program against the sample cases only."""
        program = self._program()
        with self._guard.hold():
            report = self.harness.run(program, self.challenge.function_name,
                                      self.challenge.sample_cases)
        self.samples_run = True
        self.last_report = report
        return report

    def submit(self) -> SubmissionOutcome:
        """Run every case and hand the result to the submissions API.

        A transport failure leaves the session and workspace untouched so
        the learner can retry.
        """
        program = self._program()
        if not self.samples_run:
            raise SessionStateError("Run the sample cases before submitting")
        time_spent = self.session.begin_submission()
        self.workspace.flush()
        xml = self.workspace.snapshot()
        with self._guard.hold():
            report = self.harness.run(program, self.challenge.function_name,
                                      self.challenge.test_cases)
            payload = SubmissionPayload.from_report(self.challenge.id, xml, report, time_spent)
            try:
                submission_id = self.client.submit(payload)
            except SubmissionTransportError as e:
                logger.warning("Submission for %s failed (retryable=%s): %s",
                               self.key, e.retryable, e)
                raise
        self.last_report = report
        self.session.mark_submitted()
        self.workspace.discard()
        self.samples_run = False
        self.refresh_code()
        return SubmissionOutcome(submission_id, report, time_spent)

    def run_playground(self) -> ExecutionResult:
        """Run the whole program once, as written, without test cases."""
        program = emit(self.editor.graph, self.harness.language)
        with self._guard.hold():
            return self.harness.run_script(program)

    def reuse_submission(self, submission: Dict[str, Any]):
        """Continue from an earlier submission's program and time."""
        time_spent = submission.get('time_spent') or 0
        if isinstance(time_spent, str):
            time_spent = parse_elapsed(time_spent)
        xml = submission.get('xml') or ""
        self.session.resume_from_submission(xml, time_spent)
        self.workspace.seed(xml)
        self.samples_run = False
        self.refresh_code()


class Playground:
    """Ungraded practice: in-memory workspace, whole-program runs."""

    def __init__(self, user_id, editor: Optional[EditorBridge] = None,
                 language: Optional[str] = None, timeout: Optional[float] = None,
                 debounce_ms: Optional[int] = None,
                 timer_factory: Optional[TimerFactory] = None):
        self.editor = editor or HeadlessEditor()
        self.workspace = WorkspaceManager(
            self.editor, None, workspace_key(PRACTICE_SCOPE, user_id), WorkspaceMode.PRACTICE,
            debounce_ms=debounce_ms, timer_factory=timer_factory)
        self.harness = ExecutionHarness(language or get_settings().primary_language, timeout)
        self._guard = _RunGuard()

    def open(self) -> RestoreSource:
        return self.workspace.mount()

    def code(self, language: str) -> str:
        return emit(self.editor.graph, language)

    def all_code(self) -> Dict[str, str]:
        """Code for every language; a language that fails shows its error instead."""
        out = {}
        for language in supported_languages():
            try:
                out[language] = self.code(language)
            except CodegenError as e:
                out[language] = f"Error: {e}"
        return out

    def run(self) -> ExecutionResult:
        program = self.code(self.harness.language)
        with self._guard.hold():
            return self.harness.run_script(program)


def open_review(editor: EditorBridge, submission: Dict[str, Any]) -> WorkspaceManager:
    """Show a past submission read-only."""
    manager = WorkspaceManager(editor, None, f"review_{submission.get('id')}",
                               WorkspaceMode.REVIEW, review_xml=submission.get('xml') or "")
    manager.mount()
    return manager
