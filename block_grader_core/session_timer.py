"""
Session/timer controller for timed challenge attempts.

State machine per (challenge, user):

    no_attempt ──enter()──▶ active ──mark_submitted()──▶ submitted
        ▲                     │                              │
        └──────reset()────────┘◀─────────enter()─────────────┘

An active session survives the learner leaving: ``enter()`` resumes it with
the original start time. Elapsed time is wall-clock since that start plus
any time carried over from a reused earlier submission.
"""

import logging
import math
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Optional

from .exceptions import PersistenceError, SessionStateError
from .storage import SessionStore
from .workspace import workspace_key

logger = logging.getLogger(__name__)


class SessionState(Enum):
    NO_ATTEMPT = "no_attempt"
    ACTIVE = "active"
    SUBMITTED = "submitted"


def session_key(challenge_key, user_id) -> str:
    return f"challenge_{challenge_key}_{user_id}_session"


@dataclass
class SessionRecord:
    challenge_key: str
    user_id: str
    start_timestamp: float
    active: bool = True
    carried_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'SessionRecord':
        return cls(
            challenge_key=str(data['challenge_key']),
            user_id=str(data['user_id']),
            start_timestamp=float(data['start_timestamp']),
            active=bool(data.get('active', True)),
            carried_seconds=float(data.get('carried_seconds', 0.0)),
        )


def format_elapsed(seconds: float) -> str:
    """Render seconds as ``HH:MM:SS``; hours are not wrapped at 24."""
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def parse_elapsed(text: str) -> int:
    """Inverse of ``format_elapsed``; also accepts ``MM:SS`` and bare seconds."""
    parts = text.strip().split(':')
    if not 1 <= len(parts) <= 3 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Not an elapsed time: {text!r}")
    total = 0
    for part in parts:
        total = total * 60 + int(part)
    return total


class SessionController:
    """Tracks one learner's attempt at one challenge.

    The record lives in ``store`` under ``session_key``; the workspace key
    is cleared from the same store when the attempt is submitted.
    Store failures are logged and the controller keeps working from memory.
    """

    def __init__(self, store: SessionStore, challenge_key, user_id,
                 clock: Callable[[], float] = time.time,
                 workspace_store_key: Optional[str] = None):
        self.store = store
        self.challenge_key = str(challenge_key)
        self.user_id = str(user_id)
        self.clock = clock
        self.key = session_key(challenge_key, user_id)
        self.workspace_key = workspace_store_key or workspace_key(challenge_key, user_id)
        self._record: Optional[SessionRecord] = None
        self._submitted = False
        self._load()

    def _load(self):
        try:
            data = self.store.get_json(self.key)
        except PersistenceError as e:
            logger.warning("Could not read session %s: %s", self.key, e)
            return
        if not data:
            return
        try:
            record = SessionRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed session record %s: %s", self.key, e)
            return
        if record.active:
            self._record = record

    def _persist(self):
        try:
            if self._record is None:
                self.store.clear(self.key)
            else:
                self.store.set_json(self.key, self._record.to_dict())
        except PersistenceError as e:
            logger.warning("Could not write session %s: %s", self.key, e)

    @property
    def state(self) -> SessionState:
        if self._record is not None and self._record.active:
            return SessionState.ACTIVE
        if self._submitted:
            return SessionState.SUBMITTED
        return SessionState.NO_ATTEMPT

    @property
    def record(self) -> Optional[SessionRecord]:
        return self._record

    def enter(self) -> SessionRecord:
        """Start an attempt, or resume the active one without touching its clock."""
        if self.state is SessionState.ACTIVE:
            logger.debug("Resuming session %s", self.key)
            return self._record
        self._record = SessionRecord(self.challenge_key, self.user_id, self.clock())
        self._submitted = False
        self._persist()
        logger.info("Started session %s", self.key)
        return self._record

    def elapsed_seconds(self) -> float:
        if self._record is None:
            return 0.0
        return max(0.0, self.clock() - self._record.start_timestamp) + self._record.carried_seconds

    def elapsed_display(self) -> str:
        return format_elapsed(self.elapsed_seconds())

    def begin_submission(self) -> int:
        """Check a submission is allowed and return the whole seconds spent."""
        if self.state is not SessionState.ACTIVE:
            raise SessionStateError(f"No active attempt for {self.challenge_key}")
        return int(math.floor(self.elapsed_seconds()))

    def mark_submitted(self) -> int:
        """Active → submitted. Clears the stored workspace and the session record."""
        time_spent = self.begin_submission()
        self._record = None
        self._submitted = True
        self._persist()
        try:
            self.store.clear(self.workspace_key)
        except PersistenceError as e:
            logger.warning("Could not clear workspace %s: %s", self.workspace_key, e)
        logger.info("Session %s submitted after %ss", self.key, time_spent)
        return time_spent

    def reset(self):
        self._record = None
        self._submitted = False
        self._persist()

    def resume_from_submission(self, xml: str, time_spent: float) -> SessionRecord:
        """Start a new attempt from an earlier submission's program and time."""
        try:
            self.store.set(self.workspace_key, xml)
        except PersistenceError as e:
            logger.warning("Could not seed workspace %s: %s", self.workspace_key, e)
        self._record = SessionRecord(self.challenge_key, self.user_id, self.clock(),
                                     carried_seconds=max(0.0, float(time_spent)))
        self._submitted = False
        self._persist()
        return self._record
