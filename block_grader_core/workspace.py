"""
Workspace persistence: keeps the learner's on-screen program and its
stored serialized form in step.

The manager listens to editor change events, debounces them into a single
write of the latest program, restores the right form on mount, and
carries the program across display-language switches that rebuild the
editor chrome.

The graph is only ever serialized on the thread that delivers editor
events. The debounce timer thread writes an already captured string, and
each capture carries a sequence number so an older form never replaces a
newer one in the store.

Store keys:
    blockly_workspace_<scope>_<user>
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .block_vocabulary import (DEFAULT_DISPLAY_LANGUAGE, DISPLAY_LANGUAGES, block_label,
                               describe_vocabulary)
from .config import get_settings
from .debounce import Debouncer, TimerFactory
from .exceptions import ParseError, PersistenceError
from .models import BlockGraph, BlockNode
from .serializer import EMPTY_DOCUMENT, deserialize, serialize
from .storage import MemoryStore, SessionStore

logger = logging.getLogger(__name__)

WORKSPACE_KEY_PREFIX = "blockly_workspace"
PRACTICE_SCOPE = "playground"


def workspace_key(scope, user) -> str:
    """Store key for one (challenge-or-mode, user) workspace."""
    return f"{WORKSPACE_KEY_PREFIX}_{scope}_{user}"


class WorkspaceMode(Enum):
    CHALLENGE = "challenge"   # durable, keyed per challenge
    PRACTICE = "practice"     # in-memory only
    REVIEW = "review"         # read-only, restores once


class RestoreSource(Enum):
    """Where the program shown after ``mount()`` came from."""
    STORED = "stored"
    INITIAL = "initial"
    REVIEW = "review"
    EMPTY = "empty"


class EditorEventType(Enum):
    BLOCK_CREATE = "block_create"
    BLOCK_DELETE = "block_delete"
    BLOCK_CHANGE = "block_change"
    BLOCK_MOVE = "block_move"
    UI = "ui"
    SELECTED = "selected"
    VIEWPORT_CHANGE = "viewport_change"
    TOOLBOX_ITEM_SELECT = "toolbox_item_select"


CONTENT_EVENTS = frozenset({
    EditorEventType.BLOCK_CREATE,
    EditorEventType.BLOCK_DELETE,
    EditorEventType.BLOCK_CHANGE,
    EditorEventType.BLOCK_MOVE,
})


@dataclass(frozen=True)
class EditorEvent:
    type: EditorEventType
    block_id: Optional[str] = None

    @property
    def changes_content(self) -> bool:
        return self.type in CONTENT_EVENTS


EditorListener = Callable[[EditorEvent], None]


class EditorBridge(ABC):
    """What the workspace manager needs from a visual editor."""

    @property
    @abstractmethod
    def graph(self) -> BlockGraph:
        """The graph currently on screen."""

    @abstractmethod
    def load(self, graph: BlockGraph):
        """Replace the on-screen program."""

    @abstractmethod
    def clear(self):
        ...

    @abstractmethod
    def rebuild_chrome(self, language: str):
        """Re-create toolbox and labels for ``language``. Drops the program."""

    @property
    @abstractmethod
    def overlay_visible(self) -> bool:
        ...

    @abstractmethod
    def set_overlay_visible(self, visible: bool):
        ...

    @abstractmethod
    def add_change_listener(self, listener: EditorListener):
        ...

    @abstractmethod
    def remove_change_listener(self, listener: EditorListener):
        ...


class HeadlessEditor(EditorBridge):
    """An in-process editor with no canvas.

    Renders localized labels and a toolbox description, and lets callers
    mutate the graph and announce the change like a real editor would.
    """

    def __init__(self, language: str = DEFAULT_DISPLAY_LANGUAGE):
        self.language = language
        self._graph = BlockGraph()
        self._overlay_visible = False
        self._listeners: List[EditorListener] = []
        self.chrome_builds = 1

    @property
    def graph(self) -> BlockGraph:
        return self._graph

    def load(self, graph: BlockGraph):
        self._graph = graph

    def clear(self):
        self._graph = BlockGraph()

    def rebuild_chrome(self, language: str):
        if language not in DISPLAY_LANGUAGES:
            raise ValueError(f"Unsupported display language: {language!r}")
        self.language = language
        self._graph = BlockGraph()
        self._overlay_visible = False
        self.chrome_builds += 1

    @property
    def overlay_visible(self) -> bool:
        return self._overlay_visible

    def set_overlay_visible(self, visible: bool):
        self._overlay_visible = bool(visible)

    def add_change_listener(self, listener: EditorListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_change_listener(self, listener: EditorListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def fire(self, event_type: EditorEventType, block_id: Optional[str] = None):
        event = EditorEvent(event_type, block_id)
        for listener in list(self._listeners):
            listener(event)

    def add_block(self, node: BlockNode, position=None) -> BlockNode:
        self._graph.add_root(node, position)
        self.fire(EditorEventType.BLOCK_CREATE, node.id)
        return node

    def labels(self) -> List[str]:
        return [block_label(node.type, self.language) for node in self._graph.walk()]

    def toolbox(self):
        return describe_vocabulary(self.language)


class WorkspaceManager:
    """Owns when the program is serialized, where it is stored and how it is restored.

    Args:
        editor:      the visual editor boundary
        store:       durable store (ignored in practice mode)
        key:         store key, see ``workspace_key``
        mode:        challenge / practice / review
        initial_xml: challenge-supplied starting program
        review_xml:  the form to show in review mode
    """

    def __init__(self, editor: EditorBridge, store: Optional[SessionStore], key: str,
                 mode: WorkspaceMode = WorkspaceMode.CHALLENGE,
                 initial_xml: Optional[str] = None, review_xml: Optional[str] = None,
                 debounce_ms: Optional[int] = None,
                 timer_factory: Optional[TimerFactory] = None):
        self.editor = editor
        self.mode = mode
        self.key = key
        self.initial_xml = initial_xml
        self.review_xml = review_xml
        if mode is WorkspaceMode.PRACTICE or store is None:
            store = MemoryStore()
        self.store = store
        if debounce_ms is None:
            debounce_ms = get_settings().debounce_ms
        self._debouncer = Debouncer(self._write_pending, debounce_ms / 1000.0, timer_factory)
        self._lock = threading.Lock()
        self._seq = 0
        self._written_seq = 0
        self._pending: Optional[Tuple[int, str]] = None
        self._overlay_visible = False
        self._mounted = False
        self._source: Optional[RestoreSource] = None
        self.last_saved: Optional[str] = None
        self.writes = 0

    @property
    def writable(self) -> bool:
        return self.mode is not WorkspaceMode.REVIEW

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def save_pending(self) -> bool:
        return self._debouncer.pending

    # -- restore --------------------------------------------------------

    def _restore(self, text: Optional[str]) -> bool:
        """Load ``text`` into the editor; a bad form leaves the editor empty."""
        try:
            graph = deserialize(text)
        except ParseError as e:
            logger.warning("Could not restore workspace %s: %s", self.key, e)
            self.editor.clear()
            return False
        self.editor.load(graph)
        return True

    def _stored_form(self) -> Optional[str]:
        try:
            return self.store.get(self.key)
        except PersistenceError as e:
            logger.warning("Workspace store read failed for %s: %s", self.key, e)
            return None

    def mount(self) -> RestoreSource:
        """Show the right program: stored → initial → empty (review: the given form).

        Mounting again while mounted restores nothing and reports the
        source of the first mount.
        """
        if self._mounted:
            return self._source
        self._mounted = True
        self.editor.add_change_listener(self.on_editor_event)
        self._source = self._restore_on_mount()
        return self._source

    def _restore_on_mount(self) -> RestoreSource:
        if self.mode is WorkspaceMode.REVIEW:
            if self.review_xml and self._restore(self.review_xml):
                return RestoreSource.REVIEW
            self.editor.clear()
            return RestoreSource.EMPTY

        stored = self._stored_form()
        if stored is not None:
            return RestoreSource.STORED if self._restore(stored) else RestoreSource.EMPTY
        if self.initial_xml:
            return RestoreSource.INITIAL if self._restore(self.initial_xml) else RestoreSource.EMPTY
        self.editor.clear()
        return RestoreSource.EMPTY

    # -- change tracking ----------------------------------------------------

    def on_editor_event(self, event: EditorEvent):
        if not self.writable or not self._mounted or not event.changes_content:
            return
        captured = self._capture()
        with self._lock:
            self._pending = captured
        self._debouncer.trigger()

    def snapshot(self) -> str:
        """Serialized form of what is on screen right now."""
        return serialize(self.editor.graph)

    def _capture(self) -> Tuple[int, str]:
        text = self.snapshot()
        with self._lock:
            self._seq += 1
            return self._seq, text

    def _write(self, seq: int, text: str) -> bool:
        with self._lock:
            if seq <= self._written_seq:
                return False
            try:
                self.store.set(self.key, text)
            except PersistenceError as e:
                logger.warning("Workspace save failed for %s: %s", self.key, e)
                return False
            self._written_seq = seq
            self.last_saved = text
            self.writes += 1
            return True

    def _write_pending(self):
        # Runs on the debounce timer thread; never touches the editor.
        with self._lock:
            captured, self._pending = self._pending, None
        if captured is not None:
            self._write(*captured)

    def save(self) -> bool:
        """Write the current program to the store. Store failures are logged, not raised."""
        if not self.writable:
            return False
        captured = self._capture()
        with self._lock:
            self._pending = None
        return self._write(*captured)

    def flush(self) -> bool:
        """Write the current program now if a debounced write is pending.

        Returns whether one was pending.
        """
        if not self._debouncer.cancel():
            return False
        self.save()
        return True

    # -- display language ---------------------------------------------------

    def on_overlay_toggled(self, visible: bool):
        self._overlay_visible = bool(visible)

    @property
    def overlay_visible(self) -> bool:
        return self._overlay_visible

    def switch_display_language(self, language: str):
        """Rebuild the editor chrome for ``language`` without losing the program."""
        if self.writable:
            self.flush()
        captured = self.snapshot()
        overlay = self._overlay_visible
        self.editor.rebuild_chrome(language)
        self._restore(captured)
        self.editor.set_overlay_visible(overlay)
        self._overlay_visible = overlay
        logger.debug("Switched %s to display language %s", self.key, language)

    # -- teardown -------------------------------------------------------

    def unmount(self):
        if not self._mounted:
            return
        self._debouncer.cancel()
        if self.writable:
            self.save()
        self.editor.remove_change_listener(self.on_editor_event)
        self._mounted = False

    def discard(self):
        """Forget the stored program and show the initial one again.

        Review mode never clears the store.
        """
        if not self.writable:
            return
        self._debouncer.cancel()
        with self._lock:
            # Drops any capture still in flight on the timer thread.
            self._pending = None
            self._written_seq = self._seq
        try:
            self.store.clear(self.key)
        except PersistenceError as e:
            logger.warning("Could not clear workspace %s: %s", self.key, e)
        self.last_saved = None
        self._restore(self.initial_xml or EMPTY_DOCUMENT)

    def seed(self, xml: str) -> bool:
        """Replace both the stored and the on-screen program with ``xml``."""
        self._debouncer.cancel()
        if not self._restore(xml):
            return False
        return self.save()
