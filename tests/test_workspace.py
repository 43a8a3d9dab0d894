"""
Tests for workspace persistence.
"""

import time

import pytest

from block_grader_core.exceptions import PersistenceError
from block_grader_core.models import BlockGraph, BlockNode
from block_grader_core.serializer import EMPTY_DOCUMENT, deserialize, serialize
from block_grader_core.storage import MemoryStore
from block_grader_core.workspace import (
    EditorEventType, HeadlessEditor, RestoreSource, WorkspaceManager, WorkspaceMode,
    workspace_key,
)

from graph_builders import doubled_sum_graph, number, print_block, text

KEY = workspace_key(7, "u1")


class FailingStore(MemoryStore):
    """Reads work, writes always fail."""

    def set(self, key, value):
        raise PersistenceError("disk full", key)

    def clear(self, key):
        raise PersistenceError("disk full", key)


class UnreadableStore(MemoryStore):
    def get(self, key):
        raise PersistenceError("cannot read", key)


def make_manager(store, timers, editor=None, **kwargs):
    editor = editor or HeadlessEditor()
    manager = WorkspaceManager(editor, store, KEY, debounce_ms=500, timer_factory=timers, **kwargs)
    return editor, manager


class TestKeys:

    def test_workspace_key(self):
        assert KEY == "blockly_workspace_7_u1"
        assert workspace_key("playground", 3) == "blockly_workspace_playground_3"


class TestMount:

    def test_stored_form_wins(self, store, timers):
        store.set(KEY, serialize(doubled_sum_graph()))
        initial = serialize(BlockGraph([number(1)]))
        editor, manager = make_manager(store, timers, initial_xml=initial)
        assert manager.mount() is RestoreSource.STORED
        assert editor.graph == deserialize(store.get(KEY))

    def test_initial_form_when_nothing_stored(self, store, timers):
        initial = serialize(doubled_sum_graph())
        editor, manager = make_manager(store, timers, initial_xml=initial)
        assert manager.mount() is RestoreSource.INITIAL
        assert serialize(editor.graph) == initial
        assert store.get(KEY) is None

    def test_empty_when_nothing_at_all(self, store, timers):
        editor, manager = make_manager(store, timers)
        assert manager.mount() is RestoreSource.EMPTY
        assert editor.graph.is_empty()

    def test_corrupt_stored_form_gives_empty_workspace(self, store, timers, caplog):
        store.set(KEY, "<xml><block type='nonsense'/></xml>")
        editor, manager = make_manager(store, timers, initial_xml=serialize(doubled_sum_graph()))
        assert manager.mount() is RestoreSource.EMPTY
        assert editor.graph.is_empty()
        assert "Could not restore workspace" in caplog.text

    def test_unreadable_store_falls_back_to_initial(self, timers):
        initial = serialize(doubled_sum_graph())
        editor, manager = make_manager(UnreadableStore(), timers, initial_xml=initial)
        assert manager.mount() is RestoreSource.INITIAL

    def test_mount_twice_is_harmless(self, store, timers):
        editor, manager = make_manager(store, timers)
        assert manager.mount() is RestoreSource.EMPTY
        assert manager.mount() is RestoreSource.EMPTY
        editor.add_block(number(1))
        assert len(timers.live) == 1

    @pytest.mark.parametrize("mode, expected", [
        (WorkspaceMode.CHALLENGE, RestoreSource.INITIAL),
        (WorkspaceMode.REVIEW, RestoreSource.REVIEW),
    ])
    def test_second_mount_reports_first_source(self, store, timers, mode, expected):
        xml = serialize(doubled_sum_graph())
        editor, manager = make_manager(store, timers, mode=mode, initial_xml=xml, review_xml=xml)
        assert manager.mount() is expected
        editor.graph.clear()
        assert manager.mount() is expected
        assert editor.graph.is_empty()


class TestSaving:

    def test_edits_are_debounced_into_one_write(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        for value in range(5):
            editor.add_block(number(value))
        assert store.get(KEY) is None
        assert manager.save_pending
        timers.fire_all()
        assert manager.writes == 1
        assert deserialize(store.get(KEY)) == editor.graph
        assert len(editor.graph.roots) == 5

    def test_write_holds_form_of_last_change_event(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        first = editor.add_block(number(1))
        late = number(2)
        editor.graph.add_root(late)
        timers.fire_all()
        assert first.id in store.get(KEY)
        assert late.id not in store.get(KEY)

        editor.fire(EditorEventType.BLOCK_MOVE, late.id)
        timers.fire_all()
        assert late.id in store.get(KEY)

    def test_superseded_timer_write_is_dropped(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        editor.add_block(number(1))
        stale = timers.created[0]
        manager.flush()
        current = store.get(KEY)
        editor.add_block(number(2))
        # An old timer that slipped past cancellation must not write
        stale.callback()
        assert store.get(KEY) == current
        assert manager.writes == 1

    def test_edits_while_real_timer_fires(self, store, caplog):
        editor = HeadlessEditor()
        manager = WorkspaceManager(editor, store, KEY, debounce_ms=0)
        manager.mount()
        items = editor.add_block(BlockNode("lists_create_with", {"ITEMS": 3}))
        deadline = time.monotonic() + 0.5
        while time.monotonic() < deadline:
            items.attach("ADD0", number(1))
            editor.fire(EditorEventType.BLOCK_CHANGE, items.id)
            items.detach_child("ADD0")
            editor.fire(EditorEventType.BLOCK_CHANGE, items.id)

        expected = serialize(editor.graph)
        for _ in range(200):
            if store.get(KEY) == expected:
                break
            time.sleep(0.01)
        assert store.get(KEY) == expected
        assert manager.writes > 0
        assert "Debounced action failed" not in caplog.text

    def test_ui_events_do_not_save(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        editor.fire(EditorEventType.SELECTED)
        editor.fire(EditorEventType.VIEWPORT_CHANGE)
        editor.fire(EditorEventType.UI)
        assert not timers.live

    def test_events_before_mount_are_ignored(self, store, timers):
        editor, manager = make_manager(store, timers)
        editor.add_block(number(1))
        assert not timers.live

    def test_flush(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        editor.add_block(number(1))
        assert manager.flush()
        assert store.get(KEY) is not None
        assert not manager.flush()

    def test_save_failure_is_logged(self, timers, caplog):
        editor, manager = make_manager(FailingStore(), timers)
        manager.mount()
        editor.add_block(number(1))
        timers.fire_all()
        assert manager.writes == 0
        assert "Workspace save failed" in caplog.text
        # The editor keeps the program
        assert len(editor.graph.roots) == 1

    def test_practice_mode_never_touches_durable_store(self, store, timers):
        editor, manager = make_manager(store, timers, mode=WorkspaceMode.PRACTICE)
        manager.mount()
        editor.add_block(number(1))
        timers.fire_all()
        assert manager.writes == 1
        assert store.keys() == []
        assert manager.store is not store

    def test_unmount_writes_final_state(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        editor.add_block(number(1))
        manager.unmount()
        assert store.get(KEY) is not None
        assert not timers.live
        assert not manager.mounted
        editor.add_block(number(2))
        assert not timers.live

    def test_discard_restores_initial(self, store, timers):
        initial = serialize(doubled_sum_graph())
        editor, manager = make_manager(store, timers, initial_xml=initial)
        manager.mount()
        editor.add_block(number(1))
        manager.flush()
        manager.discard()
        assert store.get(KEY) is None
        assert serialize(editor.graph) == initial

    def test_discard_without_initial_clears(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        editor.add_block(number(1))
        manager.discard()
        assert editor.graph.is_empty()
        assert not timers.live

    def test_seed(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        xml = serialize(doubled_sum_graph())
        assert manager.seed(xml)
        assert store.get(KEY) == xml
        assert serialize(editor.graph) == xml
        assert not manager.seed("garbage")


class TestReviewMode:

    def test_review_shows_given_form_and_never_writes(self, store, timers):
        xml = serialize(doubled_sum_graph())
        editor, manager = make_manager(store, timers, mode=WorkspaceMode.REVIEW, review_xml=xml)
        assert manager.mount() is RestoreSource.REVIEW
        assert serialize(editor.graph) == xml
        editor.add_block(number(1))
        assert not timers.live
        assert not manager.save()
        manager.unmount()
        assert store.keys() == []

    def test_review_without_form(self, store, timers):
        editor, manager = make_manager(store, timers, mode=WorkspaceMode.REVIEW)
        assert manager.mount() is RestoreSource.EMPTY

    def test_discard_leaves_store_and_review_form(self, store, timers):
        stored = serialize(BlockGraph([number(1)]))
        store.set(KEY, stored)
        xml = serialize(doubled_sum_graph())
        editor, manager = make_manager(store, timers, mode=WorkspaceMode.REVIEW,
                                       review_xml=xml, initial_xml=EMPTY_DOCUMENT)
        manager.mount()
        manager.discard()
        assert store.get(KEY) == stored
        assert serialize(editor.graph) == xml


class TestDisplayLanguage:

    def test_switch_keeps_program_and_overlay(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        editor.add_block(print_block(text("hi")), (10, 20))
        editor.set_overlay_visible(True)
        manager.on_overlay_toggled(True)
        before = serialize(editor.graph)

        manager.switch_display_language("id")

        assert editor.language == "id"
        assert editor.chrome_builds == 2
        assert serialize(editor.graph) == before
        assert editor.overlay_visible
        assert manager.overlay_visible
        assert store.get(KEY) == before
        assert editor.labels() == ["cetak %1", "teks"]

    def test_switch_with_hidden_overlay(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        manager.switch_display_language("id")
        assert not editor.overlay_visible

    def test_unknown_language(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        with pytest.raises(ValueError):
            manager.switch_display_language("xx")

    def test_switch_back_and_forth(self, store, timers):
        editor, manager = make_manager(store, timers)
        manager.mount()
        editor.add_block(BlockNode("logic_null"))
        before = serialize(editor.graph)
        manager.switch_display_language("id")
        manager.switch_display_language("en")
        assert serialize(editor.graph) == before
        assert editor.chrome_builds == 3

    def test_toolbox_localized(self):
        editor = HeadlessEditor("id")
        names = {entry["category_name"] for entry in editor.toolbox()}
        assert "Perulangan" in names


def test_empty_document_constant_restores_empty(store, timers):
    editor, manager = make_manager(store, timers)
    store.set(KEY, EMPTY_DOCUMENT)
    assert manager.mount() is RestoreSource.STORED
    assert editor.graph.is_empty()
