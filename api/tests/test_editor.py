import threading

import pytest

from signlayout.editor import EditorSession, SessionRegistry
from signlayout.exceptions import FieldNotFound, SessionNotFound, SignerLimitReached, SignerNotFound
from signlayout.geometry import PageSize
from signlayout.schemas import FieldType, PreparationState


@pytest.fixture
def editor():
    return EditorSession(
        PreparationState(document_id="doc"),
        page_sizes={1: PageSize(612, 792), 2: PageSize(612, 792)},
        page_count=2,
    )


def place_text(editor, x=100, y=200, width=150, height=30):
    record = editor.place_field(FieldType.TEXT, 1, x, y)
    return editor.update_field(record.id, width=width, height=height)


def test_drag_scenario_at_quarter_zoom(editor):
    editor.set_viewport(zoom=1.25)
    field = place_text(editor)

    (overlay,) = editor.overlays()
    assert overlay.rect.css() == {"left": 125.0, "top": 250.0, "width": 187.5, "height": 37.5}

    assert editor.pointer_down(field.id, 10, 10)
    editor.pointer_move(35, 10)
    (overlay,) = editor.overlays()
    assert overlay.active
    assert overlay.rect.css()["left"] == 150.0
    assert editor.state.find_field(field.id).x == 100

    outcome = editor.pointer_up()
    assert outcome.kind == "commit"
    committed = editor.state.find_field(field.id)
    assert (committed.x, committed.y) == (120, 200)

    assert editor.undo()
    assert editor.state.find_field(field.id).x == 100
    assert editor.redo()
    assert editor.state.find_field(field.id).x == 120


def test_scale_is_held_through_mid_gesture_zoom(editor):
    editor.set_viewport(zoom=1.25)
    field = place_text(editor)

    assert editor.pointer_down(field.id, 10, 10)
    editor.set_viewport(zoom=2.5, container_width=300)
    editor.pointer_move(35, 10)
    assert editor.pointer_up().kind == "commit"
    assert editor.state.find_field(field.id).x == 120


def test_place_field_defaults(editor):
    signature = editor.place_field(FieldType.SIGNATURE)
    assert (signature.width, signature.height) == (200, 80)
    assert (signature.x, signature.y) == (100, 100)
    assert signature.label == "Signature"
    assert signature.id.startswith("temp-")
    assert editor.selected_id == signature.id

    text = editor.place_field(FieldType.TEXT, page_number=9)
    assert text.page_number == 2
    assert text.font_family == "Arial"
    assert text.font_size == 12


def test_update_field_clamps_and_coerces(editor):
    signature = editor.place_field(FieldType.SIGNATURE)
    updated = editor.update_field(signature.id, width="10", height=5, page_number="2")
    assert (updated.width, updated.height) == (80, 30)
    assert updated.page_number == 2
    with pytest.raises(FieldNotFound):
        editor.update_field("missing", label="x")


def test_unchanged_update_is_not_recorded(editor):
    field = place_text(editor)
    entries = len(editor.history)
    editor.update_field(field.id, label=field.label)
    assert len(editor.history) == entries


def test_signer_colors_follow_assignment(editor):
    first = editor.add_signer("a@example.com", "Ann")
    second = editor.add_signer("b@example.com")
    assert first.color == "#3B82F6"
    assert second.color == "#10B981"
    assert second.order == 2

    field = editor.place_field(FieldType.SIGNATURE)
    assigned = editor.assign_signer(field.id, first.id)
    assert assigned.border_color == "#3B82F6"
    assert assigned.background_color == "#3B82F620"

    editor.update_signer(first.id, color="#000000")
    recolored = editor.state.find_field(field.id)
    assert recolored.border_color == "#000000"
    assert recolored.text_color == "#FFFFFF"

    editor.remove_signer(first.id)
    orphan = editor.state.find_field(field.id)
    assert orphan.signer_id is None
    assert orphan.border_color is None
    assert [s.id for s in editor.state.signers] == [second.id]

    with pytest.raises(SignerNotFound):
        editor.assign_signer(field.id, "nobody")


def test_single_signer_mode_limits_signers():
    editor = EditorSession(PreparationState(document_id="doc"), single_signer=True)
    editor.add_signer("a@example.com")
    with pytest.raises(SignerLimitReached):
        editor.add_signer("b@example.com")


def test_duplicate_and_delete(editor):
    field = place_text(editor)
    copy = editor.duplicate_field(field.id)
    assert (copy.x, copy.y) == (120, 220)
    assert [f.id for f in editor.state.fields] == [field.id, copy.id]
    assert editor.selected_id == copy.id

    editor.delete_field(copy.id)
    assert editor.selected_id is None
    with pytest.raises(FieldNotFound):
        editor.delete_field(copy.id)


def test_keyboard_shortcuts(editor):
    field = place_text(editor)
    assert editor.handle_key("ArrowRight") == "nudge"
    assert editor.handle_key("ArrowDown", shift=True) == "nudge"
    moved = editor.state.find_field(field.id)
    assert (moved.x, moved.y) == (101, 210)

    assert editor.handle_key("z", ctrl=True) == "undo"
    assert editor.state.find_field(field.id).y == 200
    assert editor.handle_key("Z", meta=True, shift=True) == "redo"
    assert editor.state.find_field(field.id).y == 210
    editor.undo()
    assert editor.handle_key("y", ctrl=True) == "redo"

    assert editor.handle_key("Delete") == "delete"
    assert editor.state.find_field(field.id) is None
    assert editor.handle_key("ArrowLeft") == "none"
    assert editor.handle_key("Escape") == "deselect"


def test_escape_cancels_gesture(editor):
    field = place_text(editor)
    editor.pointer_down(field.id, 0, 0)
    editor.pointer_move(40, 40)
    assert editor.handle_key("Escape") == "cancel"
    assert editor.state.find_field(field.id).x == 100


def test_undo_is_not_recorded_and_commit_truncates_redo(editor):
    field = place_text(editor)
    editor.update_field(field.id, label="one")
    entries = len(editor.history)
    editor.undo()
    assert len(editor.history) == entries
    assert editor.history.can_redo
    editor.update_field(field.id, label="two")
    assert not editor.history.can_redo
    assert editor.state.find_field(field.id).label == "two"


def test_fields_off_the_visible_page_are_not_draggable(editor):
    field = editor.place_field(FieldType.TEXT, page_number=2)
    assert not editor.pointer_down(field.id, 0, 0)
    editor.set_viewport(current_page=2)
    assert editor.pointer_down(field.id, 0, 0)


def test_unknown_page_size_renders_nothing():
    editor = EditorSession(PreparationState(document_id="doc"), page_count=1)
    field = editor.place_field(FieldType.TEXT)
    assert editor.scale_for() is None
    assert editor.overlays() == []
    assert not editor.pointer_down(field.id, 0, 0)
    editor.report_pages(1, {1: PageSize(300, 144)})
    assert len(editor.overlays()) == 1


def test_signer_scope_limits_overlays(editor):
    signer = editor.add_signer("a@example.com")
    mine = editor.place_field(FieldType.SIGNATURE, signer_id=signer.id)
    editor.place_field(FieldType.TEXT)
    assert len(editor.overlays()) == 2
    editor.set_viewport(active_signer_id=signer.id, signer_scoped=True)
    assert [o.field.id for o in editor.overlays()] == [mine.id]


def test_click_on_active_signers_signature_requests_capture(editor):
    signer = editor.add_signer("a@example.com")
    field = editor.place_field(FieldType.SIGNATURE, signer_id=signer.id)
    editor.set_viewport(active_signer_id=signer.id)
    editor.pointer_down(field.id, 5, 5)
    outcome = editor.pointer_up(5, 5)
    assert outcome.kind == "click"
    assert outcome.capture_requested

    captured = editor.capture_value(field.id, "data:image/png;base64,AAAA")
    assert captured.value == "data:image/png;base64,AAAA"


def test_preparation_properties(editor):
    state = editor.update_preparation(message="Please sign", expiry_days=7, sequential_signing=True, bogus=1)
    assert state.message == "Please sign"
    assert state.expiry_days == 7
    assert state.sequential_signing
    assert editor.history.can_undo


def test_registry_lifecycle(editor):
    registry = SessionRegistry()
    registry.open(editor)
    assert registry.get(editor.id) is editor
    registry.close(editor.id)
    with pytest.raises(SessionNotFound):
        registry.get(editor.id)
    with pytest.raises(SessionNotFound):
        registry.close(editor.id)


def test_registry_drops_idle_sessions(editor):
    now = [0.0]
    registry = SessionRegistry(ttl=60, clock=lambda: now[0])
    registry.open(editor)
    now[0] = 50
    assert registry.get(editor.id) is editor
    now[0] = 100
    assert registry.get(editor.id) is editor
    now[0] = 161
    with pytest.raises(SessionNotFound):
        registry.get(editor.id)
    assert len(registry) == 0


def test_registry_without_ttl_keeps_sessions(editor):
    now = [0.0]
    registry = SessionRegistry(ttl=0, clock=lambda: now[0])
    registry.open(editor)
    now[0] = 10 ** 9
    assert registry.get(editor.id) is editor


def test_requests_on_one_session_run_one_at_a_time(editor):
    registry = SessionRegistry()
    registry.open(editor)

    def place():
        with registry.use(editor.id) as session:
            session.place_field(FieldType.TEXT, 1, 300, 300)

    worker = threading.Thread(target=place)
    with registry.use(editor.id) as session:
        first = place_text(session)
        worker.start()
        worker.join(timeout=0.2)
        assert worker.is_alive()
        assert [f.id for f in session.state.fields] == [first.id]
    worker.join(timeout=5)
    assert not worker.is_alive()

    assert len(editor.state.fields) == 2
    assert editor.state.fields[0].id == first.id
    assert editor.undo()
    assert [f.id for f in editor.state.fields] == [first.id]
