"""Document preparation session: the field layout engine behind the editor.

An :class:`EditorSession` owns one :class:`PreparationState` and routes every
mutation through :meth:`EditorSession._commit`, which records a history
snapshot unless a snapshot is being restored. Pointer and keyboard input go
through the :class:`InteractionController`; overlays are produced with the
page filter and the coordinate transform for the current viewport.
"""
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field as dc_field
from typing import Dict, Iterator, List, Mapping, Optional

from .config import EDITOR_SESSION_TTL
from .exceptions import FieldNotFound, SessionNotFound, SignerLimitReached, SignerNotFound
from .geometry import PageSize, Rect, clamp_zoom, effective_scale, field_rect, pdf_to_screen
from .history import HistoryStack
from .interaction import (
    ARROW_KEYS,
    GestureOutcome,
    InteractionController,
    clamp_size,
    temp_field_id,
)
from .logger import get_logger
from .page_filter import DisplayColors, PageFilter, palette_color, resolve_colors, signer_field_colors
from .schemas import FieldRecord, FieldType, PreparationState, SignerRecord

logger = get_logger(__name__)

DEFAULT_POSITION = (100.0, 100.0)

DEFAULT_FIELD_PROPS: Dict[FieldType, dict] = {
    FieldType.SIGNATURE: {"label": "Signature", "width": 200.0, "height": 80.0},
    FieldType.INITIAL: {"label": "Initial", "width": 100.0, "height": 60.0},
    FieldType.TEXT: {"label": "Text Field", "placeholder": "Enter text", "width": 200.0, "height": 50.0,
                     "font_size": 12.0, "font_family": "Arial"},
    FieldType.EMAIL: {"label": "Email", "placeholder": "Enter email", "width": 200.0, "height": 50.0},
    FieldType.NAME: {"label": "Name", "placeholder": "Enter name", "width": 200.0, "height": 50.0},
    FieldType.PHONE: {"label": "Phone", "placeholder": "Enter phone number", "width": 200.0, "height": 50.0},
    FieldType.ADDRESS: {"label": "Address", "placeholder": "Enter address", "width": 200.0, "height": 50.0},
    FieldType.NUMBER: {"label": "Number", "placeholder": "Enter a number", "width": 140.0, "height": 50.0},
    FieldType.DATE: {"label": "Date", "width": 160.0, "height": 50.0},
    FieldType.CHECKBOX: {"label": "Checkbox", "width": 30.0, "height": 30.0},
    FieldType.DROPDOWN: {"label": "Dropdown", "options": "Option 1, Option 2, Option 3", "width": 200.0,
                         "height": 50.0},
    FieldType.RADIO: {"label": "Radio Group", "options": "Option 1, Option 2, Option 3", "width": 200.0,
                      "height": 120.0},
    FieldType.TEXTAREA: {"label": "Text Area", "placeholder": "Enter text", "width": 200.0, "height": 100.0},
    FieldType.IMAGE: {"label": "Image", "width": 200.0, "height": 150.0},
    FieldType.FORMULA: {"label": "Calculated Field", "width": 200.0, "height": 50.0},
    FieldType.PAYMENT: {"label": "Payment Field", "width": 240.0, "height": 60.0},
}

_SIGNER_COLOR_KEYS = ("color", "border_color", "background_color", "text_color")
_NOT_NULL_PROPS = ("type", "label", "required", "x", "y", "width", "height", "page_number")


@dataclass
class Viewport:
    page_count: Optional[int] = None
    page_sizes: Dict[int, PageSize] = dc_field(default_factory=dict)
    current_page: int = 1
    container_width: Optional[float] = None
    zoom: float = 1.0
    active_signer_id: Optional[str] = None
    signer_scoped: bool = False

    def to_wire(self) -> dict:
        return {
            "pageCount": self.page_count,
            "pageSizes": {str(n): {"width": s.width, "height": s.height} for n, s in sorted(self.page_sizes.items())},
            "currentPage": self.current_page,
            "containerWidth": self.container_width,
            "zoom": self.zoom,
            "activeSignerId": self.active_signer_id,
            "signerScoped": self.signer_scoped,
        }


@dataclass(frozen=True)
class Overlay:
    field: FieldRecord
    rect: Rect
    colors: DisplayColors
    selected: bool
    active: bool

    def to_wire(self) -> dict:
        return {
            "fieldId": self.field.id,
            "type": self.field.type.value,
            "label": self.field.label,
            "pageNumber": self.field.page_number,
            "signerId": self.field.signer_id,
            "required": self.field.required,
            "rect": self.rect.css(),
            "borderColor": self.colors.border,
            "backgroundColor": self.colors.background,
            "textColor": self.colors.text,
            "assigned": self.colors.assigned,
            "selected": self.selected,
            "active": self.active,
        }


class EditorSession:
    def __init__(
        self,
        state: PreparationState,
        page_sizes: Optional[Mapping[int, PageSize]] = None,
        page_count: Optional[int] = None,
        single_signer: bool = False,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or uuid.uuid4().hex
        self.state = state
        self.single_signer = single_signer
        self.viewport = Viewport()
        self.history: HistoryStack[PreparationState] = HistoryStack(state)
        self.controller = InteractionController()
        self.page_filter = PageFilter()
        self.lock = threading.RLock()
        if page_count or page_sizes:
            self.report_pages(page_count or len(page_sizes or {}), page_sizes or {})

    @property
    def document_id(self) -> str:
        return self.state.document_id

    @property
    def selected_id(self) -> Optional[str]:
        return self.controller.selected_id

    # ---------- renderer / viewport ----------

    def report_pages(self, page_count: int, page_sizes: Mapping[int, PageSize]) -> None:
        vp = self.viewport
        vp.page_count = max(1, int(page_count))
        for number, size in page_sizes.items():
            number = int(number)
            if 1 <= number <= vp.page_count:
                vp.page_sizes[number] = size
        vp.page_sizes = {n: s for n, s in vp.page_sizes.items() if n <= vp.page_count}
        vp.current_page = self._clamp_page(vp.current_page)

    def set_viewport(self, **changes) -> None:
        vp = self.viewport
        if changes.get("current_page") is not None:
            vp.current_page = self._clamp_page(changes["current_page"])
        if "container_width" in changes:
            vp.container_width = changes["container_width"]
        if changes.get("zoom") is not None:
            vp.zoom = clamp_zoom(float(changes["zoom"]))
        if "active_signer_id" in changes:
            vp.active_signer_id = changes["active_signer_id"]
        if changes.get("signer_scoped") is not None:
            vp.signer_scoped = bool(changes["signer_scoped"])

    def scale_for(self, page: Optional[int] = None) -> Optional[float]:
        vp = self.viewport
        size = vp.page_sizes.get(int(page or vp.current_page))
        if size is None:
            return None
        return effective_scale(size.width, vp.container_width, vp.zoom)

    def _clamp_page(self, page) -> int:
        page = max(1, int(page))
        if self.viewport.page_count:
            page = min(page, self.viewport.page_count)
        return page

    # ---------- commits ----------

    def _commit(self, state: PreparationState) -> None:
        self.state = state
        self.history.record(state)

    def _require_field(self, field_id: str) -> FieldRecord:
        record = self.state.find_field(field_id)
        if record is None:
            raise FieldNotFound(field_id)
        return record

    def _require_signer(self, signer_id: str) -> SignerRecord:
        signer = self.state.find_signer(signer_id)
        if signer is None:
            raise SignerNotFound(signer_id)
        return signer

    def place_field(
        self,
        field_type: FieldType,
        page_number: int = 1,
        x: Optional[float] = None,
        y: Optional[float] = None,
        signer_id: Optional[str] = None,
        label: Optional[str] = None,
    ) -> FieldRecord:
        field_type = FieldType(field_type)
        props = dict(DEFAULT_FIELD_PROPS.get(field_type, {"label": "Field", "width": 200.0, "height": 50.0}))
        if label:
            props["label"] = label
        props["width"], props["height"] = clamp_size(field_type, props["width"], props["height"])
        if signer_id is not None:
            props.update(signer_field_colors(self._require_signer(signer_id).color))
        record = FieldRecord(
            id=temp_field_id(),
            document_id=self.document_id,
            type=field_type,
            x=DEFAULT_POSITION[0] if x is None else x,
            y=DEFAULT_POSITION[1] if y is None else y,
            page_number=self._clamp_page(page_number),
            signer_id=signer_id,
            **props,
        )
        self._commit(self.state.model_copy(update={"fields": self.state.fields + (record,)}))
        self.controller.select(record.id)
        logger.info("field_placed", document_id=self.document_id, field_id=record.id, field_type=field_type.value)
        return record

    def update_field(self, field_id: str, **changes) -> FieldRecord:
        """Property edit. Sizes are clamped to the type limits and pages to the document."""
        current = self._require_field(field_id)
        changes = {
            k: v for k, v in changes.items()
            if k not in ("id", "document_id") and not (v is None and k in _NOT_NULL_PROPS)
        }
        data = current.model_dump()
        data.update(changes)
        field_type = FieldType(data["type"])
        if any(k in changes for k in ("width", "height", "type")):
            data["width"], data["height"] = clamp_size(field_type, float(data["width"]), float(data["height"]))
        if "page_number" in changes:
            data["page_number"] = self._clamp_page(float(data["page_number"]))
        record = FieldRecord.model_validate(data)
        if record == current:
            return current
        self._commit(self.state.replace_field(record))
        return record

    def assign_signer(self, field_id: str, signer_id: Optional[str]) -> FieldRecord:
        current = self._require_field(field_id)
        if signer_id is None:
            update = {key: None for key in _SIGNER_COLOR_KEYS}
        else:
            update = signer_field_colors(self._require_signer(signer_id).color)
        update["signer_id"] = signer_id
        record = current.model_copy(update=update)
        self._commit(self.state.replace_field(record))
        return record

    def duplicate_field(self, field_id: str) -> FieldRecord:
        source = self._require_field(field_id)
        copy = self.controller.duplicate(source)
        fields = list(self.state.fields)
        fields.insert(fields.index(source) + 1, copy)
        self._commit(self.state.model_copy(update={"fields": tuple(fields)}))
        return copy

    def delete_field(self, field_id: str) -> None:
        self._require_field(field_id)
        self.controller.forget(field_id)
        fields = tuple(f for f in self.state.fields if f.id != field_id)
        self._commit(self.state.model_copy(update={"fields": fields}))
        logger.info("field_deleted", document_id=self.document_id, field_id=field_id)

    def capture_value(self, field_id: str, value: str) -> FieldRecord:
        """Store a captured signature, typed value or checkbox state verbatim."""
        current = self._require_field(field_id)
        record = current.model_copy(update={"value": value})
        self._commit(self.state.replace_field(record))
        return record

    def select(self, field_id: Optional[str]) -> None:
        if field_id is not None:
            self._require_field(field_id)
        self.controller.select(field_id)

    # ---------- signers and preparation properties ----------

    def add_signer(self, email: str, name: Optional[str] = None, role: Optional[str] = None,
                   order: Optional[int] = None, color: Optional[str] = None) -> SignerRecord:
        if self.single_signer and self.state.signers:
            raise SignerLimitReached(self.document_id)
        count = len(self.state.signers)
        signer = SignerRecord(
            id=uuid.uuid4().hex,
            document_id=self.document_id,
            email=email,
            name=name,
            role=role,
            order=order if order is not None else count + 1,
            color=color or palette_color(count),
        )
        self._commit(self.state.model_copy(update={"signers": self.state.signers + (signer,)}))
        return signer

    def update_signer(self, signer_id: str, **changes) -> SignerRecord:
        current = self._require_signer(signer_id)
        data = current.model_dump()
        data.update({k: v for k, v in changes.items() if v is not None and k not in ("id", "document_id")})
        signer = SignerRecord.model_validate(data)
        signers = tuple(signer if s.id == signer_id else s for s in self.state.signers)
        fields = self.state.fields
        if signer.color != current.color:
            colors = signer_field_colors(signer.color)
            fields = tuple(
                f.model_copy(update=colors) if f.signer_id == signer_id else f
                for f in fields
            )
        self._commit(self.state.model_copy(update={"signers": signers, "fields": fields}))
        return signer

    def remove_signer(self, signer_id: str) -> None:
        self._require_signer(signer_id)
        cleared = {key: None for key in _SIGNER_COLOR_KEYS}
        cleared["signer_id"] = None
        fields = tuple(
            f.model_copy(update=cleared) if f.signer_id == signer_id else f
            for f in self.state.fields
        )
        signers = tuple(s for s in self.state.signers if s.id != signer_id)
        if self.viewport.active_signer_id == signer_id:
            self.viewport.active_signer_id = None
        self._commit(self.state.model_copy(update={"signers": signers, "fields": fields}))

    def update_preparation(self, **changes) -> PreparationState:
        allowed = ("due_date", "message", "expiry_days", "notify_signers", "sequential_signing")
        data = self.state.model_dump()
        data.update({k: v for k, v in changes.items() if k in allowed})
        state = PreparationState.model_validate(data)
        if state != self.state:
            self._commit(state)
        return self.state

    # ---------- pointer and keyboard ----------

    def pointer_down(self, field_id: str, x: float, y: float, handle: bool = False) -> bool:
        """Start a drag (or a resize when ``handle``) on a rendered overlay.

        Fields that are not rendered (another page, another signer's scope,
        unknown page size) cannot be grabbed.
        """
        if self.state.find_field(field_id) is None:
            return False
        rendered = {f.id: f for f in self._page_fields(self.viewport.current_page, self._scope())}
        field = rendered.get(field_id)
        if field is None:
            return False
        return self.controller.pointer_down(field, x, y, self.scale_for(), on_handle=handle)

    def pointer_move(self, x: float, y: float) -> Optional[FieldRecord]:
        return self.controller.pointer_move(x, y)

    def pointer_up(self, x: Optional[float] = None, y: Optional[float] = None) -> GestureOutcome:
        outcome = self.controller.pointer_up(x, y, active_signer_id=self.viewport.active_signer_id)
        if outcome.kind == "commit" and self.state.find_field(outcome.field_id) is not None:
            self._commit(self.state.replace_field(outcome.field))
        return outcome

    def cancel_gesture(self) -> Optional[FieldRecord]:
        return self.controller.cancel()

    def handle_key(self, key: str, shift: bool = False, ctrl: bool = False, meta: bool = False) -> str:
        """Apply an editor shortcut and return the name of the action taken."""
        if ctrl or meta:
            lowered = key.lower()
            if lowered == "z":
                return ("redo" if self.redo() else "none") if shift else ("undo" if self.undo() else "none")
            if lowered == "y":
                return "redo" if self.redo() else "none"
            return "none"
        if key == "Escape":
            if self.cancel_gesture() is not None:
                return "cancel"
            self.controller.select(None)
            return "deselect"
        selected = self.state.find_field(self.selected_id) if self.selected_id else None
        if selected is None or self.controller.active_field_id is not None:
            return "none"
        if key in ARROW_KEYS:
            record = self.controller.nudge(selected, key, large=shift)
            if record != selected:
                self._commit(self.state.replace_field(record))
            return "nudge"
        if key in ("Delete", "Backspace"):
            self.delete_field(selected.id)
            return "delete"
        return "none"

    def undo(self) -> bool:
        return self._restore(self.history.undo())

    def redo(self) -> bool:
        return self._restore(self.history.redo())

    def _restore(self, snapshot: Optional[PreparationState]) -> bool:
        if snapshot is None:
            return False
        self.controller.cancel()
        with self.history.restoring():
            self._commit(snapshot)
        if self.selected_id and snapshot.find_field(self.selected_id) is None:
            self.controller.select(None)
        return True

    # ---------- rendering ----------

    def _scope(self) -> Optional[str]:
        vp = self.viewport
        return vp.active_signer_id if vp.signer_scoped else None

    def _page_fields(self, page: int, signer_id: Optional[str]) -> List[FieldRecord]:
        return self.page_filter(self.state.fields, page, signer_id, self.viewport.page_sizes)

    def overlays(self, page: Optional[int] = None, signer_id: Optional[str] = None) -> List[Overlay]:
        page = int(page or self.viewport.current_page)
        scale = self.scale_for(page)
        if scale is None:
            return []
        if signer_id is None:
            signer_id = self._scope()
        signers = {s.id: s for s in self.state.signers}
        active_id = self.controller.active_field_id
        preview = self.controller.preview()
        result = []
        for record in self._page_fields(page, signer_id):
            shown = preview if active_id == record.id and preview is not None else record
            result.append(Overlay(
                field=shown,
                rect=pdf_to_screen(field_rect(shown), scale),
                colors=resolve_colors(shown, signers),
                selected=record.id == self.selected_id,
                active=record.id == active_id,
            ))
        return result

    def to_wire(self) -> dict:
        return {
            "sessionId": self.id,
            "documentId": self.document_id,
            "state": self.state.to_wire(),
            "viewport": self.viewport.to_wire(),
            "scale": self.scale_for(),
            "selectedFieldId": self.selected_id,
            "gesture": self.controller.mode.value,
            "canUndo": self.history.can_undo,
            "canRedo": self.history.can_redo,
        }


class SessionRegistry:
    """Open editor sessions for this process, keyed by session id.

    Requests for one session are serialized through :meth:`use`, so input
    is applied in arrival order even though the routes run in a threadpool.
    Sessions idle for longer than ``ttl`` seconds are dropped on the next
    registry access.
    """

    def __init__(self, ttl: Optional[float] = EDITOR_SESSION_TTL, clock=time.monotonic):
        self._sessions: Dict[str, EditorSession] = {}
        self._touched: Dict[str, float] = {}
        self._lock = threading.Lock()
        self.ttl = ttl
        self.clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _expire(self) -> None:
        if not self.ttl:
            return
        cutoff = self.clock() - self.ttl
        for sid in [sid for sid, at in self._touched.items() if at < cutoff]:
            session = self._sessions.pop(sid)
            del self._touched[sid]
            logger.info("editor_session_expired", session_id=sid, document_id=session.document_id)

    def open(self, session: EditorSession) -> EditorSession:
        with self._lock:
            self._expire()
            self._sessions[session.id] = session
            self._touched[session.id] = self.clock()
        logger.info("editor_session_opened", session_id=session.id, document_id=session.document_id)
        return session

    def get(self, session_id: str) -> EditorSession:
        with self._lock:
            self._expire()
            try:
                session = self._sessions[session_id]
            except KeyError:
                raise SessionNotFound(session_id) from None
            self._touched[session_id] = self.clock()
            return session

    @contextmanager
    def use(self, session_id: str) -> Iterator[EditorSession]:
        """Hold the session's lock for the duration of one request."""
        session = self.get(session_id)
        with session.lock:
            yield session

    def close(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFound(session_id)
            self._touched.pop(session_id, None)
        logger.info("editor_session_closed", session_id=session_id)

    def close_document(self, document_id: str) -> None:
        with self._lock:
            for sid in [sid for sid, s in self._sessions.items() if s.document_id == document_id]:
                del self._sessions[sid]
                self._touched.pop(sid, None)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._touched.clear()


registry = SessionRegistry()
