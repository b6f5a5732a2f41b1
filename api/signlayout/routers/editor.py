
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session
from minio.error import S3Error
from pypdf.errors import PdfReadError
from ..db import get_session
from ..models import Document
from ..storage import get_bytes
from ..auth import require_admin_access
from ..config import SINGLE_SIGNER_MODE
from ..editor import EditorSession, registry
from ..geometry import PageSize, pdf_to_screen, field_rect
from ..pdf import read_page_geometry
from ..persistence import load_state, save_state
from ..schemas import (
    AssignSigner,
    FieldPatch,
    FieldPlace,
    KeyPress,
    PageReport,
    PointerEventIn,
    PreparationUpdate,
    SignerCreate,
    SignerUpdate,
    ValueCapture,
    ViewportUpdate,
)
from ..logger import get_logger

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_admin_access)])

def _reply(editor: EditorSession, **extra):
    return {**extra, "session": editor.to_wire()}

def _require_draft(doc: Document):
    # signers own status and values once a document is sent
    if doc.status != "draft":
        raise HTTPException(status.HTTP_409_CONFLICT, f"{doc.status} documents cannot be edited")

def _preview_wire(editor: EditorSession, record):
    if record is None:
        return None
    scale = editor.scale_for()
    data = {"field": record.to_wire()}
    if scale is not None:
        data["rect"] = pdf_to_screen(field_rect(record), scale).css()
    return data

# ---------- session lifecycle ----------

@router.post("/documents/{document_id}/sessions")
def open_session(document_id: str, session: Session = Depends(get_session)):
    doc = session.get(Document, document_id)
    if not doc:
        raise HTTPException(404, "document not found")
    _require_draft(doc)
    try:
        sizes = read_page_geometry(get_bytes(doc.s3_key))
    except (S3Error, PdfReadError):
        # the renderer can still report sizes through POST /pages
        logger.warning("page_geometry_unavailable", document_id=doc.id)
        sizes = {}
    editor = EditorSession(
        load_state(session, doc),
        page_sizes=sizes,
        page_count=doc.page_count,
        single_signer=SINGLE_SIGNER_MODE,
    )
    registry.open(editor)
    return editor.to_wire()

@router.get("/{session_id}")
def get_state(session_id: str):
    with registry.use(session_id) as editor:
        return editor.to_wire()

@router.delete("/{session_id}")
def discard_session(session_id: str):
    registry.close(session_id)
    return {"ok": True}

@router.post("/{session_id}/save")
def save_session(session_id: str, session: Session = Depends(get_session)):
    with registry.use(session_id) as editor:
        doc = session.get(Document, editor.document_id)
        if not doc:
            raise HTTPException(404, "document not found")
        _require_draft(doc)
        saved = save_state(session, doc, editor.state)
        editor.controller.cancel()
        editor.controller.select(None)
        editor.state = saved
        editor.history.reset(saved)
        return _reply(editor, ok=True)

# ---------- renderer / viewport ----------

@router.post("/{session_id}/pages")
def report_pages(session_id: str, payload: PageReport):
    sizes = {n: PageSize(p.width, p.height) for n, p in payload.pages.items()}
    with registry.use(session_id) as editor:
        editor.report_pages(payload.page_count, sizes)
        return _reply(editor)

@router.post("/{session_id}/viewport")
def update_viewport(session_id: str, payload: ViewportUpdate):
    with registry.use(session_id) as editor:
        editor.set_viewport(**payload.model_dump(exclude_unset=True))
        return _reply(editor)

@router.get("/{session_id}/overlays")
def list_overlays(
    session_id: str,
    page: Optional[int] = Query(default=None, ge=1),
    signer_id: Optional[str] = Query(default=None, alias="signerId"),
):
    with registry.use(session_id) as editor:
        overlays = editor.overlays(page, signer_id)
        return {
            "page": page or editor.viewport.current_page,
            "scale": editor.scale_for(page),
            "overlays": [o.to_wire() for o in overlays],
        }

# ---------- fields ----------

@router.post("/{session_id}/fields")
def place_field(session_id: str, payload: FieldPlace):
    with registry.use(session_id) as editor:
        record = editor.place_field(payload.type, payload.page_number, payload.x, payload.y,
                                    payload.signer_id, payload.label)
        return _reply(editor, field=record.to_wire())

@router.patch("/{session_id}/fields/{field_id}")
def update_field(session_id: str, field_id: str, payload: FieldPatch):
    with registry.use(session_id) as editor:
        record = editor.update_field(field_id, **payload.model_dump(exclude_unset=True))
        return _reply(editor, field=record.to_wire())

@router.post("/{session_id}/fields/{field_id}/assign")
def assign_field(session_id: str, field_id: str, payload: AssignSigner):
    with registry.use(session_id) as editor:
        record = editor.assign_signer(field_id, payload.signer_id)
        return _reply(editor, field=record.to_wire())

@router.post("/{session_id}/fields/{field_id}/duplicate")
def duplicate_field(session_id: str, field_id: str):
    with registry.use(session_id) as editor:
        record = editor.duplicate_field(field_id)
        return _reply(editor, field=record.to_wire())

@router.delete("/{session_id}/fields/{field_id}")
def delete_field(session_id: str, field_id: str):
    with registry.use(session_id) as editor:
        editor.delete_field(field_id)
        return _reply(editor, ok=True)

@router.post("/{session_id}/fields/{field_id}/value")
def capture_value(session_id: str, field_id: str, payload: ValueCapture):
    with registry.use(session_id) as editor:
        record = editor.capture_value(field_id, payload.value)
        return _reply(editor, field=record.to_wire())

# ---------- pointer / keyboard / history ----------

@router.post("/{session_id}/pointer")
def pointer_event(session_id: str, payload: PointerEventIn):
    with registry.use(session_id) as editor:
        if payload.kind == "down":
            if not payload.field_id:
                raise HTTPException(status.HTTP_400_BAD_REQUEST, "fieldId is required for pointer down")
            accepted = editor.pointer_down(payload.field_id, payload.x, payload.y, payload.handle)
            return {"accepted": accepted, "gesture": editor.controller.mode.value}
        if payload.kind == "move":
            preview = editor.pointer_move(payload.x, payload.y)
            return {"gesture": editor.controller.mode.value, "preview": _preview_wire(editor, preview)}
        if payload.kind == "cancel":
            original = editor.cancel_gesture()
            return _reply(editor, outcome="cancel", field=original.to_wire() if original else None)
        outcome = editor.pointer_up(payload.x, payload.y)
        return _reply(
            editor,
            outcome=outcome.kind,
            fieldId=outcome.field_id,
            captureRequested=outcome.capture_requested,
            field=outcome.field.to_wire() if outcome.field else None,
        )

@router.post("/{session_id}/keys")
def key_press(session_id: str, payload: KeyPress):
    with registry.use(session_id) as editor:
        action = editor.handle_key(payload.key, shift=payload.shift, ctrl=payload.ctrl, meta=payload.meta)
        return _reply(editor, action=action)

@router.post("/{session_id}/undo")
def undo(session_id: str):
    with registry.use(session_id) as editor:
        return _reply(editor, changed=editor.undo())

@router.post("/{session_id}/redo")
def redo(session_id: str):
    with registry.use(session_id) as editor:
        return _reply(editor, changed=editor.redo())

# ---------- signers and preparation ----------

@router.post("/{session_id}/signers")
def add_signer(session_id: str, payload: SignerCreate):
    with registry.use(session_id) as editor:
        signer = editor.add_signer(payload.email, payload.name, payload.role, payload.order, payload.color)
        return _reply(editor, signer=signer.to_wire())

@router.patch("/{session_id}/signers/{signer_id}")
def update_signer(session_id: str, signer_id: str, payload: SignerUpdate):
    with registry.use(session_id) as editor:
        signer = editor.update_signer(signer_id, **payload.model_dump(exclude_unset=True))
        return _reply(editor, signer=signer.to_wire())

@router.delete("/{session_id}/signers/{signer_id}")
def remove_signer(session_id: str, signer_id: str):
    with registry.use(session_id) as editor:
        editor.remove_signer(signer_id)
        return _reply(editor, ok=True)

@router.patch("/{session_id}/preparation")
def update_preparation(session_id: str, payload: PreparationUpdate):
    with registry.use(session_id) as editor:
        editor.update_preparation(**payload.model_dump(exclude_unset=True))
        return _reply(editor)
