from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from itsdangerous import BadSignature
from sqlmodel import Session, select
from minio.error import S3Error
from ..db import get_session
from ..models import Document, Signer, Field as FieldModel
from ..schemas import SignerStatus, ValueCapture
from ..utils import read_token, sha256_bytes
from ..storage import get_bytes, put_bytes
from ..geometry import effective_scale, pdf_to_screen, field_rect
from ..page_filter import fields_for_page, resolve_colors
from ..pdf import read_page_geometry, stamp_fields
from ..persistence import field_record, load_fields, load_signers
from ..rules import is_field_visible, validate_field_value, visible_fields
from ..logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

FINISHED = (SignerStatus.COMPLETED.value, SignerStatus.DECLINED.value)

# ---------- helpers ----------
def _load(token: str, session: Session):
    try:
        data = read_token(token)
    except BadSignature:
        raise HTTPException(404, "invalid signing link")
    signer = session.get(Signer, data.get("signer_id"))
    if not signer or signer.document_id != data.get("document_id"):
        raise HTTPException(404, "not found")
    doc = session.get(Document, signer.document_id)
    if not doc:
        raise HTTPException(404, "not found")
    if doc.status == "draft":
        raise HTTPException(status.HTTP_409_CONFLICT, "document has not been sent")
    return doc, signer

def _blocking_signers(session: Session, doc: Document, signer: Signer):
    """Signers earlier in the routing order who have not completed yet."""
    if not doc.sequential_signing:
        return []
    earlier = session.exec(
        select(Signer).where(Signer.document_id == doc.id, Signer.order < signer.order)
    ).all()
    return [s for s in earlier if s.status != SignerStatus.COMPLETED.value]

def _require_open(session: Session, doc: Document, signer: Signer):
    if doc.status in ("completed", "declined"):
        raise HTTPException(status.HTTP_409_CONFLICT, f"document already {doc.status}")
    if signer.status in FINISHED:
        raise HTTPException(status.HTTP_409_CONFLICT, f"signer already {signer.status.lower()}")
    if _blocking_signers(session, doc, signer):
        raise HTTPException(status.HTTP_409_CONFLICT, "waiting for earlier signers")

def _pdf(key: str) -> bytes:
    try:
        return get_bytes(key)
    except S3Error:
        raise HTTPException(404, "stored file missing for this document")

# ---------- routes ----------

@router.get("/{token}")
def load_signing_session(token: str, session: Session = Depends(get_session)):
    doc, signer = _load(token, session)
    if signer.status == SignerStatus.PENDING.value:
        signer.status = SignerStatus.VIEWED.value
        session.add(signer)
        session.commit()
        session.refresh(signer)
    all_fields = load_fields(session, doc.id)
    mine = [f for f in visible_fields(all_fields) if f.signer_id == signer.id]
    signers = load_signers(session, doc.id)
    waiting_on = len([s for s in signers if s.status != SignerStatus.COMPLETED and s.id != signer.id])
    return {
        "document": {
            "id": doc.id,
            "filename": doc.filename,
            "pageCount": doc.page_count,
            "status": doc.status,
            "message": doc.message,
            "dueDate": doc.due_date,
            "sequentialSigning": doc.sequential_signing,
            "completed": doc.s3_key_final is not None,
        },
        "signer": next(s.to_wire() for s in signers if s.id == signer.id),
        "waitingOn": waiting_on,
        "yourTurn": not _blocking_signers(session, doc, signer),
        "fields": [f.to_wire() for f in mine],
    }

@router.get("/{token}/pdf")
def get_original_pdf(token: str, session: Session = Depends(get_session)):
    doc, _ = _load(token, session)
    return Response(content=_pdf(doc.s3_key), media_type="application/pdf")

@router.get("/{token}/final-pdf")
def get_final_pdf(token: str, session: Session = Depends(get_session)):
    doc, _ = _load(token, session)
    if not doc.s3_key_final:
        raise HTTPException(404, "final document not ready")
    return Response(content=_pdf(doc.s3_key_final), media_type="application/pdf")

@router.get("/{token}/pages/{page}/overlays")
def signer_overlays(
    token: str,
    page: int,
    container_width: Optional[float] = Query(default=None, alias="containerWidth", gt=0),
    zoom: float = Query(default=1.0, gt=0),
    session: Session = Depends(get_session),
):
    doc, signer = _load(token, session)
    sizes = read_page_geometry(_pdf(doc.s3_key))
    size = sizes.get(page)
    scale = effective_scale(size.width, container_width, zoom) if size else None
    all_fields = load_fields(session, doc.id)
    signers = {s.id: s for s in load_signers(session, doc.id)}
    overlays = []
    if scale is not None:
        for f in fields_for_page(all_fields, page, signer.id, sizes):
            if not is_field_visible(f, all_fields):
                continue
            colors = resolve_colors(f, signers)
            overlays.append({
                "fieldId": f.id,
                "type": f.type.value,
                "label": f.label,
                "required": f.required,
                "value": f.value,
                "rect": pdf_to_screen(field_rect(f), scale).css(),
                "borderColor": colors.border,
                "backgroundColor": colors.background,
                "textColor": colors.text,
            })
    return {"page": page, "scale": scale, "overlays": overlays}

@router.post("/{token}/fields/{field_id}")
def capture_field_value(token: str, field_id: str, payload: ValueCapture, session: Session = Depends(get_session)):
    doc, signer = _load(token, session)
    _require_open(session, doc, signer)
    row = session.get(FieldModel, field_id)
    if not row or row.document_id != doc.id or row.signer_id != signer.id:
        raise HTTPException(404, "field not found")
    record = field_record(row).model_copy(update={"value": payload.value})
    errors = [e for e in validate_field_value(record) if e.code != "required"]
    if errors:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail={"errors": [e.to_wire() for e in errors]})
    row.value = record.value
    row.updated_at = datetime.utcnow()
    session.add(row)
    session.commit()
    logger.info("field_value_captured", document_id=doc.id, signer_id=signer.id, field_id=field_id)
    return {"ok": True, "field": record.to_wire()}

@router.post("/{token}/complete")
def complete_signing(token: str, session: Session = Depends(get_session)):
    doc, signer = _load(token, session)
    _require_open(session, doc, signer)

    all_fields = load_fields(session, doc.id)
    mine = [f for f in visible_fields(all_fields) if f.signer_id == signer.id]
    errors = [e for f in mine for e in validate_field_value(f)]
    if errors:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail={"errors": [e.to_wire() for e in errors]})

    signer.status = SignerStatus.COMPLETED.value
    signer.completed_at = datetime.utcnow()
    session.add(signer)
    session.flush()
    logger.info("signer_completed", document_id=doc.id, signer_id=signer.id)

    remaining = session.exec(
        select(Signer).where(Signer.document_id == doc.id, Signer.status != SignerStatus.COMPLETED.value)
    ).all()
    response: dict = {"ok": True}
    if remaining:
        session.commit()
        response["status"] = "waiting"
        response["waitingOn"] = len(remaining)
        return response

    final_pdf = stamp_fields(_pdf(doc.s3_key), visible_fields(all_fields))
    sha_final = sha256_bytes(final_pdf)
    key_final = f"documents/{doc.id}/final.pdf"
    put_bytes(key_final, final_pdf, content_type="application/pdf")
    doc.s3_key_final = key_final
    doc.sha256_final = sha_final
    doc.status = "completed"
    doc.updated_at = datetime.utcnow()
    session.add(doc)
    session.commit()
    logger.info("document_completed", document_id=doc.id, sha256_final=sha_final)
    response["status"] = "completed"
    response["sha256Final"] = sha_final
    return response

@router.post("/{token}/decline")
def decline_signing(token: str, session: Session = Depends(get_session)):
    doc, signer = _load(token, session)
    if signer.status in FINISHED:
        raise HTTPException(status.HTTP_409_CONFLICT, f"signer already {signer.status.lower()}")
    signer.status = SignerStatus.DECLINED.value
    doc.status = "declined"
    session.add(signer)
    session.add(doc)
    session.commit()
    logger.info("signer_declined", document_id=doc.id, signer_id=signer.id)
    return {"ok": True, "status": signer.status}
