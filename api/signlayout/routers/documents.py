
from fastapi import APIRouter, Depends, UploadFile, File, HTTPException, Response, status
from sqlmodel import Session, select, delete
from minio.error import S3Error
from pypdf.errors import PdfReadError
from ..db import get_session
from ..models import Document, Signer, Field as FieldModel
from ..storage import put_bytes, get_bytes, delete_object
from ..utils import sha256_bytes, signer_link
from ..auth import require_admin_access
from ..pdf import read_page_geometry
from ..persistence import load_state
from ..editor import registry
from ..logger import get_logger

logger = get_logger(__name__)

def _serialize_document(doc: Document):
    return {
        "id": doc.id,
        "filename": doc.filename,
        "pageCount": doc.page_count,
        "status": doc.status,
        "sha256": doc.sha256,
        "createdAt": doc.created_at,
        "updatedAt": doc.updated_at,
        "completed": doc.s3_key_final is not None,
    }

def _get_document(session: Session, document_id: str) -> Document:
    doc = session.get(Document, document_id)
    if not doc:
        raise HTTPException(404, "document not found")
    return doc

router = APIRouter()

@router.post("")
async def upload_document(
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    data = await file.read()
    try:
        sizes = read_page_geometry(data)
    except PdfReadError:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "uploaded file is not a readable PDF")
    if not sizes:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "PDF has no pages")
    doc = Document(filename=file.filename or "document.pdf", sha256=sha256_bytes(data), s3_key="pending",
                   page_count=len(sizes))
    key = f"documents/{doc.id}/original.pdf"
    put_bytes(key, data, content_type=file.content_type or "application/pdf")
    doc.s3_key = key
    session.add(doc)
    session.commit()
    session.refresh(doc)
    logger.info("document_uploaded", document_id=doc.id, pages=doc.page_count)
    return _serialize_document(doc)

@router.get("")
def list_documents(
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    docs = session.exec(select(Document).order_by(Document.created_at.desc())).all()
    return [_serialize_document(d) for d in docs]

@router.get("/{document_id}")
def get_document(
    document_id: str,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    doc = _get_document(session, document_id)
    state = load_state(session, doc)
    return {**_serialize_document(doc), "preparation": state.to_wire()}

@router.get("/{document_id}/pdf")
def download_document_pdf(
    document_id: str,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    doc = _get_document(session, document_id)
    try:
        pdf_bytes = get_bytes(doc.s3_key)
    except S3Error:
        raise HTTPException(404, "stored file missing for this document")
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{doc.filename}"'},
    )

@router.delete("/{document_id}")
def delete_document(
    document_id: str,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    doc = _get_document(session, document_id)
    registry.close_document(doc.id)
    session.exec(delete(FieldModel).where(FieldModel.document_id == doc.id))
    session.exec(delete(Signer).where(Signer.document_id == doc.id))
    keys = [k for k in (doc.s3_key, doc.s3_key_final) if k]
    session.delete(doc)
    session.commit()
    for key in keys:
        delete_object(key)
    logger.info("document_deleted", document_id=document_id)
    return {"ok": True}

@router.post("/{document_id}/send")
def send_document(
    document_id: str,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    doc = _get_document(session, document_id)
    if doc.status == "completed":
        raise HTTPException(status.HTTP_409_CONFLICT, "document already completed")
    signers = session.exec(select(Signer).where(Signer.document_id == doc.id).order_by(Signer.order)).all()
    if not signers:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "add at least one signer before sending")
    doc.status = "sent"
    session.add(doc)
    session.commit()
    registry.close_document(doc.id)
    logger.info("document_sent", document_id=doc.id, signers=len(signers))
    return {
        "ok": True,
        "status": doc.status,
        "signers": [
            {"signerId": s.id, "email": s.email, "name": s.name, "order": s.order,
             "link": signer_link(doc.id, s.id)}
            for s in signers
        ],
    }
