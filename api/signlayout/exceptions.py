"""Errors raised by the editor session and its registry."""
from typing import Optional


class LayoutError(Exception):
    """Base class for field-layout errors that reach the HTTP layer."""

    status_code = 400

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class SessionNotFound(LayoutError):
    status_code = 404

    def __init__(self, session_id: str):
        super().__init__(f"editor session {session_id} not found", {"session_id": session_id})


class FieldNotFound(LayoutError):
    status_code = 404

    def __init__(self, field_id: str):
        super().__init__(f"field {field_id} not found", {"field_id": field_id})


class SignerNotFound(LayoutError):
    status_code = 404

    def __init__(self, signer_id: str):
        super().__init__(f"signer {signer_id} not found", {"signer_id": signer_id})


class SignerLimitReached(LayoutError):
    status_code = 409

    def __init__(self, document_id: str):
        super().__init__(
            "single-signer mode allows one signer per document",
            {"document_id": document_id},
        )
