from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from .routers import documents, editor, signing
from .config import LOG_LEVEL, LOG_JSON
from .db import init_db
from .exceptions import LayoutError
from .logger import get_logger, setup_app_logging

logger = get_logger(__name__)

app = FastAPI(title="Signature Field Layout API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
setup_app_logging(app, log_level=LOG_LEVEL, use_json=LOG_JSON)

@app.on_event("startup")
def on_startup():
    init_db()

@app.exception_handler(LayoutError)
async def layout_error_handler(request: Request, exc: LayoutError):
    logger.info("layout_error", error=type(exc).__name__, path=request.url.path, **exc.details)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, **exc.details})

@app.exception_handler(ValidationError)
async def record_validation_handler(request: Request, exc: ValidationError):
    # raised when an edit produces an invalid record (e.g. a malformed signer email)
    return JSONResponse(status_code=422, content={"detail": exc.errors(include_url=False, include_context=False, include_input=False)})

app.include_router(documents.router, prefix="/api/documents", tags=["documents"])
app.include_router(editor.router, prefix="/api/editor", tags=["editor"])
app.include_router(signing.router, prefix="/api/sign", tags=["signing"])

@app.get("/")
def root():
    return {"ok": True, "service": "signlayout-api"}
