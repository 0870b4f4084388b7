from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .configuration import build_config_metadata, configure_logging, make_runtime_config
from .errors import (
    ExportError,
    ExportErrorKind,
    LoadError,
    LoadErrorKind,
    NetworkError,
    NetworkErrorKind,
)
from .models import (
    ConfigMetadata,
    RotateRequest,
    SaveResult,
    ScaleRequest,
    SessionDetail,
    SessionSummary,
    TransitionResult,
)
from .raster_cache import RasterKind
from .session import SessionManager, ViewerSession, snapshot_model
from .transform_state import Transition
from .utils import looks_like_pdf_upload, pdf_filename

runtime_config = make_runtime_config()
configure_logging(str(runtime_config.logging.level))

session_manager = SessionManager(config=runtime_config)


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    session_manager.close_all()


app = FastAPI(title="PDF Viewer API", version="0.1.0", lifespan=lifespan)

allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

READ_CHUNK_BYTES = 8 * 1024 * 1024


def get_session_manager() -> SessionManager:
    return session_manager


def _load_error(exc: LoadError) -> HTTPException:
    status_code = 415 if exc.kind is LoadErrorKind.UNSUPPORTED else 400
    return HTTPException(status_code=status_code, detail=str(exc))


def _network_error(exc: NetworkError) -> HTTPException:
    status_code = 504 if exc.kind is NetworkErrorKind.TIMEOUT else 502
    return HTTPException(status_code=status_code, detail=str(exc))


def _export_error(exc: ExportError) -> HTTPException:
    status_code = 409 if exc.kind is ExportErrorKind.SOURCE_UNAVAILABLE else 500
    return HTTPException(status_code=status_code, detail=str(exc))


def _require_session(session_id: str, manager: SessionManager) -> ViewerSession:
    session = manager.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _transition_result(transition: Transition) -> TransitionResult:
    return TransitionResult(
        transform=snapshot_model(transition.state),
        affected_pages=list(transition.affected_pages),
    )


async def _read_upload(file: UploadFile, limit: int) -> bytes:
    if not looks_like_pdf_upload(file.filename, file.content_type):
        raise HTTPException(status_code=400, detail="Only PDF uploads with a filename are supported")

    chunks = []
    size = 0
    while chunk := await file.read(READ_CHUNK_BYTES):
        size += len(chunk)
        if size > limit:
            await file.close()
            raise HTTPException(status_code=413, detail=f"Upload exceeds {limit} bytes")
        chunks.append(chunk)
    await file.close()
    return b"".join(chunks)


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/config/defaults", response_model=ConfigMetadata)
def get_config_defaults() -> ConfigMetadata:
    return build_config_metadata()


@app.get("/sessions", response_model=list[SessionSummary])
def list_sessions(manager: SessionManager = Depends(get_session_manager)) -> list[SessionSummary]:
    return manager.list_sessions()


@app.post("/sessions", response_model=SessionSummary)
async def create_session(
    pdf: UploadFile = File(...),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionSummary:
    data = await _read_upload(pdf, int(manager.config.document.max_upload_bytes))
    try:
        session = await manager.open_session(data)
    except LoadError as exc:
        raise _load_error(exc) from exc
    return session.to_summary()


@app.post("/sessions/remote/{document_id}", response_model=SessionSummary)
async def create_remote_session(document_id: str, manager: SessionManager = Depends(get_session_manager)) -> SessionSummary:
    try:
        session = await manager.open_remote(document_id)
    except NetworkError as exc:
        raise _network_error(exc) from exc
    except LoadError as exc:
        raise _load_error(exc) from exc
    return session.to_summary()


@app.get("/sessions/{session_id}", response_model=SessionDetail)
def get_session(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> SessionDetail:
    return _require_session(session_id, manager).to_detail()


@app.delete("/sessions/{session_id}")
def close_session(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> Dict[str, str]:
    if not manager.close_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "closed"}


@app.put("/sessions/{session_id}/document", response_model=SessionSummary)
async def replace_document(
    session_id: str,
    pdf: UploadFile = File(...),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionSummary:
    session = _require_session(session_id, manager)
    data = await _read_upload(pdf, int(manager.config.document.max_upload_bytes))
    try:
        await session.replace_document(data)
    except LoadError as exc:
        raise _load_error(exc) from exc
    return session.to_summary()


@app.post("/sessions/{session_id}/scale", response_model=TransitionResult)
def set_scale(session_id: str, request: ScaleRequest, manager: SessionManager = Depends(get_session_manager)) -> TransitionResult:
    return _transition_result(_require_session(session_id, manager).set_scale(request.scale))


@app.post("/sessions/{session_id}/zoom-in", response_model=TransitionResult)
def zoom_in(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> TransitionResult:
    return _transition_result(_require_session(session_id, manager).zoom_in())


@app.post("/sessions/{session_id}/zoom-out", response_model=TransitionResult)
def zoom_out(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> TransitionResult:
    return _transition_result(_require_session(session_id, manager).zoom_out())


@app.post("/sessions/{session_id}/rotate", response_model=TransitionResult)
def rotate(session_id: str, request: RotateRequest, manager: SessionManager = Depends(get_session_manager)) -> TransitionResult:
    return _transition_result(_require_session(session_id, manager).rotate(request.delta))


@app.post("/sessions/{session_id}/selection/{page_index}", response_model=TransitionResult)
def toggle_selection(session_id: str, page_index: int, manager: SessionManager = Depends(get_session_manager)) -> TransitionResult:
    session = _require_session(session_id, manager)
    try:
        transition = session.toggle_selection(page_index)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _transition_result(transition)


@app.delete("/sessions/{session_id}/selection", response_model=TransitionResult)
def clear_selection(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> TransitionResult:
    return _transition_result(_require_session(session_id, manager).clear_selection())


@app.put("/sessions/{session_id}/current-page/{page_index}", response_model=TransitionResult)
def set_current_page(session_id: str, page_index: int, manager: SessionManager = Depends(get_session_manager)) -> TransitionResult:
    session = _require_session(session_id, manager)
    try:
        transition = session.set_current_page(page_index)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _transition_result(transition)


def _raster_response(session: ViewerSession, page_index: int, kind: RasterKind) -> Response:
    try:
        entry, fresh = session.raster(page_index, kind)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if entry is None:
        return JSONResponse(status_code=202, content={"status": "rendering"})
    return Response(
        content=entry.image.data,
        media_type="image/png",
        headers={
            "X-Raster-Fresh": "true" if fresh else "false",
            "X-Raster-Rotation": str(entry.produced_from_rotation),
            "X-Raster-Scale": str(entry.produced_from_scale),
        },
    )


@app.get("/sessions/{session_id}/pages/{page_index}/thumbnail")
def get_thumbnail(session_id: str, page_index: int, manager: SessionManager = Depends(get_session_manager)) -> Response:
    return _raster_response(_require_session(session_id, manager), page_index, RasterKind.THUMBNAIL)


@app.get("/sessions/{session_id}/pages/{page_index}/raster")
def get_raster(session_id: str, page_index: int, manager: SessionManager = Depends(get_session_manager)) -> Response:
    return _raster_response(_require_session(session_id, manager), page_index, RasterKind.FULL_PAGE)


@app.post("/sessions/{session_id}/pages/{page_index}/refresh")
def refresh_page(session_id: str, page_index: int, manager: SessionManager = Depends(get_session_manager)) -> Dict[str, int]:
    session = _require_session(session_id, manager)
    try:
        tasks = session.refresh_page(page_index)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"scheduled": len(tasks)}


@app.get("/sessions/{session_id}/export")
async def export_document(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> Response:
    session = _require_session(session_id, manager)
    try:
        data = await session.export()
    except ExportError as exc:
        raise _export_error(exc) from exc
    filename = pdf_filename(session.document.id)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/sessions/{session_id}/save", response_model=SaveResult)
async def save_document(
    session_id: str,
    document_id: str = Query(..., min_length=1),
    manager: SessionManager = Depends(get_session_manager),
) -> SaveResult:
    session = _require_session(session_id, manager)
    try:
        file_path = await session.save(manager.gateway, document_id)
    except ExportError as exc:
        raise _export_error(exc) from exc
    except NetworkError as exc:
        raise _network_error(exc) from exc
    return SaveResult(document_id=document_id, file_path=file_path)
