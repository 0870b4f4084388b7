"""
Viewer sessions: one loaded document with its transform state and rasters.

A ViewerSession wires the pipeline pieces together for a single document:

- TransformStore holds scale, rotation and selection
- RasterCache holds the latest thumbnail and full-page raster per page
- RenderScheduler turns the pages a transition marks stale into render tasks

Every operation that marks a page stale schedules both its thumbnail and its
full-page raster; a surface whose cached raster already matches the new
transform only has its in-flight task superseded.

SessionManager keeps the registry of open sessions and talks to the
persistence gateway for remote load/save.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from omegaconf import DictConfig

from .configuration import make_runtime_config
from .document_loader import Document, load_document
from .errors import RenderError
from .export_builder import build_export
from .gateway import PersistenceGateway
from .models import SessionDetail, SessionEvent, SessionSummary, SurfaceInfo, TransformSnapshot
from .page_renderer import PageRenderer, PymupdfPageRenderer
from .raster_cache import RasterCache, RasterEntry, RasterKind
from .render_scheduler import RenderScheduler, RenderTask, SurfaceId
from .transform_state import (
    TransformState,
    TransformStore,
    Transition,
    clear_selection,
    initial_state,
    rotate,
    set_current_page,
    set_scale,
    toggle_selection,
    zoom_in,
    zoom_out,
)
from .utils import pdf_filename

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSettings:
    initial_scale: float = 1.0
    scale_step: float = 0.1
    thumbnail_scale: float = 0.2
    max_full_page_workers: int = 4
    max_thumbnail_workers: int = 16
    retain_source: bool = True

    @classmethod
    def from_config(cls, config: DictConfig) -> "SessionSettings":
        return cls(
            initial_scale=float(config.viewer.initial_scale),
            scale_step=float(config.viewer.scale_step),
            thumbnail_scale=float(config.viewer.thumbnail_scale),
            max_full_page_workers=int(config.render.max_full_page_workers),
            max_thumbnail_workers=int(config.render.max_thumbnail_workers),
            retain_source=bool(config.document.retain_source),
        )


def snapshot_model(state: TransformState) -> TransformSnapshot:
    return TransformSnapshot(
        scale=state.scale,
        rotation=list(state.rotation),
        selection=sorted(state.selection),
        current_page=state.current_page,
    )


class ViewerSession:
    """
    One open document and its view pipeline.

    Thread Safety:
        Document swaps and transform mutations are serialized by a session
        lock, and each mutation issues its render requests before the lock is
        released, so render requests reach the scheduler in mutation order.

    Attributes:
        id: Session identifier (hex UUID)
        settings: Scale/thumbnail/worker settings
        cache: Raster cache for the current document
        scheduler: Render scheduler bound to the current document
    """

    def __init__(
        self,
        document: Document,
        settings: SessionSettings | None = None,
        renderer: PageRenderer | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or uuid4().hex
        self.settings = settings or SessionSettings()
        self.created_at = datetime.utcnow()
        self.updated_at = self.created_at
        self.events: List[SessionEvent] = []
        self.cache = RasterCache()
        self.scheduler = RenderScheduler(
            self.cache,
            renderer or PymupdfPageRenderer(),
            max_full_page_workers=self.settings.max_full_page_workers,
            max_thumbnail_workers=self.settings.max_thumbnail_workers,
            on_error=self._on_render_error,
        )
        self._lock = Lock()
        self._events_lock = Lock()
        self._document: Optional[Document] = None
        self._store: Optional[TransformStore] = None
        self._closed = False
        with self._lock:
            self._attach(document)

    @property
    def document(self) -> Document:
        with self._lock:
            return self._current_document()

    @property
    def page_count(self) -> int:
        return self.document.page_count

    @property
    def transform(self) -> TransformState:
        with self._lock:
            return self._current_store().snapshot()

    def _current_document(self) -> Document:
        if self._closed or self._document is None:
            raise RuntimeError(f"Session {self.id} is closed")
        return self._document

    def _current_store(self) -> TransformStore:
        if self._closed or self._store is None:
            raise RuntimeError(f"Session {self.id} is closed")
        return self._store

    def record_event(self, message: str) -> None:
        event = SessionEvent(timestamp=datetime.utcnow(), message=message)
        with self._events_lock:
            self.events.append(event)
            self.updated_at = event.timestamp

    def _on_render_error(self, surface_id: SurfaceId, error: RenderError) -> None:
        self.record_event(f"Render failed on {surface_id}: {error}")

    def _attach(self, document: Document) -> None:
        """Swap in a new document; caller holds the session lock."""
        previous = self._document
        self.scheduler.bind(document)
        self.cache.clear()
        self._document = document
        self._store = TransformStore(initial_state(document.page_count, self.settings.initial_scale))
        if previous is not None:
            previous.close()
        self._schedule(self._store.snapshot(), range(document.page_count))

    def _schedule(self, state: TransformState, pages: Iterable[int]) -> List[RenderTask]:
        tasks: List[RenderTask] = []
        for page_index in pages:
            rotation = state.rotation_of(page_index)
            for kind, scale in (
                (RasterKind.THUMBNAIL, self.settings.thumbnail_scale),
                (RasterKind.FULL_PAGE, state.scale),
            ):
                task = self.scheduler.ensure_render(SurfaceId(kind, page_index), page_index, rotation, scale)
                if task is not None:
                    tasks.append(task)
        return tasks

    async def replace_document(self, data: bytes) -> Document:
        """
        Load new bytes into this session, replacing the current document.

        Raises:
            LoadError: The bytes did not load; the current document, its
                transform state and its rasters are left untouched
        """
        document = await load_document(data, retain_source=self.settings.retain_source)
        with self._lock:
            if self._closed:
                document.close()
                raise RuntimeError(f"Session {self.id} is closed")
            self._attach(document)
        self.record_event(f"Document replaced with {document.id} ({document.page_count} page(s)).")
        return document

    def _mutate(self, operation: Callable[..., Transition], *args: Any) -> Transition:
        with self._lock:
            transition = self._current_store().apply(operation, *args)
            if transition.affected_pages:
                self._schedule(transition.state, transition.affected_pages)
        self.updated_at = datetime.utcnow()
        return transition

    def set_scale(self, scale: float) -> Transition:
        transition = self._mutate(set_scale, scale)
        self.record_event(f"Scale set to {transition.state.scale}.")
        return transition

    def zoom_in(self) -> Transition:
        transition = self._mutate(zoom_in, self.settings.scale_step)
        self.record_event(f"Zoomed in to {transition.state.scale}.")
        return transition

    def zoom_out(self) -> Transition:
        transition = self._mutate(zoom_out, self.settings.scale_step)
        self.record_event(f"Zoomed out to {transition.state.scale}.")
        return transition

    def rotate(self, delta: int) -> Transition:
        transition = self._mutate(rotate, delta)
        pages = ", ".join(str(page) for page in transition.affected_pages)
        self.record_event(f"Rotated page(s) {pages} by {delta:+d} degrees.")
        return transition

    def toggle_selection(self, page_index: int) -> Transition:
        return self._mutate(toggle_selection, page_index)

    def clear_selection(self) -> Transition:
        return self._mutate(clear_selection)

    def set_current_page(self, page_index: int) -> Transition:
        return self._mutate(set_current_page, page_index)

    def refresh_page(self, page_index: int) -> List[RenderTask]:
        """Drop a page's cached rasters and render them again."""
        with self._lock:
            self._current_document().page(page_index)
            state = self._current_store().snapshot()
            self.cache.invalidate(page_index)
            return self._schedule(state, [page_index])

    def raster(self, page_index: int, kind: RasterKind) -> Tuple[Optional[RasterEntry], bool]:
        """
        Get the raster to display for a page.

        Returns:
            (entry, fresh): the entry matching the current transform with
            fresh=True; otherwise the latest entry still cached (possibly
            None) with fresh=False, so a failed or pending regeneration keeps
            showing the previous raster instead of a blank page

        Raises:
            IndexError: If the page does not exist
        """
        with self._lock:
            self._current_document().page(page_index)
            state = self._current_store().snapshot()
        scale = self.settings.thumbnail_scale if kind is RasterKind.THUMBNAIL else state.scale
        entry = self.cache.get(page_index, kind, state.rotation_of(page_index), scale)
        if entry is not None:
            return entry, True
        return self.cache.peek(page_index, kind), False

    async def export(self) -> bytes:
        """
        Build the output PDF from the original bytes and the current rotation.

        Raises:
            ExportError: SOURCE_UNAVAILABLE or COPY_FAILED; session state is unchanged
        """
        with self._lock:
            document = self._current_document()
            state = self._current_store().snapshot()
        data = await build_export(document, state)
        self.record_event(f"Exported {document.page_count} page(s) ({len(data)} bytes).")
        return data

    async def save(self, gateway: PersistenceGateway, document_id: str) -> str:
        data = await self.export()
        file_path = await gateway.upload(document_id, data, filename=pdf_filename(document_id))
        self.record_event(f"Saved to persistence service as {file_path}.")
        return file_path

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self.scheduler.wait_idle(timeout=timeout)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            document = self._document
            self._document = None
            self._store = None
        self.scheduler.cancel_all()
        self.scheduler.shutdown(wait_for_workers=False)
        if document is not None:
            document.close()
        logger.info(f"Closed session {self.id}")

    def to_summary(self) -> SessionSummary:
        with self._lock:
            document = self._current_document()
            state = self._current_store().snapshot()
        return SessionSummary(
            id=self.id,
            document_id=document.id,
            page_count=document.page_count,
            created_at=self.created_at,
            updated_at=self.updated_at,
            transform=snapshot_model(state),
        )

    def to_detail(self) -> SessionDetail:
        summary = self.to_summary()
        surfaces = [
            SurfaceInfo(
                kind=state.surface_id.kind.value,
                page_index=state.surface_id.page_index,
                status=state.status.value,
                generation=state.generation,
                error=str(state.error) if state.error else None,
            )
            for state in self.scheduler.surfaces()
        ]
        with self._events_lock:
            events = list(self.events)
        return SessionDetail(
            **summary.model_dump(),
            surfaces=surfaces,
            cache=self.cache.stats(),
            events=events,
        )


class SessionManager:
    """
    Registry of open viewer sessions.

    Thread Safety:
        The registry is protected by a lock; sessions protect their own state.

    Attributes:
        config: Runtime configuration (OmegaConf)
        settings: Session settings derived from config
        gateway: Client for the persistence service
    """

    def __init__(
        self,
        config: DictConfig | None = None,
        renderer: PageRenderer | None = None,
        gateway: PersistenceGateway | None = None,
    ) -> None:
        self.config = config if config is not None else make_runtime_config()
        self.settings = SessionSettings.from_config(self.config)
        self.renderer = renderer or PymupdfPageRenderer()
        self.gateway = gateway or PersistenceGateway(
            str(self.config.gateway.base_url),
            timeout_s=float(self.config.gateway.timeout_s),
        )
        self._sessions: Dict[str, ViewerSession] = {}
        self._lock = Lock()

    async def open_session(self, data: bytes) -> ViewerSession:
        """
        Load bytes and register a new session around the resulting document.

        Raises:
            LoadError: If the bytes do not load; no session is created
        """
        document = await load_document(data, retain_source=self.settings.retain_source)
        session = ViewerSession(document, settings=self.settings, renderer=self.renderer)
        session.record_event(f"Session opened with document {document.id} ({document.page_count} page(s)).")
        with self._lock:
            self._sessions[session.id] = session
        logger.info(f"Opened session {session.id} for document {document.id}")
        return session

    async def open_remote(self, document_id: str) -> ViewerSession:
        """
        Download a document from the persistence service and open it.

        Raises:
            NetworkError: If the download fails
            LoadError: If the downloaded bytes do not load
        """
        data = await self.gateway.download(document_id)
        session = await self.open_session(data)
        session.record_event(f"Document downloaded from persistence service as {document_id}.")
        return session

    def list_sessions(self) -> List[SessionSummary]:
        with self._lock:
            sessions = sorted(self._sessions.values(), key=lambda s: s.created_at, reverse=True)
        return [session.to_summary() for session in sessions]

    def get_session(self, session_id: str) -> Optional[ViewerSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def close_session(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()
