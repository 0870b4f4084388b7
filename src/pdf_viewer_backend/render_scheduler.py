"""
Asynchronous, cancellable page rendering against raster surfaces.

A surface is one drawable target: the thumbnail or the full-page raster of a
given page. Surfaces live in an arena keyed by SurfaceId and are bound to the
document currently loaded; binding a new document discards the arena.

Every surface owns a generation counter. A render request bumps it, cancels
whatever task was active on the surface and submits a new task that captures
the new generation. When a task finishes, its result is applied to the
raster cache only if its generation is still the surface's current one, so
the last requested render always wins whatever order the workers finish in.
Cancellation is therefore best-effort: a task that has not started yet skips
the render entirely, a running one finishes and its result is dropped.

Full-page renders and thumbnails run on separate worker pools so that a long
queue of full-page renders never starves the thumbnail strip.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ALL_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from threading import Event, Lock
from typing import Callable, Dict, List, Optional, Set, Tuple

from .document_loader import Document
from .errors import RenderError, RenderErrorKind
from .page_renderer import PageRenderer
from .raster_cache import RasterCache, RasterEntry, RasterKind

logger = logging.getLogger(__name__)

ErrorCallback = Callable[["SurfaceId", RenderError], None]


class SurfaceStatus(str, Enum):
    IDLE = "idle"
    RENDERING = "rendering"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class RenderOutcomeStatus(str, Enum):
    APPLIED = "applied"
    DISCARDED = "discarded"
    FAILED = "failed"


@dataclass(frozen=True)
class SurfaceId:
    kind: RasterKind
    page_index: int

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.page_index}"


@dataclass(frozen=True)
class RenderOutcome:
    status: RenderOutcomeStatus
    generation: int
    entry: Optional[RasterEntry] = None
    error: Optional[RenderError] = None


@dataclass(frozen=True)
class SurfaceState:
    """Read-only view of one surface for callers and the API layer."""

    surface_id: SurfaceId
    status: SurfaceStatus
    generation: int
    error: Optional[RenderError] = None


class RenderTask:
    """
    One render request against a surface.

    The task captures the transform it was issued for; later transform
    changes never alter it, they issue a new task instead.
    """

    def __init__(self, surface_id: SurfaceId, page_index: int, rotation: int, scale: float, generation: int) -> None:
        self.surface_id = surface_id
        self.page_index = page_index
        self.rotation = rotation
        self.scale = scale
        self.generation = generation
        self.future: Future = Future()
        self._cancelled = Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def result(self, timeout: Optional[float] = None) -> RenderOutcome:
        return self.future.result(timeout=timeout)

    def __repr__(self) -> str:
        return (
            f"RenderTask(surface={self.surface_id}, generation={self.generation}, "
            f"rotation={self.rotation}, scale={self.scale})"
        )


class _Surface:
    def __init__(self, surface_id: SurfaceId) -> None:
        self.id = surface_id
        self.generation = 0
        self.status = SurfaceStatus.IDLE
        self.active: Optional[RenderTask] = None
        self.error: Optional[RenderError] = None

    def state(self) -> SurfaceState:
        return SurfaceState(surface_id=self.id, status=self.status, generation=self.generation, error=self.error)


class RenderScheduler:
    """
    Issues, tracks and cancels render tasks and feeds their results to the cache.

    Thread Safety:
        All surface bookkeeping and the cache write of a finished task happen
        under a single lock, so the generation check and the write are atomic
        with respect to new requests.

    Attributes:
        cache: Raster cache that receives applied results
        renderer: Render primitive used by the worker threads
    """

    def __init__(
        self,
        cache: RasterCache,
        renderer: PageRenderer,
        max_full_page_workers: int = 4,
        max_thumbnail_workers: int = 16,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            cache: Raster cache to populate
            renderer: Page render primitive
            max_full_page_workers: Concurrent full-page renders (default: 4)
            max_thumbnail_workers: Concurrent thumbnail renders (default: 16)
            on_error: Called with (surface_id, error) for every render failure
                that was still current when it happened
        """
        self.cache = cache
        self.renderer = renderer
        self._on_error = on_error
        self._executors: Dict[RasterKind, ThreadPoolExecutor] = {
            RasterKind.FULL_PAGE: ThreadPoolExecutor(max_workers=max_full_page_workers, thread_name_prefix="render-page"),
            RasterKind.THUMBNAIL: ThreadPoolExecutor(max_workers=max_thumbnail_workers, thread_name_prefix="render-thumb"),
        }
        self._surfaces: Dict[SurfaceId, _Surface] = {}
        self._inflight: Set[Future] = set()
        self._document: Optional[Document] = None
        self._lock = Lock()

    def bind(self, document: Optional[Document]) -> None:
        """
        Attach the scheduler to a (new) document.

        Cancels every active task and drops the surface arena. Tasks still
        running for the previous document finish against surfaces that no
        longer exist, so their results are discarded.
        """
        with self._lock:
            for surface in self._surfaces.values():
                if surface.active is not None:
                    surface.active.cancel()
            self._surfaces = {}
            self._document = document
        logger.debug(f"Scheduler bound to document {document.id if document else None}")

    def request_render(self, surface_id: SurfaceId, page_index: int, rotation: int, scale: float) -> RenderTask:
        """
        Start a render on a surface, superseding whatever it was doing.

        Returns immediately; the returned task's future resolves to a
        RenderOutcome once the render has been applied, discarded or failed.

        Args:
            surface_id: Target surface
            page_index: Page to render
            rotation: Rotation captured for this render, in degrees
            scale: Scale captured for this render

        Returns:
            The new, now authoritative RenderTask for the surface
        """
        with self._lock:
            surface = self._claim(surface_id)
            task, unavailable = self._issue(surface, page_index, rotation, scale)
        if unavailable is not None:
            self._report(surface_id, unavailable)
        return task

    def ensure_render(self, surface_id: SurfaceId, page_index: int, rotation: int, scale: float) -> Optional[RenderTask]:
        """
        Like request_render, but reuse a cached raster that already matches.

        The active task is superseded either way, so a render issued for an
        older transform can never land after this call.

        Returns:
            The new RenderTask, or None if the cache already held the raster
        """
        with self._lock:
            surface = self._claim(surface_id)
            if self.cache.get(page_index, surface_id.kind, rotation, scale) is not None:
                surface.status = SurfaceStatus.COMPLETED
                surface.error = None
                return None
            task, unavailable = self._issue(surface, page_index, rotation, scale)
        if unavailable is not None:
            self._report(surface_id, unavailable)
        return task

    def _claim(self, surface_id: SurfaceId) -> _Surface:
        """Bump the surface generation and cancel its active task; caller holds the lock."""
        surface = self._surfaces.get(surface_id)
        if surface is None:
            surface = self._surfaces[surface_id] = _Surface(surface_id)
        surface.generation += 1
        if surface.active is not None:
            surface.active.cancel()
            surface.active = None
        return surface

    def _issue(
        self, surface: _Surface, page_index: int, rotation: int, scale: float
    ) -> Tuple[RenderTask, Optional[RenderError]]:
        """Create and submit a task for a claimed surface; caller holds the lock."""
        task = RenderTask(surface.id, page_index, rotation, scale, surface.generation)
        document = self._document
        if document is None or not 0 <= page_index < document.page_count:
            unavailable = RenderError(
                RenderErrorKind.SURFACE_UNAVAILABLE,
                f"No drawable surface for page {page_index}",
                page_index=page_index,
            )
            surface.status = SurfaceStatus.FAILED
            surface.error = unavailable
            task.future.set_result(RenderOutcome(RenderOutcomeStatus.FAILED, task.generation, error=unavailable))
            return task, unavailable

        surface.status = SurfaceStatus.RENDERING
        surface.active = task
        self._inflight.add(task.future)
        task.future.add_done_callback(self._forget)
        self._executors[surface.id.kind].submit(self._execute, task, surface, document)
        return task, None

    def _execute(self, task: RenderTask, surface: _Surface, document: Document) -> None:
        """
        Worker body: render, then apply or discard under the lock.

        Note:
            Runs on a pool thread. The task future is always resolved here,
            never left pending.
        """
        if task.cancelled:
            outcome = self._finish(task, surface, image=None, error=None)
            task.future.set_result(outcome)
            return

        started = time.monotonic()
        image = None
        error: Optional[RenderError] = None
        try:
            image = self.renderer.render(document, task.page_index, task.rotation, task.scale)
        except RenderError as exc:
            error = exc
        except TimeoutError as exc:
            error = RenderError(RenderErrorKind.TIMEOUT, f"Render timed out: {exc}", page_index=task.page_index)
        except Exception as exc:  # noqa: BLE001
            error = RenderError(RenderErrorKind.DECODE_FAILED, f"Render failed: {exc}", page_index=task.page_index)

        outcome = self._finish(task, surface, image=image, error=error)
        logger.debug(f"{task!r} finished as {outcome.status.value} in {time.monotonic() - started:.3f}s")
        if outcome.status is RenderOutcomeStatus.FAILED:
            self._report(task.surface_id, outcome.error)
        task.future.set_result(outcome)

    def _finish(self, task: RenderTask, surface: _Surface, image, error: Optional[RenderError]) -> RenderOutcome:
        with self._lock:
            if surface.active is task:
                surface.active = None

            superseded = self._surfaces.get(task.surface_id) is not surface or surface.generation != task.generation
            if superseded:
                return RenderOutcome(RenderOutcomeStatus.DISCARDED, task.generation)

            if task.cancelled:
                surface.status = SurfaceStatus.CANCELLED
                return RenderOutcome(RenderOutcomeStatus.DISCARDED, task.generation)

            if error is not None:
                # Previous raster stays in the cache and keeps being served
                surface.status = SurfaceStatus.FAILED
                surface.error = error
                return RenderOutcome(RenderOutcomeStatus.FAILED, task.generation, error=error)

            entry = RasterEntry(
                page_index=task.page_index,
                kind=task.surface_id.kind,
                produced_from_rotation=task.rotation,
                produced_from_scale=task.scale,
                image=image,
            )
            self.cache.put(entry)
            surface.status = SurfaceStatus.COMPLETED
            surface.error = None
            return RenderOutcome(RenderOutcomeStatus.APPLIED, task.generation, entry=entry)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._inflight.discard(future)

    def _report(self, surface_id: SurfaceId, error: RenderError) -> None:
        logger.warning(f"Render failed on surface {surface_id}: {error}")
        if self._on_error is None:
            return
        try:
            self._on_error(surface_id, error)
        except Exception:  # noqa: BLE001
            logger.exception(f"Render error callback raised for surface {surface_id}")

    def cancel(self, surface_id: SurfaceId) -> bool:
        """
        Cancel the surface's active task, if any, and invalidate older results.

        Returns:
            True if the surface exists in the arena
        """
        with self._lock:
            surface = self._surfaces.get(surface_id)
            if surface is None:
                return False
            surface.generation += 1
            if surface.active is not None:
                surface.active.cancel()
                surface.active = None
                surface.status = SurfaceStatus.CANCELLED
            return True

    def cancel_all(self) -> None:
        with self._lock:
            surface_ids = list(self._surfaces)
        for surface_id in surface_ids:
            self.cancel(surface_id)

    def surface_state(self, surface_id: SurfaceId) -> SurfaceState:
        with self._lock:
            surface = self._surfaces.get(surface_id)
            if surface is None:
                return SurfaceState(surface_id=surface_id, status=SurfaceStatus.IDLE, generation=0)
            return surface.state()

    def surfaces(self) -> List[SurfaceState]:
        with self._lock:
            states = [surface.state() for surface in self._surfaces.values()]
        return sorted(states, key=lambda s: (s.surface_id.page_index, s.surface_id.kind.value))

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every task in flight at call time has resolved.

        Returns:
            True if all of them resolved within the timeout
        """
        with self._lock:
            futures = list(self._inflight)
        if not futures:
            return True
        _, pending = wait(futures, timeout=timeout, return_when=ALL_COMPLETED)
        return not pending

    def shutdown(self, wait_for_workers: bool = True) -> None:
        self.bind(None)
        for executor in self._executors.values():
            executor.shutdown(wait=wait_for_workers)
