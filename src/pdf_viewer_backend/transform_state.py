"""
View transform state: global scale, per-page rotation and page selection.

Every operation here is a pure function taking a TransformState and returning
a Transition: the new state plus the pages whose rasters are now stale. The
render side consumes ``affected_pages`` as its work queue; nothing in this
module knows about rendering.

TransformStore is the only mutable piece: it holds the current state of one
session and swaps it atomically under a lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, FrozenSet, Tuple

MIN_SCALE = 0.1
MAX_SCALE = 2.0
SCALE_STEP = 0.1
ROTATION_DELTAS = (90, -90)

# Scale is rounded so repeated +/- steps do not drift (0.1 + 0.2 != 0.3)
_SCALE_PRECISION = 4


def normalize_rotation(degrees: int) -> int:
    return ((degrees % 360) + 360) % 360


def clamp_scale(scale: float) -> float:
    return round(min(MAX_SCALE, max(MIN_SCALE, float(scale))), _SCALE_PRECISION)


@dataclass(frozen=True)
class TransformState:
    """
    Immutable view state for one open document.

    Attributes:
        page_count: Number of pages in the document the state belongs to
        scale: Global zoom factor in [MIN_SCALE, MAX_SCALE]
        rotation: Rotation in degrees per page, indexed by page, each in [0, 360)
        selection: Page indices selected for scoped batch operations
        current_page: Page the viewer is focused on
    """

    page_count: int
    scale: float = 1.0
    rotation: Tuple[int, ...] = ()
    selection: FrozenSet[int] = field(default_factory=frozenset)
    current_page: int = 0

    def __post_init__(self) -> None:
        if self.page_count < 1:
            raise ValueError("page_count must be at least 1")
        if not self.rotation:
            object.__setattr__(self, "rotation", (0,) * self.page_count)
        if len(self.rotation) != self.page_count:
            raise ValueError("rotation must hold exactly one entry per page")
        if any(not 0 <= value < 360 for value in self.rotation):
            raise ValueError("rotation values must be normalized to [0, 360)")
        if not MIN_SCALE <= self.scale <= MAX_SCALE:
            raise ValueError(f"scale must be within [{MIN_SCALE}, {MAX_SCALE}]")
        if any(not 0 <= page < self.page_count for page in self.selection):
            raise ValueError("selection contains pages outside the document")
        if not 0 <= self.current_page < self.page_count:
            raise ValueError("current_page outside the document")

    @property
    def all_pages(self) -> Tuple[int, ...]:
        return tuple(range(self.page_count))

    def rotation_of(self, page_index: int) -> int:
        return self.rotation[page_index]

    def replace(self, **changes) -> "TransformState":
        values = {
            "page_count": self.page_count,
            "scale": self.scale,
            "rotation": self.rotation,
            "selection": self.selection,
            "current_page": self.current_page,
        }
        values.update(changes)
        return TransformState(**values)


@dataclass(frozen=True)
class Transition:
    state: TransformState
    affected_pages: Tuple[int, ...] = ()


def initial_state(page_count: int, scale: float = 1.0) -> TransformState:
    return TransformState(page_count=page_count, scale=clamp_scale(scale))


def _check_page(state: TransformState, page_index: int) -> None:
    if not 0 <= page_index < state.page_count:
        raise IndexError(f"Page out of range: {page_index} (0..{state.page_count - 1})")


def set_scale(state: TransformState, new_scale: float) -> Transition:
    """Clamp and store a new global scale; every page is stale if the value changed."""
    scale = clamp_scale(new_scale)
    if scale == state.scale:
        return Transition(state)
    return Transition(state.replace(scale=scale), state.all_pages)


def zoom_in(state: TransformState, step: float = SCALE_STEP) -> Transition:
    return set_scale(state, state.scale + step)


def zoom_out(state: TransformState, step: float = SCALE_STEP) -> Transition:
    return set_scale(state, state.scale - step)


def toggle_selection(state: TransformState, page_index: int) -> Transition:
    _check_page(state, page_index)
    selection = state.selection ^ {page_index}
    return Transition(state.replace(selection=frozenset(selection)))


def clear_selection(state: TransformState) -> Transition:
    if not state.selection:
        return Transition(state)
    return Transition(state.replace(selection=frozenset()))


def set_current_page(state: TransformState, page_index: int) -> Transition:
    _check_page(state, page_index)
    return Transition(state.replace(current_page=page_index))


def rotate(state: TransformState, delta: int) -> Transition:
    """
    Rotate the selected pages, or every page when nothing is selected.

    Rotation is cumulative per page: four +90 steps return a page to where it
    started, and +90 followed by -90 is a no-op.

    Args:
        state: Current state
        delta: +90 or -90

    Returns:
        Transition whose affected_pages are the rotated pages in ascending order

    Raises:
        ValueError: If delta is not +90 or -90
    """
    if delta not in ROTATION_DELTAS:
        raise ValueError(f"Rotation delta must be one of {ROTATION_DELTAS}, got {delta}")

    targets = tuple(sorted(state.selection)) if state.selection else state.all_pages
    rotation = list(state.rotation)
    for page in targets:
        rotation[page] = normalize_rotation(rotation[page] + delta)
    return Transition(state.replace(rotation=tuple(rotation)), targets)


class TransformStore:
    """
    Holder of the current TransformState for one session.

    Mutation happens only through ``apply`` with one of the pure operations
    above. Readers get an immutable snapshot, so a reader (the export
    builder in particular) can never observe a half-applied change.
    """

    def __init__(self, state: TransformState) -> None:
        self._state = state
        self._lock = Lock()

    def snapshot(self) -> TransformState:
        with self._lock:
            return self._state

    def apply(self, operation: Callable[..., Transition], *args) -> Transition:
        with self._lock:
            transition = operation(self._state, *args)
            self._state = transition.state
            return transition
