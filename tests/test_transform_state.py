"""
Tests for the pure transform transitions and the TransformStore.
"""

import pytest

from pdf_viewer_backend.transform_state import (
    MAX_SCALE,
    MIN_SCALE,
    TransformState,
    TransformStore,
    clear_selection,
    initial_state,
    normalize_rotation,
    rotate,
    set_current_page,
    set_scale,
    toggle_selection,
    zoom_in,
    zoom_out,
)


class TestRotation:
    """Rotation is cumulative and always normalized to [0, 360)."""

    def test_four_quarter_turns_return_to_start(self):
        """Four +90 turns should be the identity."""
        state = initial_state(3)
        for _ in range(4):
            state = rotate(state, 90).state
        assert state.rotation == (0, 0, 0)

    def test_turn_and_turn_back_is_noop(self):
        """+90 then -90 should be a no-op."""
        state = initial_state(2)
        state = rotate(state, 90).state
        state = rotate(state, -90).state
        assert state.rotation == (0, 0)

    def test_negative_delta_wraps(self):
        """-90 from 0 should wrap to 270."""
        state = rotate(initial_state(1), -90).state
        assert state.rotation == (270,)

    def test_round_trip_from_non_zero_start(self):
        """Four turns should be the identity from any start."""
        state = TransformState(page_count=2, rotation=(180, 270))
        for _ in range(4):
            state = rotate(state, 90).state
        assert state.rotation == (180, 270)

    def test_invalid_delta_rejected(self):
        """Only quarter turns should be accepted."""
        with pytest.raises(ValueError):
            rotate(initial_state(1), 45)

    @pytest.mark.parametrize("degrees, expected", [(0, 0), (360, 0), (-90, 270), (450, 90), (-450, 270)])
    def test_normalize_rotation(self, degrees, expected):
        """Any angle should normalize into [0, 360)."""
        assert normalize_rotation(degrees) == expected


class TestSelectionScopedRotate:
    """Rotation applies to the selection, or to every page when nothing is selected."""

    def test_selected_pages_only(self):
        """Only selected pages should rotate and be marked stale."""
        state = initial_state(5)
        state = toggle_selection(state, 1).state
        state = toggle_selection(state, 3).state

        transition = rotate(state, 90)

        assert transition.state.rotation == (0, 90, 0, 90, 0)
        assert transition.affected_pages == (1, 3)

    def test_empty_selection_rotates_all(self):
        """With nothing selected every page should rotate."""
        transition = rotate(initial_state(5), 90)
        assert transition.state.rotation == (90,) * 5
        assert transition.affected_pages == (0, 1, 2, 3, 4)

    def test_toggle_twice_deselects(self):
        """Toggling a page twice should deselect it."""
        state = toggle_selection(initial_state(3), 2).state
        assert state.selection == frozenset({2})
        state = toggle_selection(state, 2).state
        assert state.selection == frozenset()

    def test_toggle_out_of_range(self):
        """Toggling a page past the end should raise IndexError."""
        with pytest.raises(IndexError):
            toggle_selection(initial_state(3), 3)

    def test_selection_does_not_mark_pages_stale(self):
        """Selection changes should not mark pages stale."""
        assert toggle_selection(initial_state(3), 0).affected_pages == ()

    def test_clear_selection(self):
        """Clearing should empty the selection."""
        state = toggle_selection(initial_state(3), 0).state
        assert clear_selection(state).state.selection == frozenset()


class TestScale:
    """Scale is clamped to [0.1, 2.0] and global."""

    def test_twenty_steps_cap_at_max(self):
        """Twenty zoom-in steps from 1.0 should stop at 2.0."""
        state = initial_state(2)
        for _ in range(20):
            state = zoom_in(state, 0.1).state
        assert state.scale == MAX_SCALE

    def test_repeated_zoom_out_caps_at_min(self):
        """Repeated zoom-out should stop at 0.1."""
        state = initial_state(2)
        for _ in range(20):
            state = zoom_out(state).state
        assert state.scale == MIN_SCALE

    @pytest.mark.parametrize("requested", [-5.0, 0.0, 0.05, 0.1, 1.37, 2.0, 2.5, 100.0])
    def test_set_scale_always_in_range(self, requested):
        """Any requested scale should be clamped into range."""
        state = set_scale(initial_state(1), requested).state
        assert MIN_SCALE <= state.scale <= MAX_SCALE

    def test_scale_change_marks_every_page(self):
        """A scale change should mark every page stale."""
        transition = set_scale(initial_state(4), 1.5)
        assert transition.affected_pages == (0, 1, 2, 3)

    def test_unchanged_scale_marks_nothing(self):
        """A clamped no-op scale change should mark nothing."""
        state = set_scale(initial_state(2), 2.0).state
        assert set_scale(state, 3.0).affected_pages == ()

    def test_steps_do_not_drift(self):
        """Repeated steps should not accumulate float error."""
        state = initial_state(1)
        for _ in range(3):
            state = zoom_in(state).state
        assert state.scale == 1.3


class TestStateInvariants:
    """TransformState rejects values outside its domain."""

    def test_rejects_unnormalized_rotation(self):
        """Rotations outside [0, 360) should be rejected."""
        with pytest.raises(ValueError):
            TransformState(page_count=1, rotation=(360,))

    def test_rejects_selection_outside_document(self):
        """Selections past the last page should be rejected."""
        with pytest.raises(ValueError):
            TransformState(page_count=2, selection=frozenset({2}))

    def test_rejects_wrong_rotation_length(self):
        """Rotation must cover every page."""
        with pytest.raises(ValueError):
            TransformState(page_count=2, rotation=(0,))

    def test_current_page(self):
        """The current page should be set and range-checked."""
        state = set_current_page(initial_state(3), 2).state
        assert state.current_page == 2
        with pytest.raises(IndexError):
            set_current_page(state, 5)


class TestTransformStore:
    """Tests for the serialized transform store."""

    def test_apply_swaps_state(self):
        """Applying an operation should replace the snapshot."""
        store = TransformStore(initial_state(2))
        before = store.snapshot()

        transition = store.apply(rotate, 90)

        assert store.snapshot() is transition.state
        assert before.rotation == (0, 0)

    def test_failed_operation_keeps_state(self):
        """A rejected operation should leave the state unchanged."""
        store = TransformStore(initial_state(2))
        with pytest.raises(ValueError):
            store.apply(rotate, 180)
        assert store.snapshot().rotation == (0, 0)
