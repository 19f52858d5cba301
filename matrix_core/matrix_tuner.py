"""
Interactive spacing and size tuning for a grid of elements.

A MatrixTuner session keeps two generations of geometry: the original
snapshot taken when the session opened, and a baseline that every preview
starts from. Commit replaces the baseline, reset and cancel restore the
original.
"""

import logging
import time
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set

from .coordinate_converter import CoordinateConverter
from .errors import PreconditionViolation
from .models import ElementRef, GeometrySnapshot, Grid

logger = logging.getLogger(__name__)


class TunerState(Enum):
    IDLE = "idle"
    PREVIEW_PENDING = "preview_pending"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


class Granularity(Enum):
    ROW = "row"
    COLUMN = "column"


class MatrixTuner:  # pylint: disable=too-many-instance-attributes
    """Preview/commit loop over per-row or per-column size deltas and uniform spacing"""

    DEFAULT_SPACING = CoordinateConverter.cm_to_points(0.2)
    DEBOUNCE_SECONDS = 0.2
    MAX_DIMENSION = 15
    MIN_SIZE = 1.0

    def __init__(self, grid: Grid, clock: Callable[[], float] = time.monotonic):
        """
        Open a session: capture the original geometry, normalize the grid to
        the default spacing and capture the baseline

        Args:
            grid: Grid to tune
            clock: Monotonic clock in seconds used for debouncing

        Raises:
            PreconditionViolation: the grid is empty or larger than 15x15
        """
        if grid.row_count < 1 or grid.column_count < 1:
            raise PreconditionViolation("The matrix tuner needs at least one element.")
        if grid.row_count > self.MAX_DIMENSION or grid.column_count > self.MAX_DIMENSION:
            raise PreconditionViolation(
                f"The matrix tuner supports up to {self.MAX_DIMENSION}x{self.MAX_DIMENSION} "
                f"elements, got {grid.row_count}x{grid.column_count}.")

        self.grid = grid
        self.clock = clock
        self.granularity = Granularity.ROW
        self.selected: Set[int] = set()
        self.size_delta = 0.0
        self.spacing = self.DEFAULT_SPACING
        self.state = TunerState.IDLE
        self._pending_since: Optional[float] = None

        self._original = self._capture()
        self._anchor_left = min(s.left for s in self._original.values())
        self._anchor_top = min(s.top for s in self._original.values())
        self._layout(self._capture())
        self._baseline = self._capture()
        logger.info("Tuner opened on %dx%d grid", grid.row_count, grid.column_count)

    @property
    def elements(self) -> List[ElementRef]:
        return self.grid.elements()

    @property
    def unit_count(self) -> int:
        """Number of selectable rows or columns in the current granularity"""
        if self.granularity == Granularity.ROW:
            return self.grid.row_count
        return self.grid.column_count

    def _capture(self) -> Dict[ElementRef, GeometrySnapshot]:
        return {element: GeometrySnapshot.capture(element) for element in self.elements}

    def _ensure_open(self):
        if self.state == TunerState.CANCELLED:
            raise PreconditionViolation("The tuner session was cancelled.")

    def _changed(self):
        self.state = TunerState.PREVIEW_PENDING
        self._pending_since = self.clock()

    def set_granularity(self, granularity: Granularity):
        """Switch between row and column selection; clears the selection"""
        self._ensure_open()
        if granularity != self.granularity:
            self.granularity = granularity
            self.selected.clear()
            self._changed()

    def toggle(self, index: int):
        self._ensure_open()
        if not 0 <= index < self.unit_count:
            raise PreconditionViolation(
                f"{self.granularity.value.title()} {index + 1} does not exist.")
        self.selected ^= {index}
        self._changed()

    def _select(self, indexes: Iterable[int]):
        self._ensure_open()
        self.selected = set(indexes)
        self._changed()

    def select_all(self):
        self._select(range(self.unit_count))

    def select_none(self):
        self._select(())

    def select_odd(self):
        """Select the 1st, 3rd, 5th... row or column"""
        self._select(range(0, self.unit_count, 2))

    def select_even(self):
        """Select the 2nd, 4th, 6th... row or column"""
        self._select(range(1, self.unit_count, 2))

    def select_edge(self):
        """Select the first and the last row or column"""
        self._select({0, self.unit_count - 1})

    def set_size_delta(self, points: float):
        self._ensure_open()
        self.size_delta = float(points)
        self._changed()

    def set_spacing(self, points: float):
        self._ensure_open()
        if points < 0:
            raise PreconditionViolation("Spacing cannot be negative.")
        self.spacing = float(points)
        self._changed()

    def poll(self) -> bool:
        """
        Run the pending preview once the debounce delay has elapsed

        Returns:
            True when a preview ran
        """
        if self.state != TunerState.PREVIEW_PENDING:
            return False
        if self.clock() - self._pending_since < self.DEBOUNCE_SECONDS:
            return False
        self.preview()
        return True

    def flush(self):
        """Run the pending preview immediately"""
        if self.state == TunerState.PREVIEW_PENDING:
            self.preview()

    def preview(self):
        """Lay the grid out from the baseline with the current delta, selection and spacing"""
        self._ensure_open()
        self._layout(self._baseline)
        self.state = TunerState.IDLE
        self._pending_since = None
        logger.debug("Preview: %s %s delta=%.2fpt spacing=%.2fpt",
                     self.granularity.value, sorted(self.selected), self.size_delta, self.spacing)

    def commit(self):
        """Keep the previewed geometry as the new baseline and zero the delta"""
        self._ensure_open()
        self.flush()
        self._baseline = self._capture()
        self.size_delta = 0.0
        self.selected.clear()
        self.state = TunerState.COMMITTED
        logger.info("Tuner committed at spacing %.2fpt", self.spacing)

    def reset(self):
        """Restore the original geometry and renormalize at the default spacing"""
        self._ensure_open()
        self._restore_original()
        self.size_delta = 0.0
        self.spacing = self.DEFAULT_SPACING
        self.selected.clear()
        self._layout(self._capture())
        self._baseline = self._capture()
        self.state = TunerState.IDLE
        self._pending_since = None
        logger.info("Tuner reset")

    def cancel(self):
        """Restore the exact original geometry and end the session"""
        self._ensure_open()
        self._restore_original()
        self.state = TunerState.CANCELLED
        self._pending_since = None
        self._release()
        logger.info("Tuner cancelled")

    def finish(self):
        """Commit and end the session"""
        self.commit()
        self._release()

    def _release(self):
        for element in self._original:
            element.release()

    def _restore_original(self):
        for element, snapshot in self._original.items():
            snapshot.restore(element)

    def _target_size(self, snapshot: GeometrySnapshot, row: int, column: int):
        width, height = snapshot.width, snapshot.height
        if self.granularity == Granularity.ROW and row in self.selected:
            height = max(height + self.size_delta, self.MIN_SIZE)
        elif self.granularity == Granularity.COLUMN and column in self.selected:
            width = max(width + self.size_delta, self.MIN_SIZE)
        return width, height

    def _layout(self, base: Dict[ElementRef, GeometrySnapshot]):
        """
        Size every element to its row height and column width, then place
        rows and columns from the anchor with exactly `spacing` between them
        """
        row_heights = [0.0] * self.grid.row_count
        column_widths = [0.0] * self.grid.column_count
        for r, row in enumerate(self.grid.rows):
            for c, element in enumerate(row):
                width, height = self._target_size(base[element], r, c)
                row_heights[r] = max(row_heights[r], height)
                column_widths[c] = max(column_widths[c], width)

        column_lefts = []
        x = self._anchor_left
        for width in column_widths:
            column_lefts.append(x)
            x += width + self.spacing

        y = self._anchor_top
        for r, row in enumerate(self.grid.rows):
            for c, element in enumerate(row):
                element.set_geometry(column_lefts[c], y, column_widths[c], row_heights[r])
            y += row_heights[r] + self.spacing
