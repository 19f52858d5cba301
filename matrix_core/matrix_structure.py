"""
This module contains the MatrixStructureEditor class for structural edits of
a matrix: appending rows and columns, synthesizing a header row and managing
row separator lines.
"""
import logging
from typing import List, Optional, Sequence

from pptx.dml.color import RGBColor

from .coordinate_converter import BoundingBox, CoordinateConverter
from .errors import GridDetectionFailure, HostOperationFailure, PreconditionViolation
from .formatting import (
    ColorValue, DEFAULT_FONT_SIZE, ShapeFormatAccess, StyleSnapshot, copy_cell_style,
    copy_element_style, estimate_text_height,
)
from .grid_detection import GridClusterer, MAX_ROTATION
from .models import BatchOutcome, ElementRef, Grid, SeparatorSettings
from .separators import (
    HEADER_SEPARATOR_PREFIX, SeparatorGeometry, SeparatorManager, SeparatorRegistry,
)
from .surface import DEFAULT_COLUMN_WIDTH, DEFAULT_ROW_HEIGHT, SlideSurface, TableHandle

logger = logging.getLogger(__name__)

DEFAULT_GAP = 5.0
HEADER_GAP = CoordinateConverter.cm_to_points(1.0)
HEADER_SEPARATOR = SeparatorSettings(weight=0.5, color=RGBColor(0, 0, 0))
HEADER_LABEL = "Header {}"


def text_elements(selection: Sequence[ElementRef]) -> List[ElementRef]:
    """Unrotated non-table elements that carry a text frame"""
    return [element for element in selection
            if element.traits.has_text_frame
            and not element.traits.has_table
            and abs(element.traits.rotation) <= MAX_ROTATION]


def tables_in(selection: Sequence[ElementRef]) -> List[ElementRef]:
    return [element for element in selection if element.traits.has_table]


def _average(values: Sequence[float], default: float) -> float:
    values = list(values)
    return sum(values) / len(values) if values else default


def _row_gaps(grid: Grid) -> List[float]:
    return [grid.row_min_top(i + 1) - grid.row_max_bottom(i) for i in range(grid.row_count - 1)]


def _column_gaps(grid: Grid) -> List[float]:
    return [row[i + 1].left - row[i].right for row in grid.rows for i in range(len(row) - 1)]


class MatrixStructureEditor:
    """Structural edits on a table or a grid of text elements"""

    def __init__(self, surface: SlideSurface, clusterer: Optional[GridClusterer] = None,
                 separators: Optional[SeparatorManager] = None):
        self.surface = surface
        self.clusterer = clusterer or GridClusterer()
        self.separators = separators or SeparatorManager(surface)

    def detect_grid(self, selection: Sequence[ElementRef]) -> Optional[Grid]:
        candidates = text_elements(selection)
        if len(candidates) < 2:
            return None
        return self.clusterer.cluster(candidates)

    def add_row(self, selection: Sequence[ElementRef]) -> BatchOutcome:
        """
        Append a row to every selected table, or to the grid of the selection

        Args:
            selection: Selected elements

        Returns:
            BatchOutcome with 'rows' and 'cells' counts

        Raises:
            PreconditionViolation: neither a table nor a grid was selected
        """
        outcome = BatchOutcome()
        tables = tables_in(selection)
        if tables:
            for index, table_element in enumerate(tables, start=1):
                try:
                    self._add_row_to_table(TableHandle(table_element), outcome)
                    outcome.add('rows')
                except HostOperationFailure as e:
                    outcome.fail(f"table {index}", e.message)
            self._realign_after_edit(selection, outcome)
            return outcome

        grid = self.detect_grid(selection)
        if grid is None:
            raise PreconditionViolation(
                "No row can be added: select a table or at least two text elements arranged in a grid.")
        self._add_row_to_grid(grid, outcome)
        outcome.add('rows')
        if outcome.created:
            self.surface.select(outcome.created)
        self._realign_after_edit(list(selection) + outcome.created, outcome)
        return outcome

    def add_column(self, selection: Sequence[ElementRef]) -> BatchOutcome:
        """
        Append a column to every selected table, or to the grid of the selection

        Raises:
            PreconditionViolation: neither a table nor a grid was selected
        """
        outcome = BatchOutcome()
        tables = tables_in(selection)
        if tables:
            for index, table_element in enumerate(tables, start=1):
                try:
                    self._add_column_to_table(TableHandle(table_element), outcome)
                    outcome.add('columns')
                except HostOperationFailure as e:
                    outcome.fail(f"table {index}", e.message)
            self._realign_after_edit(selection, outcome)
            return outcome

        grid = self.detect_grid(selection)
        if grid is None:
            raise PreconditionViolation(
                "No column can be added: select a table or at least two text elements arranged in a grid.")
        self._add_column_to_grid(grid, outcome)
        outcome.add('columns')
        if outcome.created:
            self.surface.select(outcome.created)
        self._realign_after_edit(list(selection) + outcome.created, outcome)
        return outcome

    def _add_row_to_table(self, table: TableHandle, outcome: BatchOutcome):
        reference = table.row_count - 1
        height = table.row_heights[reference] or DEFAULT_ROW_HEIGHT
        new_row = table.add_row()
        table.set_row_height(new_row, height)
        table.sync_frame_size()
        for column in range(table.column_count):
            self._copy_table_cell(table, (reference, column), (new_row, column), outcome)

    def _add_column_to_table(self, table: TableHandle, outcome: BatchOutcome):
        reference = table.column_count - 1
        width = table.column_widths[reference] or DEFAULT_COLUMN_WIDTH
        new_column = table.add_column()
        table.set_column_width(new_column, width)
        table.sync_frame_size()
        for row in range(table.row_count):
            self._copy_table_cell(table, (row, reference), (row, new_column), outcome)

    def _copy_table_cell(self, table: TableHandle, source, target, outcome: BatchOutcome):
        unit = f"cell ({target[0] + 1}, {target[1] + 1})"
        try:
            failed = copy_cell_style(table.cell(*source), table.cell(*target))
            for name in failed:
                outcome.fail(f"{unit} {name}", "formatting not applied")
            outcome.add('cells')
        except (IndexError, ValueError, AttributeError) as e:
            outcome.fail(unit, str(e))

    def _add_row_to_grid(self, grid: Grid, outcome: BatchOutcome):
        new_top = grid.row_max_bottom(grid.row_count - 1) + _average(_row_gaps(grid), DEFAULT_GAP)
        height = _average((element.height for element in grid.rows[-1]), DEFAULT_ROW_HEIGHT)

        for column in range(grid.column_count):
            members = grid.column(column)
            if not members:
                continue
            reference = members[-1]
            width = _average((element.width for element in members), DEFAULT_COLUMN_WIDTH)
            box = BoundingBox(left=reference.left, top=new_top, width=width, height=height)
            self._create_cell_element(box, reference, f"column {column + 1}", outcome)

    def _add_column_to_grid(self, grid: Grid, outcome: BatchOutcome):
        new_left = max(element.right for element in grid.elements()) + \
            _average(_column_gaps(grid), DEFAULT_GAP)
        width = _average((row[-1].width for row in grid.rows if row), DEFAULT_COLUMN_WIDTH)

        for row_index, row in enumerate(grid.rows):
            if not row:
                continue
            top = min(element.top for element in row)
            height = max(element.height for element in row)
            box = BoundingBox(left=new_left, top=top, width=width, height=height)
            self._create_cell_element(box, row[-1], f"row {row_index + 1}", outcome)

    def _create_cell_element(self, box: BoundingBox, reference: ElementRef,
                             unit: str, outcome: BatchOutcome):
        try:
            element = self.surface.create_textbox(box)
        except HostOperationFailure as e:
            outcome.fail(unit, e.message)
            return
        outcome.created.append(element)
        outcome.add('cells')
        for name in copy_element_style(reference, element):
            outcome.fail(f"{unit} {name}", "formatting not applied")

    def add_header_row(self, selection: Sequence[ElementRef]) -> BatchOutcome:
        """
        Add a header row above the selected tables or the selected grid.

        Tables get a native first row labelled "Header 1..n". A grid gets one
        label per top-row element, all with the height of the tallest label,
        plus one thin separator between the labels and the grid.

        Raises:
            PreconditionViolation: nothing suitable was selected
        """
        outcome = BatchOutcome()
        tables = tables_in(selection)
        if tables:
            for index, table_element in enumerate(tables, start=1):
                try:
                    self._add_header_to_table(TableHandle(table_element), outcome)
                    outcome.add('headers')
                except HostOperationFailure as e:
                    outcome.fail(f"table {index}", e.message)
            return outcome

        grid = self.detect_grid(selection)
        if grid is None:
            candidates = text_elements(selection)
            if len(candidates) != 1:
                raise PreconditionViolation(
                    "No header can be added: select a table or text elements arranged in a grid.")
            grid = Grid(rows=[candidates])
        self._add_header_to_grid(grid, outcome)
        if outcome.created:
            outcome.add('headers')
        return outcome

    def _add_header_to_table(self, table: TableHandle, outcome: BatchOutcome):
        table.insert_row(0)
        for column in range(table.column_count):
            unit = f"header cell {column + 1}"
            try:
                table.cell(0, column).text_frame.text = HEADER_LABEL.format(column + 1)
                for name in copy_cell_style(table.cell(1, column), table.cell(0, column)):
                    outcome.fail(f"{unit} {name}", "formatting not applied")
                outcome.add('cells')
            except (IndexError, ValueError, AttributeError) as e:
                outcome.fail(unit, str(e))

    def _add_header_to_grid(self, grid: Grid, outcome: BatchOutcome):
        top_row = grid.rows[0]
        grid_top = grid.row_min_top(0)
        font_size = self._reference_font_size(top_row[0])

        labels: List[ElementRef] = []
        for index, element in enumerate(top_row, start=1):
            text = HEADER_LABEL.format(index)
            try:
                label = self.surface.create_textbox(
                    BoundingBox(left=element.left, top=grid_top, width=element.width,
                                height=DEFAULT_ROW_HEIGHT), text)
                failed = ShapeFormatAccess(label.shape).apply(StyleSnapshot(
                    font_size=font_size, font_color=ColorValue(rgb=RGBColor(0, 0, 0)),
                    fill_visible=False, line_visible=False))
            except (HostOperationFailure, IndexError, ValueError) as e:
                outcome.fail(f"header label {index}", str(e))
                continue
            for name in failed:
                outcome.fail(f"header label {index} {name}", "formatting not applied")
            labels.append(label)

        if not labels:
            return

        height = max(estimate_text_height(label.text, font_size, label.width) for label in labels)
        header_top = grid_top - height - HEADER_GAP
        for label in labels:
            label.set_geometry(top=header_top, height=height)
        outcome.created.extend(labels)
        outcome.add('cells', len(labels))

        separator_y = (header_top + height + grid_top) / 2
        geometry = SeparatorGeometry(
            left=min(label.left for label in labels),
            right=max(label.right for label in labels),
            positions=[separator_y],
        )
        header_separators = SeparatorManager(
            self.surface, SeparatorRegistry(self.surface, HEADER_SEPARATOR_PREFIX))
        created, failures = header_separators.create(geometry, HEADER_SEPARATOR)
        outcome.add('separators', created)
        outcome.failures.extend(failures)
        logger.info("Added header row with %d label(s) at y=%.2f", len(labels), header_top)

    @staticmethod
    def _reference_font_size(element: ElementRef) -> float:
        size = ShapeFormatAccess(element.shape).capture().font_size
        return size or DEFAULT_FONT_SIZE

    def add_row_separators(self, selection: Sequence[ElementRef],
                           settings: SeparatorSettings) -> BatchOutcome:
        """
        Replace the row separators with one line per row gap

        Raises:
            PreconditionViolation: fewer than two rows were selected
        """
        geometry = self._separator_geometry(selection)
        if geometry is None or not geometry.positions:
            raise PreconditionViolation(
                "Row separators need a table or at least two text elements in two or more rows.")

        outcome = BatchOutcome()
        outcome.add('deleted', self.separators.delete_all())
        created, failures = self.separators.create(geometry, settings)
        outcome.add('separators', created)
        outcome.failures.extend(failures)
        return outcome

    def realign_row_separators(self, selection: Sequence[ElementRef]) -> BatchOutcome:
        """
        Move existing separators onto the current row gaps; no-op without separators

        Raises:
            GridDetectionFailure: separators exist but the selection has no grid
        """
        outcome = BatchOutcome()
        if not self.separators.registry.find():
            logger.info("No row separators to realign")
            outcome.add('separators', 0)
            return outcome

        geometry = self._separator_geometry(selection)
        if geometry is None:
            raise GridDetectionFailure("Row separators exist but the selection forms no grid.")
        moved, failures = self.separators.realign(geometry)
        outcome.add('separators', moved)
        outcome.failures.extend(failures)
        return outcome

    def delete_row_separators(self) -> BatchOutcome:
        outcome = BatchOutcome()
        outcome.add('deleted', self.separators.delete_all())
        return outcome

    def _separator_geometry(self, selection: Sequence[ElementRef]) -> Optional[SeparatorGeometry]:
        tables = tables_in(selection)
        if len(tables) == 1:
            return SeparatorGeometry.from_table(TableHandle(tables[0]))
        grid = self.detect_grid(selection)
        if grid is None:
            return None
        return SeparatorGeometry.from_grid(grid)

    def _realign_after_edit(self, elements: Sequence[ElementRef], outcome: BatchOutcome):
        if not self.separators.registry.find():
            return
        geometry = self._separator_geometry([e for e in elements if not e.is_released])
        if geometry is None:
            logger.warning("Row separators were not realigned: no grid detected")
            return
        moved, failures = self.separators.realign(geometry)
        outcome.add('separators', moved)
        outcome.failures.extend(failures)
