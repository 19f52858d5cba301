"""
This module contains the MatrixLayoutEditor class: generating, splitting and
duplicating shapes on a lattice, equal spacing, size equalization, sizing
rows and columns to their text, and text frame margins.
"""
import logging
from typing import List, Optional, Sequence

from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_SHAPE
from pptx.util import Pt

from .coordinate_converter import BoundingBox, CoordinateConverter
from .errors import HostOperationFailure, PreconditionViolation
from .formatting import (
    DEFAULT_FONT_SIZE, CellFormatAccess, ShapeFormatAccess, copy_element_style, estimate_text_height,
    estimate_text_width,
)
from .grid_detection import GridClusterer
from .matrix_structure import tables_in, text_elements
from .models import (
    BatchOutcome, DuplicateSettings, ElementKind, ElementRef, Grid, MarginSettings,
    MatrixSettings, SplitSettings,
)
from .separators import SeparatorGeometry, SeparatorManager
from .surface import SlideSurface, TableHandle

logger = logging.getLogger(__name__)

DEFAULT_ORIGIN = (100.0, 100.0)
DEFAULT_GRID_SPACING = 5.0
MIN_COLUMN_WIDTH = 30.0
MIN_ROW_HEIGHT = 25.0
MAX_COLUMN_WIDTH = 200.0
DEFAULT_MARGINS = (7.2, 3.6, 7.2, 3.6)

cm = CoordinateConverter.cm_to_points


def _current_spacing(grid: Grid) -> float:
    """Gap between the first two elements of the first row"""
    first_row = grid.rows[0]
    if len(first_row) > 1:
        return first_row[1].left - first_row[0].right
    return DEFAULT_GRID_SPACING


def _fit_to_total(widths: List[float], total: float) -> List[float]:
    """Scale widths proportionally onto total; shrinking stops at the minimum column width"""
    scale = total / sum(widths)
    if scale >= 1:
        return [width * scale for width in widths]
    return [max(MIN_COLUMN_WIDTH, width * scale) for width in widths]


class MatrixLayoutEditor:
    """Lattice generation and size/spacing normalization of selections"""

    def __init__(self, surface: SlideSurface, clusterer: Optional[GridClusterer] = None,
                 separators: Optional[SeparatorManager] = None):
        self.surface = surface
        self.clusterer = clusterer or GridClusterer()
        self.separators = separators or SeparatorManager(surface)

    def generate_matrix(self, selection: Sequence[ElementRef], settings: MatrixSettings) -> BatchOutcome:
        """
        Create rows x columns white rectangles with a black outline

        The lattice starts at the first selected element, else at (100pt, 100pt).
        """
        outcome = BatchOutcome()
        left, top = DEFAULT_ORIGIN
        if selection:
            left, top = selection[0].left, selection[0].top

        width, height, spacing = cm(settings.cell_width), cm(settings.cell_height), cm(settings.spacing)
        for row in range(settings.rows):
            for column in range(settings.columns):
                box = BoundingBox(left=left + column * (width + spacing),
                                  top=top + row * (height + spacing),
                                  width=width, height=height)
                try:
                    rectangle = self.surface.create_autoshape(box, MSO_SHAPE.RECTANGLE)
                    rectangle.shape.fill.solid()
                    rectangle.shape.fill.fore_color.rgb = RGBColor(0xFF, 0xFF, 0xFF)
                    rectangle.shape.line.fill.solid()
                    rectangle.shape.line.color.rgb = RGBColor(0, 0, 0)
                    rectangle.shape.line.width = Pt(1.0)
                except HostOperationFailure as e:
                    outcome.fail(f"cell ({row + 1}, {column + 1})", e.message)
                    continue
                outcome.created.append(rectangle)
                outcome.add('cells')

        self.surface.select(outcome.created)
        logger.info("Generated %dx%d matrix with %d shape(s)",
                    settings.rows, settings.columns, len(outcome.created))
        return outcome

    def _create_similar(self, original: ElementRef, box: BoundingBox) -> ElementRef:
        kind = original.traits.kind
        if kind == ElementKind.AUTO_SHAPE:
            return self.surface.create_autoshape(box, original.traits.auto_shape_type)
        if kind == ElementKind.TEXT_BOX:
            return self.surface.create_textbox(box)
        if kind in (ElementKind.PICTURE, ElementKind.OTHER):
            duplicate = self.surface.duplicate(original)
            duplicate.set_geometry(box.left, box.top, box.width, box.height)
            return duplicate
        return self.surface.create_autoshape(box, MSO_SHAPE.RECTANGLE)

    def split_shape(self, selection: Sequence[ElementRef], settings: SplitSettings) -> BatchOutcome:
        """
        Replace one element by a rows x columns grid of similar elements.

        The parts keep the original's style and have no text. The original
        is deleted only once every part exists; if any part fails, the parts
        are removed and the original is left as it was.

        Raises:
            PreconditionViolation: not exactly one element selected, or the parts would be empty
            HostOperationFailure: a part could not be created
        """
        if len(selection) != 1:
            raise PreconditionViolation("Select exactly one shape to split.")
        original = selection[0]
        if original.traits.has_table or original.traits.is_line:
            raise PreconditionViolation("Tables and lines cannot be split.")

        spacing = cm(settings.spacing)
        part_width = (original.width - (settings.columns - 1) * spacing) / settings.columns
        part_height = (original.height - (settings.rows - 1) * spacing) / settings.rows
        if part_width <= 0 or part_height <= 0:
            raise PreconditionViolation("The spacing is too large for the selected shape.")

        outcome = BatchOutcome()
        try:
            for row in range(settings.rows):
                for column in range(settings.columns):
                    box = BoundingBox(left=original.left + column * (part_width + spacing),
                                      top=original.top + row * (part_height + spacing),
                                      width=part_width, height=part_height)
                    part = self._create_similar(original, box)
                    outcome.created.append(part)
                    for name in copy_element_style(original, part):
                        outcome.fail(f"part ({row + 1}, {column + 1}) {name}", "formatting not applied")
                    part.clear_text()
        except (HostOperationFailure, ValueError, KeyError) as e:
            logger.error("Split failed, removing %d part(s): %s", len(outcome.created), e)
            for part in outcome.created:
                if not part.is_released:
                    self.surface.delete(part)
            raise HostOperationFailure(f"Could not split the shape: {e}") from e

        self.surface.delete(original)
        outcome.add('cells', len(outcome.created))
        self.surface.select(outcome.created)
        logger.info("Split shape into %dx%d = %d shapes",
                    settings.rows, settings.columns, len(outcome.created))
        return outcome

    def duplicate_shape(self, selection: Sequence[ElementRef], settings: DuplicateSettings) -> BatchOutcome:
        """
        Copy one element onto a rows x columns lattice; the original stays at (1, 1)

        Raises:
            PreconditionViolation: not exactly one element selected
        """
        if len(selection) != 1:
            raise PreconditionViolation("Select exactly one shape to duplicate.")
        original = selection[0]
        spacing = cm(settings.spacing)

        outcome = BatchOutcome()
        for row in range(settings.rows):
            for column in range(settings.columns):
                if row == 0 and column == 0:
                    continue
                try:
                    duplicate = self.surface.duplicate(original)
                    duplicate.set_geometry(left=original.left + column * (original.width + spacing),
                                           top=original.top + row * (original.height + spacing))
                except HostOperationFailure as e:
                    outcome.fail(f"copy ({row + 1}, {column + 1})", e.message)
                    continue
                if not settings.include_text:
                    duplicate.clear_text()
                outcome.created.append(duplicate)
                outcome.add('cells')

        self.surface.select([original] + outcome.created)
        logger.info("Duplicated shape to %dx%d (%d new)",
                    settings.rows, settings.columns, len(outcome.created))
        return outcome

    def _require_grid(self, selection: Sequence[ElementRef]) -> Grid:
        candidates = [element for element in selection if not element.traits.is_line]
        grid = self.clusterer.cluster(candidates)
        if grid is None:
            raise PreconditionViolation("Select at least two shapes.")
        return grid

    def adjust_equal_spacing(self, selection: Sequence[ElementRef], spacing_cm: float) -> BatchOutcome:
        """
        Lay the selection out as rows with a uniform gap, keeping sizes.

        Raises:
            PreconditionViolation: fewer than two shapes, or a negative spacing
        """
        if spacing_cm < 0:
            raise PreconditionViolation("Spacing cannot be negative.")
        grid = self._require_grid(selection)
        spacing = cm(spacing_cm)
        left = min(element.left for element in grid.elements())
        top = min(element.top for element in grid.elements())

        outcome = BatchOutcome()
        for row in grid.rows:
            row_height = max(element.height for element in row)
            x = left
            for element in row:
                element.set_geometry(left=x, top=top)
                x += element.width + spacing
                outcome.add('elements')
            top += row_height + spacing
        logger.info("Spaced %d element(s) at %.2fcm", len(grid.elements()), spacing_cm)
        return outcome

    def _apply_dimensions(self, grid: Grid, column_widths: List[float],
                          row_heights: List[float], spacing: float, outcome: BatchOutcome):
        left, top = grid.top_left.left, grid.top_left.top
        for r, row in enumerate(grid.rows):
            x = left
            for c, element in enumerate(row):
                try:
                    element.set_geometry(x, top, column_widths[c], row_heights[r])
                    outcome.add('elements')
                except (HostOperationFailure, ValueError) as e:
                    outcome.fail(f"element {element.shape_id}", str(e))
                x += column_widths[c] + spacing
            top += row_heights[r] + spacing

    def _table_or_grid(self, selection: Sequence[ElementRef], what: str):
        tables = tables_in(selection)
        if tables:
            return [TableHandle(element) for element in tables], None
        candidates = text_elements(selection)
        grid = self.clusterer.cluster(candidates) if len(candidates) >= 2 else None
        if grid is None:
            raise PreconditionViolation(
                f"Nothing to {what}: select a table or text elements arranged in a grid.")
        return [], grid

    def equalize_column_widths(self, selection: Sequence[ElementRef]) -> BatchOutcome:
        """Give every column the same width, then drop row separators"""
        tables, grid = self._table_or_grid(selection, "equalize")
        outcome = BatchOutcome()
        for table in tables:
            widths = table.column_widths
            equal = sum(widths) / len(widths)
            for column in range(len(widths)):
                table.set_column_width(column, equal)
            table.sync_frame_size()
            outcome.add('columns', len(widths))
        if grid is not None:
            width = max(sum(e.width for e in grid.elements()) / len(grid.elements()), MIN_COLUMN_WIDTH)
            row_heights = [row[0].height for row in grid.rows]
            self._apply_dimensions(grid, [width] * grid.column_count, row_heights,
                                   _current_spacing(grid), outcome)
            outcome.add('columns', grid.column_count)
        outcome.add('deleted', self.separators.delete_all())
        return outcome

    def equalize_row_heights(self, selection: Sequence[ElementRef]) -> BatchOutcome:
        """Give every row the tallest height (at least 25pt), then drop row separators"""
        tables, grid = self._table_or_grid(selection, "equalize")
        outcome = BatchOutcome()
        for table in tables:
            height = max(max(table.row_heights), MIN_ROW_HEIGHT)
            for row in range(table.row_count):
                table.set_row_height(row, height)
            table.sync_frame_size()
            outcome.add('rows', table.row_count)
        if grid is not None:
            height = max(max(e.height for e in grid.elements()), MIN_ROW_HEIGHT)
            column_widths = [max(e.width for e in grid.column(c)) for c in range(grid.column_count)]
            self._apply_dimensions(grid, column_widths, [height] * grid.row_count,
                                   _current_spacing(grid), outcome)
            outcome.add('rows', grid.row_count)
        outcome.add('deleted', self.separators.delete_all())
        return outcome

    def fit_row_heights(self, selection: Sequence[ElementRef]) -> BatchOutcome:
        """Size every row to the estimated height of its longest text (at least 25pt)"""
        tables, grid = self._table_or_grid(selection, "fit")
        outcome = BatchOutcome()
        for table in tables:
            for row, height in enumerate(self._table_row_heights(table)):
                table.set_row_height(row, height)
            table.sync_frame_size()
            outcome.add('rows', table.row_count)
        if grid is not None:
            column_widths = [max(e.width for e in grid.column(c)) for c in range(grid.column_count)]
            self._apply_dimensions(grid, column_widths, self._grid_row_heights(grid, column_widths),
                                   _current_spacing(grid), outcome)
            outcome.add('rows', grid.row_count)
        self._realign_separators(tables, grid, outcome)
        return outcome

    def optimize_table(self, selection: Sequence[ElementRef]) -> BatchOutcome:
        """
        Size columns to their longest text line and rows to their wrapped text.

        The overall width is kept: the estimated column widths are scaled
        onto the current total (for a grid, the total less its gaps), and
        shrinking never takes a column below 30pt. Rows are then fitted to
        the new widths and existing row separators follow them.

        Raises:
            PreconditionViolation: neither a table nor a grid was selected
        """
        tables, grid = self._table_or_grid(selection, "optimize")
        outcome = BatchOutcome()
        for table in tables:
            required = [
                max(self._required_width(CellFormatAccess(table.cell(row, column)))
                    for row in range(table.row_count))
                for column in range(table.column_count)
            ]
            widths = _fit_to_total(required, sum(table.column_widths))
            for column, width in enumerate(widths):
                table.set_column_width(column, width)
            for row, height in enumerate(self._table_row_heights(table)):
                table.set_row_height(row, height)
            table.sync_frame_size()
            outcome.add('columns', table.column_count)
            outcome.add('rows', table.row_count)
        if grid is not None:
            spacing = _current_spacing(grid)
            required = [
                max(self._required_width(ShapeFormatAccess(e.shape)) for e in grid.column(c))
                for c in range(grid.column_count)
            ]
            available = grid.bounds().width - spacing * (grid.column_count - 1)
            widths = _fit_to_total(required, available if available > 0 else sum(required))
            self._apply_dimensions(grid, widths, self._grid_row_heights(grid, widths), spacing, outcome)
            outcome.add('columns', grid.column_count)
            outcome.add('rows', grid.row_count)
        self._realign_separators(tables, grid, outcome)
        logger.info("Optimized %d table(s)%s", len(tables), " and a grid" if grid is not None else "")
        return outcome

    def _table_row_heights(self, table: TableHandle) -> List[float]:
        widths = table.column_widths
        heights = []
        for row in range(table.row_count):
            required = MIN_ROW_HEIGHT
            for column, width in enumerate(widths):
                cell = table.cell(row, column)
                if cell.text_frame.text.strip():
                    required = max(required, self._required_height(CellFormatAccess(cell), width))
            heights.append(required)
        return heights

    def _grid_row_heights(self, grid: Grid, column_widths: List[float]) -> List[float]:
        return [
            max([MIN_ROW_HEIGHT] + [self._required_height(ShapeFormatAccess(e.shape), column_widths[c])
                                    for c, e in enumerate(row) if e.text.strip()])
            for row in grid.rows
        ]

    def _realign_separators(self, tables: List[TableHandle], grid: Optional[Grid],
                            outcome: BatchOutcome):
        if not self.separators.registry.find():
            return
        if grid is not None:
            geometry = SeparatorGeometry.from_grid(grid)
        elif len(tables) == 1:
            geometry = SeparatorGeometry.from_table(tables[0])
        else:
            logger.warning("Row separators were not realigned: %d tables selected", len(tables))
            return
        moved, failures = self.separators.realign(geometry)
        outcome.add('separators', moved)
        outcome.failures.extend(failures)

    @staticmethod
    def _required_height(access, width: float) -> float:
        snapshot = access.capture()
        text = access.text_frame().text
        left, top, right, bottom = snapshot.margins or DEFAULT_MARGINS
        return estimate_text_height(text, snapshot.font_size or DEFAULT_FONT_SIZE, width,
                                    margin_top=top, margin_bottom=bottom,
                                    margin_horizontal=left + right)

    @staticmethod
    def _required_width(access) -> float:
        text = access.text_frame().text.strip()
        if not text:
            return MIN_COLUMN_WIDTH
        snapshot = access.capture()
        left, _, right, _ = snapshot.margins or DEFAULT_MARGINS
        width = estimate_text_width(text, snapshot.font_size or DEFAULT_FONT_SIZE, left + right)
        return min(max(width, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH)

    def set_cell_margins(self, selection: Sequence[ElementRef], settings: MarginSettings) -> BatchOutcome:
        """
        Apply margins to every cell of the selected tables and to every text frame

        Raises:
            PreconditionViolation: no table or text frame was selected
        """
        margins = (cm(settings.left), cm(settings.top), cm(settings.right), cm(settings.bottom))
        outcome = BatchOutcome()
        for element in selection:
            if element.traits.has_table:
                table = TableHandle(element)
                for row in range(table.row_count):
                    for column in range(table.column_count):
                        CellFormatAccess(table.cell(row, column)).write_margins(margins)
                        outcome.add('cells')
            elif element.traits.has_text_frame:
                ShapeFormatAccess(element.shape).write_margins(margins)
                outcome.add('elements')
        if not outcome.counts:
            raise PreconditionViolation("Select a table or shapes with text to set margins.")
        logger.info("Set margins L%.2f T%.2f R%.2f B%.2f cm", settings.left, settings.top,
                    settings.right, settings.bottom)
        return outcome
