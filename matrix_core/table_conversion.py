"""
This module contains the GridTableConverter class for converting native
tables into loose text boxes and loose grids back into native tables.
"""
import logging
import traceback
from typing import List, Sequence, Tuple

from .coordinate_converter import BoundingBox
from .errors import GridDetectionFailure, HostOperationFailure, PartialFailure
from .formatting import CellFormatAccess, ShapeFormatAccess
from .models import ElementRef, Grid
from .surface import SlideSurface, TableHandle

logger = logging.getLogger(__name__)


class GridTableConverter:
    """Converts between native tables and grids of independent elements"""

    def __init__(self, surface: SlideSurface, spacing: float = 0.0):
        """
        Initialize the converter

        Args:
            surface: Slide the conversions read from and write to
            spacing: Gap in points between converted elements
        """
        self.surface = surface
        self.spacing = spacing

    def table_to_elements(self, table_element: ElementRef) -> List[ElementRef]:
        """
        Replace one table by one text box per cell.

        The table is deleted only after every cell was converted. If any
        cell or the final delete fails, the text boxes created for this
        table are removed and the table is left untouched.

        Args:
            table_element: Graphic frame holding the table

        Returns:
            Created elements in row-major order

        Raises:
            HostOperationFailure: conversion of this table failed
        """
        table = TableHandle(table_element)
        origin_left, origin_top = table.origin
        logger.info("Converting %dx%d table %s to elements",
                    table.row_count, table.column_count, table_element.name)

        created: List[ElementRef] = []
        try:
            rows: List[List[ElementRef]] = []
            for cell in table.cell_rectangles():
                element = self.surface.create_textbox(cell.box)
                created.append(element)
                self._copy_cell_to_element(table.cell(cell.row, cell.column), element)
                if cell.column == 0:
                    rows.append([])
                rows[-1].append(element)

            self._normalize_rows(rows, origin_left, origin_top)
            self.surface.delete(table_element)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Table conversion failed, removing %d created element(s): %s",
                         len(created), e)
            self._rollback(created)
            raise HostOperationFailure(f"Could not convert table {table_element.name}: {e}") from e

        logger.info("Created %d element(s) from table", len(created))
        return created

    def convert_tables_to_elements(
            self, tables: Sequence[ElementRef]) -> Tuple[List[ElementRef], List[PartialFailure]]:
        """
        Convert several tables, each one independently

        Returns:
            Tuple of (all created elements, failures of tables that were skipped)
        """
        created: List[ElementRef] = []
        failures: List[PartialFailure] = []
        for index, table_element in enumerate(tables, start=1):
            try:
                created.extend(self.table_to_elements(table_element))
            except HostOperationFailure as e:
                logger.warning("Skipping table %d: %s", index, e.message)
                failures.append(PartialFailure(unit=f"table {index}", reason=e.message))
        return created, failures

    def elements_to_table(self, grid: Grid) -> Tuple[TableHandle, List[PartialFailure]]:
        """
        Replace a rectangular grid by a native table covering the same area.

        Column widths and row heights keep the proportions of the grid's
        widest column members and tallest row members. Cells are filled
        best-effort; the source elements are deleted after the copy loop.

        Args:
            grid: Rectangular grid of elements

        Returns:
            Tuple of (created table, per-cell failures)

        Raises:
            GridDetectionFailure: the grid is jagged
            HostOperationFailure: the table could not be created
        """
        if not grid.is_rectangular:
            raise GridDetectionFailure(
                f"Selection does not form a rectangular grid "
                f"({grid.row_count} rows, column counts differ by {grid.column_count_variance})")

        top_left = grid.top_left
        bottom_right = grid.bottom_right
        bounds = BoundingBox(left=top_left.left, top=top_left.top,
                             width=bottom_right.right - top_left.left,
                             height=bottom_right.bottom - top_left.top)
        if bounds.width <= 0 or bounds.height <= 0:
            raise GridDetectionFailure("Grid has no usable extent")

        column_widths = [max(element.width for element in grid.column(c))
                         for c in range(grid.column_count)]
        row_heights = [max(element.height for element in row) for row in grid.rows]
        scale_x = bounds.width / sum(column_widths)
        scale_y = bounds.height / sum(row_heights)

        table = self.surface.create_table(grid.row_count, grid.column_count, bounds)
        for column_index, width in enumerate(column_widths):
            table.set_column_width(column_index, width * scale_x)
        for row_index, height in enumerate(row_heights):
            table.set_row_height(row_index, height * scale_y)
        table.sync_frame_size()

        failures: List[PartialFailure] = []
        for row_index, row in enumerate(grid.rows):
            for column_index, element in enumerate(row):
                unit = f"cell ({row_index + 1}, {column_index + 1})"
                try:
                    failed = self._copy_element_to_cell(element, table.cell(row_index, column_index))
                    failures.extend(PartialFailure(unit=f"{unit} {name}", reason="formatting not applied")
                                    for name in failed)
                except Exception as e:  # pylint: disable=broad-exception-caught
                    logger.warning("Could not copy %s: %s", unit, e)
                    failures.append(PartialFailure(unit=unit, reason=str(e)))

        for element in grid.elements():
            try:
                self.surface.delete(element)
            except HostOperationFailure as e:
                logger.warning("Could not delete source element: %s", e.message)
                failures.append(PartialFailure(unit=f"element {element.shape_id}", reason=e.message))

        logger.info("Created %dx%d table from grid with %d failure(s)",
                    grid.row_count, grid.column_count, len(failures))
        return table, failures

    def _copy_cell_to_element(self, cell, element: ElementRef):
        text = cell.text_frame.text
        element.text = text
        snapshot = CellFormatAccess(cell).capture()
        ShapeFormatAccess(element.shape).apply(snapshot, include_text_format=bool(text.strip()))

    def _copy_element_to_cell(self, element: ElementRef, cell) -> List[str]:
        text = element.text
        cell.text_frame.text = text
        snapshot = ShapeFormatAccess(element.shape).capture()
        return CellFormatAccess(cell).apply(snapshot, include_text_format=bool(text.strip()))

    def _normalize_rows(self, rows: List[List[ElementRef]], left: float, top: float):
        """Give every row its tallest height and lay elements out edge to edge"""
        for row in rows:
            row_height = max(element.height for element in row)
            x = left
            for element in row:
                element.set_geometry(left=x, top=top, height=row_height)
                x += element.width + self.spacing
            top += row_height + self.spacing

    def _rollback(self, created: List[ElementRef]):
        for element in created:
            if element.is_released:
                continue
            try:
                self.surface.delete(element)
            except HostOperationFailure:
                logger.error(traceback.format_exc())
