"""
This module contains the CellAssignmentEngine class, which snaps free
floating elements onto the cells of a table or grid.
"""
import logging
from typing import Dict, List, Sequence, Tuple

from pptx.enum.shapes import MSO_SHAPE, PP_PLACEHOLDER

from .errors import HostOperationFailure, PartialFailure
from .models import Cell, ElementKind, ElementRef, Grid
from .surface import SlideSurface, TableHandle

logger = logging.getLogger(__name__)

RECTANGLE_SHAPES = (
    MSO_SHAPE.RECTANGLE,
    MSO_SHAPE.ROUNDED_RECTANGLE,
    MSO_SHAPE.SNIP_1_RECTANGLE,
    MSO_SHAPE.ROUND_1_RECTANGLE,
)
BODY_PLACEHOLDERS = (PP_PLACEHOLDER.BODY, PP_PLACEHOLDER.OBJECT)


def is_cell_source(element: ElementRef) -> bool:
    """Tables, text boxes, rectangle-like shapes and body placeholders define cells"""
    traits = element.traits
    if traits.kind in (ElementKind.TABLE, ElementKind.TEXT_BOX):
        return True
    if traits.kind == ElementKind.AUTO_SHAPE:
        return traits.auto_shape_type in RECTANGLE_SHAPES
    if traits.kind == ElementKind.PLACEHOLDER:
        return traits.placeholder_type in BODY_PLACEHOLDERS
    return False


def split_selection(elements: Sequence[ElementRef]) -> Tuple[List[ElementRef], List[ElementRef]]:
    """
    Split a selection into (matrix elements, targets). Lines are ignored.
    """
    matrix_elements: List[ElementRef] = []
    targets: List[ElementRef] = []
    for element in elements:
        if element.traits.is_line:
            continue
        if is_cell_source(element):
            matrix_elements.append(element)
        else:
            targets.append(element)
    return matrix_elements, targets


def cells_from_table(table: TableHandle) -> List[Cell]:
    return table.cell_rectangles()


def cells_from_grid(grid: Grid) -> List[Cell]:
    return [
        Cell.from_element(row_index, column_index, element)
        for row_index, row in enumerate(grid.rows)
        for column_index, element in enumerate(row)
    ]


class CellAssignmentEngine:
    """Maps targets onto cells by the position of their center point"""

    def __init__(self, surface: SlideSurface):
        self.surface = surface

    def assign(self, targets: Sequence[ElementRef],
               cells: Sequence[Cell]) -> Dict[Cell, List[ElementRef]]:
        """
        Assign each target to the first cell, in enumeration order, whose
        rectangle contains the target's center. Bounds are inclusive, so a
        center on a shared edge goes to the earlier cell.

        Args:
            targets: Elements to place
            cells: Candidate cells in enumeration order

        Returns:
            Mapping of cell to assigned targets; cells without targets are omitted
        """
        mapping: Dict[Cell, List[ElementRef]] = {}
        for target in targets:
            center_x, center_y = target.center_x, target.center_y
            cell = next((c for c in cells if c.contains(center_x, center_y)), None)
            if cell is None:
                logger.info("No cell contains the center (%.2f, %.2f) of %s, skipping",
                            center_x, center_y, target.name)
                continue
            mapping.setdefault(cell, []).append(target)
        logger.debug("Assigned %d target(s) to %d cell(s)",
                     sum(len(v) for v in mapping.values()), len(mapping))
        return mapping

    def align_to_cells(self, mapping: Dict[Cell, List[ElementRef]]) -> Tuple[int, List[PartialFailure]]:
        """
        Center every assigned target in its cell and raise it to the front

        Returns:
            Tuple of (aligned count, failures)
        """
        aligned = 0
        failures: List[PartialFailure] = []
        for cell, targets in mapping.items():
            for target in targets:
                try:
                    target.set_geometry(
                        left=cell.center_x - target.width / 2,
                        top=cell.center_y - target.height / 2,
                    )
                    self.surface.bring_to_front(target)
                    aligned += 1
                except (HostOperationFailure, ValueError) as e:
                    logger.warning("Could not align %s to cell (%d, %d): %s",
                                   target.shape_id, cell.row, cell.column, e)
                    failures.append(PartialFailure(
                        unit=f"element {target.shape_id}", reason=str(e)))
        return aligned, failures
