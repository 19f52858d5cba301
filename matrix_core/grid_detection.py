"""
This module contains the GridClusterer class, which groups loose elements
into rows and columns, and the matrix layout detection built on top of it.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .coordinate_converter import Axis
from .models import Grid, ElementRef, ElementKind
from .surface import TableHandle
from .tolerance import ToleranceCalculator

logger = logging.getLogger(__name__)

MATRIX_KINDS = (ElementKind.TEXT_BOX, ElementKind.AUTO_SHAPE, ElementKind.PLACEHOLDER)
MAX_ROTATION = 1.0


class _RowCluster:
    """Row under construction with the running average of its members' tops"""

    def __init__(self, element: ElementRef):
        self.members = [element]
        self.average_top = element.top

    def add(self, element: ElementRef):
        self.members.append(element)
        self.average_top += (element.top - self.average_top) / len(self.members)


class GridClusterer:
    """Groups positioned elements into rows sorted top-to-bottom and left-to-right"""

    def __init__(self, tolerance_calculator: Optional[ToleranceCalculator] = None):
        self.tolerance_calculator = tolerance_calculator or ToleranceCalculator()

    def cluster(self, elements: Sequence[ElementRef]) -> Optional[Grid]:
        """
        Cluster elements into a grid by their top coordinate.

        Each element joins the first row whose running average top lies
        within tolerance; otherwise it starts a new row. Whether a jagged
        result is acceptable is left to the caller.

        Args:
            elements: Unrotated rectangular elements in any order

        Returns:
            Grid, or None when fewer than 2 elements are given
        """
        if len(elements) < 2:
            logger.debug("Grid detection needs at least 2 elements, got %d", len(elements))
            return None

        tolerance = self.tolerance_calculator.calculate(elements, Axis.ROW)
        ordered = sorted(elements, key=lambda element: (element.top, element.left))

        clusters: List[_RowCluster] = []
        for element in ordered:
            for cluster in clusters:
                if abs(element.top - cluster.average_top) <= tolerance:
                    cluster.add(element)
                    break
            else:
                clusters.append(_RowCluster(element))

        rows = [sorted(cluster.members, key=lambda element: element.left) for cluster in clusters]
        grid = Grid(rows=rows)
        logger.info("Detected grid: %d row(s) x %d column(s), rectangular=%s",
                    grid.row_count, grid.column_count, grid.is_rectangular)
        return grid


@dataclass
class MatrixLayout:
    """Resolved matrix: a native table or a grid of loose elements"""
    rows: int
    columns: int
    table: Optional[TableHandle] = None
    grid: Optional[Grid] = None

    @property
    def is_table(self) -> bool:
        return self.table is not None


def is_matrix_candidate(element: ElementRef) -> bool:
    """Unrotated text boxes, autoshapes and placeholders take part in grids"""
    return (element.traits.kind in MATRIX_KINDS
            and abs(element.traits.rotation) <= MAX_ROTATION)


def detect_matrix_layout(elements: Sequence[ElementRef],
                         clusterer: Optional[GridClusterer] = None) -> Optional[MatrixLayout]:
    """
    Resolve a selection into a matrix layout.

    A single selected table is used as is. Otherwise unrotated matrix
    candidates are clustered into a grid.

    Returns:
        MatrixLayout, or None when nothing usable was found
    """
    tables = [element for element in elements if element.traits.has_table]
    if len(tables) == 1 and len(elements) == 1:
        table = TableHandle(tables[0])
        logger.info("Matrix layout is a %dx%d table", table.row_count, table.column_count)
        return MatrixLayout(rows=table.row_count, columns=table.column_count, table=table)

    candidates = [element for element in elements if is_matrix_candidate(element)]
    grid = (clusterer or GridClusterer()).cluster(candidates)
    if grid is None:
        return None
    return MatrixLayout(rows=grid.row_count, columns=grid.column_count, grid=grid)
