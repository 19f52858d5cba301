"""
This module contains the SlideSurface class, the only place that creates,
deletes and reorders shapes on a python-pptx slide.
"""
import copy
import logging
from contextlib import contextmanager
from typing import Iterable, List, Optional

from pptx.enum.shapes import MSO_CONNECTOR, MSO_SHAPE
from pptx.enum.text import MSO_AUTO_SIZE
from pptx.oxml.ns import qn

from .coordinate_converter import BoundingBox, CoordinateConverter
from .errors import HostOperationFailure
from .models import Cell, ElementRef, clear_text_keep_format

logger = logging.getLogger(__name__)

DEFAULT_ROW_HEIGHT = 35.0
DEFAULT_COLUMN_WIDTH = 120.0

_MERGE_ATTRIBUTES = ('rowSpan', 'gridSpan', 'vMerge', 'hMerge')


def _strip_ext_lists(element):
    """Remove a:extLst children that carry row/column ids which must stay unique"""
    for ext_list in element.findall(qn('a:extLst')):
        element.remove(ext_list)


def _clear_cell_text(tc):
    tx_body = tc.find(qn('a:txBody'))
    if tx_body is not None:
        clear_text_keep_format(tx_body)


def _unmerge(tc):
    for attribute in _MERGE_ATTRIBUTES:
        if attribute in tc.attrib:
            del tc.attrib[attribute]


class TableHandle:
    """Native table behind a graphic frame, addressed in points"""

    def __init__(self, element: ElementRef):
        if not element.traits.has_table:
            raise HostOperationFailure(f"Shape {element.shape_id} does not contain a table")
        self.element = element

    @property
    def table(self):
        return self.element.shape.table

    @property
    def _tbl(self):
        return self.table._tbl  # pylint: disable=protected-access

    @property
    def row_count(self) -> int:
        return len(self.table.rows)

    @property
    def column_count(self) -> int:
        return len(self.table.columns)

    @property
    def row_heights(self) -> List[float]:
        return [CoordinateConverter.emu_to_points(row.height) for row in self.table.rows]

    @property
    def column_widths(self) -> List[float]:
        return [CoordinateConverter.emu_to_points(column.width) for column in self.table.columns]

    @property
    def origin(self):
        return self.element.left, self.element.top

    def cell(self, row: int, column: int):
        """python-pptx cell at a 0-based (row, column)"""
        return self.table.cell(row, column)

    def set_row_height(self, row: int, height: float):
        self.table.rows[row].height = CoordinateConverter.points_to_emu(height)

    def set_column_width(self, column: int, width: float):
        self.table.columns[column].width = CoordinateConverter.points_to_emu(width)

    def cell_rectangles(self) -> List[Cell]:
        """
        Rectangles of every cell, row-major.

        Left/top are the cumulative sums of preceding column widths and row
        heights from the table origin.

        Returns:
            List of Cell in (row, column) enumeration order
        """
        origin_left, origin_top = self.origin
        widths = self.column_widths
        cells = []
        top = origin_top
        for row_index, height in enumerate(self.row_heights):
            left = origin_left
            for column_index, width in enumerate(widths):
                cells.append(Cell(row=row_index, column=column_index,
                                  left=left, top=top, width=width, height=height))
                left += width
            top += height
        return cells

    def row_boundaries(self) -> List[float]:
        """Y of every internal boundary between consecutive rows"""
        _, top = self.origin
        boundaries = []
        for height in self.row_heights[:-1]:
            top += height
            boundaries.append(top)
        return boundaries

    def sync_frame_size(self):
        """Resize the graphic frame to the sum of its rows and columns"""
        self.element.width = sum(self.column_widths)
        self.element.height = sum(self.row_heights)

    def add_row(self) -> int:
        """Append a row cloned from the last row, with empty text. Returns its index"""
        return self._clone_row(len(self._tbl.tr_lst) - 1, after=True)

    def insert_row(self, index: int = 0) -> int:
        """Insert a row before `index`, cloned from the row currently there"""
        return self._clone_row(index, after=False)

    def _clone_row(self, reference_index: int, after: bool) -> int:
        tr_list = self._tbl.tr_lst
        if not tr_list:
            raise HostOperationFailure("Table has no rows to clone")
        reference = tr_list[reference_index]
        new_tr = copy.deepcopy(reference)
        _strip_ext_lists(new_tr)
        for tc in new_tr.findall(qn('a:tc')):
            _unmerge(tc)
            _clear_cell_text(tc)
        if after:
            reference.addnext(new_tr)
            new_index = reference_index + 1
        else:
            reference.addprevious(new_tr)
            new_index = reference_index
        if not new_tr.get('h'):
            new_tr.set('h', str(int(CoordinateConverter.points_to_emu(DEFAULT_ROW_HEIGHT))))
        self.sync_frame_size()
        logger.debug("Inserted table row at index %d", new_index)
        return new_index

    def add_column(self) -> int:
        """Append a column cloned from the last column, with empty text. Returns its index"""
        grid_cols = self._tbl.tblGrid.gridCol_lst
        if not grid_cols:
            raise HostOperationFailure("Table has no columns to clone")
        new_col = copy.deepcopy(grid_cols[-1])
        _strip_ext_lists(new_col)
        if not new_col.get('w'):
            new_col.set('w', str(int(CoordinateConverter.points_to_emu(DEFAULT_COLUMN_WIDTH))))
        grid_cols[-1].addnext(new_col)

        for tr in self._tbl.tr_lst:
            cells = tr.findall(qn('a:tc'))
            new_tc = copy.deepcopy(cells[-1])
            _unmerge(new_tc)
            _clear_cell_text(new_tc)
            cells[-1].addnext(new_tc)

        self.sync_frame_size()
        new_index = len(grid_cols)
        logger.debug("Inserted table column at index %d", new_index)
        return new_index


class SlideSurface:
    """
    Host capability over one python-pptx slide.

    Components receive the surface at construction and never reach for a
    presentation or slide on their own. Every ElementRef handed out inside
    scope() is released when the scope exits.
    """

    def __init__(self, slide, selected_ids: Optional[Iterable[int]] = None):
        """
        Args:
            slide: python-pptx Slide to operate on
            selected_ids: Shape ids forming the selection, or None for every shape
        """
        self.slide = slide
        self.selected_ids = list(selected_ids) if selected_ids is not None else None
        self._scopes: List[List[ElementRef]] = []

    @property
    def shapes(self):
        return self.slide.shapes

    @contextmanager
    def scope(self):
        """Release every element acquired inside the block on all exit paths"""
        acquired: List[ElementRef] = []
        self._scopes.append(acquired)
        try:
            yield self
        finally:
            self._scopes.pop()
            for element in acquired:
                element.release()
            logger.debug("Released %d element handle(s)", len(acquired))

    def wrap(self, shape) -> ElementRef:
        element = ElementRef(shape)
        if self._scopes:
            self._scopes[-1].append(element)
        return element

    def get_selection(self) -> List[ElementRef]:
        """Selected shapes in selection order, or all slide shapes in z-order"""
        if self.selected_ids is None:
            return [self.wrap(shape) for shape in self.shapes]
        by_id = {shape.shape_id: shape for shape in self.shapes}
        missing = [shape_id for shape_id in self.selected_ids if shape_id not in by_id]
        if missing:
            logger.warning("Selected shape id(s) not found on slide: %s", missing)
        return [self.wrap(by_id[shape_id]) for shape_id in self.selected_ids if shape_id in by_id]

    def select(self, elements: Iterable[ElementRef]):
        """Replace the selection with the given elements"""
        self.selected_ids = [element.shape_id for element in elements]

    def find_by_id(self, shape_id: int) -> Optional[ElementRef]:
        for shape in self.shapes:
            if shape.shape_id == shape_id:
                return self.wrap(shape)
        return None

    def find_by_name_prefix(self, prefix: str) -> List[ElementRef]:
        return [self.wrap(shape) for shape in self.shapes if shape.name.startswith(prefix)]

    def create_textbox(self, box: BoundingBox, text: str = "") -> ElementRef:
        try:
            shape = self.shapes.add_textbox(*CoordinateConverter.box_to_emu(box))
            text_frame = shape.text_frame
            text_frame.word_wrap = True
            text_frame.auto_size = MSO_AUTO_SIZE.NONE
            if text:
                text_frame.text = text
        except (ValueError, TypeError, AttributeError) as e:
            raise HostOperationFailure(f"Could not create text box: {e}") from e
        return self.wrap(shape)

    def create_autoshape(self, box: BoundingBox, auto_shape_type=MSO_SHAPE.RECTANGLE) -> ElementRef:
        try:
            shape = self.shapes.add_shape(auto_shape_type, *CoordinateConverter.box_to_emu(box))
        except (ValueError, TypeError, KeyError) as e:
            raise HostOperationFailure(f"Could not create shape: {e}") from e
        return self.wrap(shape)

    def create_table(self, rows: int, columns: int, box: BoundingBox) -> TableHandle:
        if rows < 1 or columns < 1:
            raise HostOperationFailure(f"Cannot create a {rows}x{columns} table")
        try:
            frame = self.shapes.add_table(rows, columns, *CoordinateConverter.box_to_emu(box))
        except (ValueError, TypeError) as e:
            raise HostOperationFailure(f"Could not create table: {e}") from e
        return TableHandle(self.wrap(frame))

    def create_line(self, begin_x: float, begin_y: float, end_x: float, end_y: float) -> ElementRef:
        to_emu = CoordinateConverter.points_to_emu
        try:
            connector = self.shapes.add_connector(
                MSO_CONNECTOR.STRAIGHT, to_emu(begin_x), to_emu(begin_y), to_emu(end_x), to_emu(end_y)
            )
        except (ValueError, TypeError) as e:
            raise HostOperationFailure(f"Could not create line: {e}") from e
        return self.wrap(connector)

    def move_line(self, line: ElementRef, begin_x: float, begin_y: float, end_x: float, end_y: float):
        to_emu = CoordinateConverter.points_to_emu
        connector = line.shape
        connector.begin_x = to_emu(begin_x)
        connector.begin_y = to_emu(begin_y)
        connector.end_x = to_emu(end_x)
        connector.end_y = to_emu(end_y)

    def duplicate(self, element: ElementRef) -> ElementRef:
        """Copy a shape's XML directly above the original with a fresh shape id"""
        source = element.shape._element  # pylint: disable=protected-access
        clone = copy.deepcopy(source)
        new_id = self.shapes._next_shape_id  # pylint: disable=protected-access
        c_nv_pr = clone.find('.//' + qn('p:cNvPr'))
        if c_nv_pr is None:
            raise HostOperationFailure(f"Shape {element.shape_id} cannot be duplicated")
        c_nv_pr.set('id', str(new_id))
        c_nv_pr.set('name', f"{element.name} {new_id}")
        source.addnext(clone)
        duplicate = self.find_by_id(new_id)
        if duplicate is None:
            raise HostOperationFailure(f"Duplicate of shape {element.shape_id} was not found")
        return duplicate

    def delete(self, element: ElementRef):
        xml_element = element.shape._element  # pylint: disable=protected-access
        parent = xml_element.getparent()
        if parent is None:
            raise HostOperationFailure(f"Shape {element.shape_id} is not on the slide")
        parent.remove(xml_element)
        if self.selected_ids is not None and element.shape_id in self.selected_ids:
            self.selected_ids.remove(element.shape_id)
        element.release()

    def bring_to_front(self, element: ElementRef):
        xml_element = element.shape._element  # pylint: disable=protected-access
        sp_tree = self.shapes._spTree  # pylint: disable=protected-access
        sp_tree.remove(xml_element)
        sp_tree.insert_element_before(xml_element, 'p:extLst')
