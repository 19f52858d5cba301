"""
Data models for matrix layout operations.

This module contains the element wrapper used by every algorithm, the grid and
cell structures derived from a selection, geometry snapshots for the
interactive tuner, the settings value objects built from job parameters and
the operation result reported back to callers.
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pptx.dml.color import RGBColor
from pptx.enum.dml import MSO_LINE_DASH_STYLE
from pptx.enum.shapes import MSO_SHAPE_TYPE
from pptx.oxml.ns import qn

from .coordinate_converter import BoundingBox, CoordinateConverter
from .errors import HostOperationFailure, PartialFailure, PreconditionViolation

logger = logging.getLogger(__name__)

_TEXT_CONTENT_TAGS = (qn('a:r'), qn('a:br'), qn('a:fld'))


def clear_text_keep_format(tx_body):
    """
    Remove all text from a txBody but keep its formatting.

    Extra paragraphs are dropped. The first paragraph keeps its pPr, and the
    character properties of its first run survive as endParaRPr so text
    typed later picks them up.
    """
    paragraphs = tx_body.findall(qn('a:p'))
    for extra in paragraphs[1:]:
        tx_body.remove(extra)
    if not paragraphs:
        return
    paragraph = paragraphs[0]
    run_properties = paragraph.find(f"{qn('a:r')}/{qn('a:rPr')}")
    for child in list(paragraph):
        if child.tag in _TEXT_CONTENT_TAGS:
            paragraph.remove(child)
    if run_properties is not None and paragraph.find(qn('a:endParaRPr')) is None:
        end_properties = copy.deepcopy(run_properties)
        end_properties.tag = qn('a:endParaRPr')
        paragraph.append(end_properties)


class ElementKind(Enum):
    """Closed set of element kinds the engine distinguishes"""
    TABLE = "table"
    TEXT_BOX = "text_box"
    AUTO_SHAPE = "auto_shape"
    PLACEHOLDER = "placeholder"
    PICTURE = "picture"
    LINE = "line"
    OTHER = "other"


@dataclass(frozen=True)
class ElementTraits:
    """Capabilities of a shape, resolved once when the shape is wrapped"""
    kind: ElementKind
    has_table: bool = False
    has_text_frame: bool = False
    is_line: bool = False
    placeholder_type: Any = None
    auto_shape_type: Any = None
    rotation: float = 0.0

    @classmethod
    def resolve(cls, shape) -> 'ElementTraits':
        """Inspect a python-pptx shape and build its traits"""
        shape_type = _safe_shape_type(shape)
        has_table = bool(getattr(shape, 'has_table', False))
        has_text_frame = bool(getattr(shape, 'has_text_frame', False))
        is_line = shape_type == MSO_SHAPE_TYPE.LINE

        placeholder_type = None
        if getattr(shape, 'is_placeholder', False):
            placeholder_type = shape.placeholder_format.type

        auto_shape_type = None
        if shape_type == MSO_SHAPE_TYPE.AUTO_SHAPE:
            auto_shape_type = shape.auto_shape_type

        if has_table:
            kind = ElementKind.TABLE
        elif is_line:
            kind = ElementKind.LINE
        elif placeholder_type is not None:
            kind = ElementKind.PLACEHOLDER
        elif shape_type == MSO_SHAPE_TYPE.TEXT_BOX:
            kind = ElementKind.TEXT_BOX
        elif shape_type == MSO_SHAPE_TYPE.AUTO_SHAPE:
            kind = ElementKind.AUTO_SHAPE
        elif shape_type == MSO_SHAPE_TYPE.PICTURE:
            kind = ElementKind.PICTURE
        else:
            kind = ElementKind.OTHER

        return cls(
            kind=kind,
            has_table=has_table,
            has_text_frame=has_text_frame,
            is_line=is_line,
            placeholder_type=placeholder_type,
            auto_shape_type=auto_shape_type,
            rotation=_safe_rotation(shape),
        )


def _safe_shape_type(shape):
    try:
        return shape.shape_type
    except NotImplementedError:
        # python-pptx raises for graphic frames it cannot classify
        return None


def _safe_rotation(shape) -> float:
    try:
        return float(shape.rotation or 0.0)
    except AttributeError:
        return 0.0


class ElementRef:
    """
    Transient reference to a shape on a slide.

    Geometry is read from and written to the live shape in points. The engine
    never owns the shape; release() drops the handle and any later access
    raises HostOperationFailure.
    """

    def __init__(self, shape):
        self._shape = shape
        self.traits = ElementTraits.resolve(shape)
        self.shape_id = shape.shape_id

    @property
    def shape(self):
        if self._shape is None:
            raise HostOperationFailure(f"Element {self.shape_id} was already released")
        return self._shape

    @property
    def is_released(self) -> bool:
        return self._shape is None

    def release(self):
        self._shape = None

    @property
    def name(self) -> str:
        return self.shape.name

    @name.setter
    def name(self, value: str):
        self.shape.name = value

    @property
    def left(self) -> float:
        return CoordinateConverter.emu_to_points(self.shape.left)

    @left.setter
    def left(self, value: float):
        self.shape.left = CoordinateConverter.points_to_emu(value)

    @property
    def top(self) -> float:
        return CoordinateConverter.emu_to_points(self.shape.top)

    @top.setter
    def top(self, value: float):
        self.shape.top = CoordinateConverter.points_to_emu(value)

    @property
    def width(self) -> float:
        return CoordinateConverter.emu_to_points(self.shape.width)

    @width.setter
    def width(self, value: float):
        self.shape.width = CoordinateConverter.points_to_emu(max(value, 0.0))

    @property
    def height(self) -> float:
        return CoordinateConverter.emu_to_points(self.shape.height)

    @height.setter
    def height(self, value: float):
        self.shape.height = CoordinateConverter.points_to_emu(max(value, 0.0))

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center_x(self) -> float:
        return self.left + self.width / 2

    @property
    def center_y(self) -> float:
        return self.top + self.height / 2

    def box(self) -> BoundingBox:
        return BoundingBox(left=self.left, top=self.top, width=self.width, height=self.height)

    def set_geometry(self, left: Optional[float] = None, top: Optional[float] = None,
                     width: Optional[float] = None, height: Optional[float] = None):
        """Write any subset of left/top/width/height in points"""
        if left is not None:
            self.left = left
        if top is not None:
            self.top = top
        if width is not None:
            self.width = width
        if height is not None:
            self.height = height

    @property
    def text(self) -> str:
        if not self.traits.has_text_frame:
            return ""
        return self.shape.text_frame.text

    @text.setter
    def text(self, value: str):
        if self.traits.has_text_frame:
            self.shape.text_frame.text = value or ""

    def clear_text(self):
        """Empty the text frame, keeping paragraph and character formatting"""
        if self.traits.has_text_frame:
            clear_text_keep_format(self.shape.text_frame._txBody)  # pylint: disable=protected-access

    def __eq__(self, other):
        return isinstance(other, ElementRef) and other.shape_id == self.shape_id

    def __hash__(self):
        return hash(self.shape_id)

    def __repr__(self):
        if self.is_released:
            return f"ElementRef(id={self.shape_id}, released)"
        return (f"ElementRef(id={self.shape_id}, kind={self.traits.kind.value}, "
                f"left={self.left:.2f}, top={self.top:.2f}, "
                f"width={self.width:.2f}, height={self.height:.2f})")


@dataclass
class Grid:
    """Rows of elements ordered top-to-bottom, each ordered left-to-right"""
    rows: List[List[ElementRef]]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return max((len(row) for row in self.rows), default=0)

    @property
    def is_rectangular(self) -> bool:
        return all(len(row) == self.column_count for row in self.rows)

    @property
    def column_count_variance(self) -> int:
        """Difference between the longest and the shortest row"""
        lengths = [len(row) for row in self.rows]
        return max(lengths) - min(lengths) if lengths else 0

    @property
    def top_left(self) -> ElementRef:
        return self.rows[0][0]

    @property
    def bottom_right(self) -> ElementRef:
        return self.rows[-1][-1]

    def elements(self) -> List[ElementRef]:
        return [element for row in self.rows for element in row]

    def column(self, index: int) -> List[ElementRef]:
        """Elements at a column position, skipping rows that are too short"""
        return [row[index] for row in self.rows if index < len(row)]

    def bounds(self) -> BoundingBox:
        return BoundingBox.enclosing(element.box() for element in self.elements())

    def row_max_bottom(self, index: int) -> float:
        return max(element.bottom for element in self.rows[index])

    def row_min_top(self, index: int) -> float:
        return min(element.top for element in self.rows[index])

    def row_gap_midpoints(self) -> List[float]:
        """Y of the midpoint of every gap between consecutive rows"""
        return [
            (self.row_max_bottom(i) + self.row_min_top(i + 1)) / 2
            for i in range(self.row_count - 1)
        ]


@dataclass(frozen=True)
class Cell:
    """Logical (row, column) position plus its rectangle in points"""
    row: int
    column: int
    left: float
    top: float
    width: float
    height: float

    @property
    def box(self) -> BoundingBox:
        return BoundingBox(left=self.left, top=self.top, width=self.width, height=self.height)

    @property
    def center_x(self) -> float:
        return self.left + self.width / 2

    @property
    def center_y(self) -> float:
        return self.top + self.height / 2

    def contains(self, x: float, y: float) -> bool:
        return self.box.contains(x, y)

    @classmethod
    def from_element(cls, row: int, column: int, element: ElementRef) -> 'Cell':
        return cls(row=row, column=column, left=element.left, top=element.top,
                   width=element.width, height=element.height)


@dataclass(frozen=True)
class GeometrySnapshot:
    """Left/top/width/height of one element at a point in time"""
    left: float
    top: float
    width: float
    height: float

    @classmethod
    def capture(cls, element: ElementRef) -> 'GeometrySnapshot':
        return cls(left=element.left, top=element.top,
                   width=element.width, height=element.height)

    def restore(self, element: ElementRef):
        element.set_geometry(self.left, self.top, self.width, self.height)


def _int_param(params: Dict[str, Any], key: str, default: int,
               minimum: int, maximum: int) -> int:
    value = params.get(key, default)
    try:
        value = int(value)
    except (TypeError, ValueError) as e:
        raise PreconditionViolation(f"'{key}' must be an integer, got {value!r}") from e
    if not minimum <= value <= maximum:
        raise PreconditionViolation(f"'{key}' must be between {minimum} and {maximum}, got {value}")
    return value


def _float_param(params: Dict[str, Any], key: str, default: float,
                 minimum: float, maximum: float) -> float:
    value = params.get(key, default)
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise PreconditionViolation(f"'{key}' must be a number, got {value!r}") from e
    if not minimum <= value <= maximum:
        raise PreconditionViolation(f"'{key}' must be between {minimum} and {maximum}, got {value}")
    return value


@dataclass(frozen=True)
class MatrixSettings:
    """Settings for generating a matrix of rectangles (sizes in cm)"""
    rows: int = 2
    columns: int = 2
    cell_width: float = 3.0
    cell_height: float = 1.0
    spacing: float = 0.2

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]]) -> 'MatrixSettings':
        params = params or {}
        return cls(
            rows=_int_param(params, 'rows', cls.rows, 1, 20),
            columns=_int_param(params, 'columns', cls.columns, 1, 20),
            cell_width=_float_param(params, 'cellWidth', cls.cell_width, 0.01, 50.0),
            cell_height=_float_param(params, 'cellHeight', cls.cell_height, 0.01, 50.0),
            spacing=_float_param(params, 'spacing', cls.spacing, 0.0, 10.0),
        )


@dataclass(frozen=True)
class SplitSettings:
    """Settings for splitting one shape into a grid (spacing in cm)"""
    rows: int = 3
    columns: int = 3
    spacing: float = 0.1

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]]) -> 'SplitSettings':
        params = params or {}
        return cls(
            rows=_int_param(params, 'rows', cls.rows, 1, 30),
            columns=_int_param(params, 'columns', cls.columns, 1, 30),
            spacing=_float_param(params, 'spacing', cls.spacing, 0.0, 10.0),
        )


@dataclass(frozen=True)
class DuplicateSettings:
    """Settings for duplicating one shape onto a grid (spacing in cm)"""
    rows: int = 3
    columns: int = 3
    spacing: float = 0.1
    include_text: bool = True

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]]) -> 'DuplicateSettings':
        params = params or {}
        return cls(
            rows=_int_param(params, 'rows', cls.rows, 1, 30),
            columns=_int_param(params, 'columns', cls.columns, 1, 30),
            spacing=_float_param(params, 'spacing', cls.spacing, 0.0, 10.0),
            include_text=bool(params.get('includeText', cls.include_text)),
        )


@dataclass(frozen=True)
class SpacingSettings:
    """Uniform gap between elements in cm"""
    spacing: float = 0.2

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]]) -> 'SpacingSettings':
        params = params or {}
        return cls(spacing=_float_param(params, 'spacing', cls.spacing, 0.0, 10.0))


@dataclass(frozen=True)
class MarginSettings:
    """Text frame margins in cm"""
    top: float = 0.13
    bottom: float = 0.13
    left: float = 0.25
    right: float = 0.25

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]]) -> 'MarginSettings':
        params = params or {}
        return cls(
            top=_float_param(params, 'marginTop', cls.top, 0.0, 5.0),
            bottom=_float_param(params, 'marginBottom', cls.bottom, 0.0, 5.0),
            left=_float_param(params, 'marginLeft', cls.left, 0.0, 5.0),
            right=_float_param(params, 'marginRight', cls.right, 0.0, 5.0),
        )


DASH_STYLES = {
    'solid': MSO_LINE_DASH_STYLE.SOLID,
    'squareDot': MSO_LINE_DASH_STYLE.SQUARE_DOT,
    'roundDot': MSO_LINE_DASH_STYLE.ROUND_DOT,
    'dash': MSO_LINE_DASH_STYLE.DASH,
    'dashDot': MSO_LINE_DASH_STYLE.DASH_DOT,
    'longDash': MSO_LINE_DASH_STYLE.LONG_DASH,
    'longDashDot': MSO_LINE_DASH_STYLE.LONG_DASH_DOT,
}


@dataclass(frozen=True)
class SeparatorSettings:
    """Line style used for row separators (weight in points)"""
    dash_style: Any = MSO_LINE_DASH_STYLE.SOLID
    weight: float = 1.0
    color: RGBColor = RGBColor(0, 0, 0)

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]]) -> 'SeparatorSettings':
        params = params or {}
        dash_name = params.get('dashStyle', 'solid')
        if dash_name not in DASH_STYLES:
            raise PreconditionViolation(
                f"'dashStyle' must be one of {', '.join(DASH_STYLES)}, got {dash_name!r}")
        color_hex = str(params.get('color', '000000')).lstrip('#')
        try:
            color = RGBColor.from_string(color_hex)
        except ValueError as e:
            raise PreconditionViolation(f"'color' must be a hex RGB value, got {color_hex!r}") from e
        return cls(
            dash_style=DASH_STYLES[dash_name],
            weight=_float_param(params, 'weight', cls.weight, 0.25, 6.0),
            color=color,
        )


TUNER_SELECTIONS = ('all', 'none', 'odd', 'even', 'edge')
TUNER_ACTIONS = ('commit', 'reset', 'cancel')


@dataclass(frozen=True)
class TunerSettings:
    """One scripted step of a tuner session (size delta in pt, spacing in cm)"""
    mode: str = 'row'
    selection: Any = 'none'
    size_delta: float = 0.0
    spacing: Optional[float] = None
    action: str = 'commit'

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]]) -> 'TunerSettings':
        params = params or {}
        mode = params.get('mode', cls.mode)
        if mode not in ('row', 'column'):
            raise PreconditionViolation(f"'mode' must be 'row' or 'column', got {mode!r}")

        selection = params.get('select', cls.selection)
        if isinstance(selection, (list, tuple)):
            try:
                selection = tuple(int(index) for index in selection)
            except (TypeError, ValueError) as e:
                raise PreconditionViolation("'select' must list 1-based row or column numbers") from e
        elif selection not in TUNER_SELECTIONS:
            raise PreconditionViolation(
                f"'select' must be one of {', '.join(TUNER_SELECTIONS)} or a list, got {selection!r}")

        action = params.get('action', cls.action)
        if action not in TUNER_ACTIONS:
            raise PreconditionViolation(
                f"'action' must be one of {', '.join(TUNER_ACTIONS)}, got {action!r}")

        spacing = None
        if params.get('spacing') is not None:
            spacing = _float_param(params, 'spacing', 0.0, 0.0, 10.0)

        return cls(
            mode=mode,
            selection=selection,
            size_delta=_float_param(params, 'sizeDelta', cls.size_delta, -500.0, 500.0),
            spacing=spacing,
            action=action,
        )


@dataclass
class BatchOutcome:
    """Counts and partial failures accumulated while one operation runs"""
    counts: Dict[str, int] = field(default_factory=dict)
    failures: List[PartialFailure] = field(default_factory=list)
    created: List[ElementRef] = field(default_factory=list)

    def add(self, key: str, amount: int = 1):
        self.counts[key] = self.counts.get(key, 0) + amount

    def fail(self, unit: str, reason: str):
        logger.warning("%s failed: %s", unit, reason)
        self.failures.append(PartialFailure(unit=unit, reason=reason))


@dataclass
class OperationResult:
    """Outcome of one public operation, published back to the caller"""
    operation: str
    success: bool
    message: str
    counts: Dict[str, int] = field(default_factory=dict)
    failures: List[PartialFailure] = field(default_factory=list)
    error_code: Optional[str] = None
    selection: List[int] = field(default_factory=list)

    @property
    def partial_failure_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "success": self.success,
            "message": self.message,
            "counts": dict(self.counts),
            "failures": [failure.to_dict() for failure in self.failures],
            "errorCode": self.error_code,
            "selection": list(self.selection),
        }
