"""
Attribute-by-attribute style transfer between shapes and table cells.

Shapes and table cells expose fill, border and text formatting through
different python-pptx objects, so formatting is captured into a
StyleSnapshot through a format accessor and applied attribute by attribute.
A failing attribute is logged and reported, the remaining ones still apply.
"""

import copy
import logging
import math
import unicodedata
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from pptx.dml.color import RGBColor
from pptx.enum.dml import MSO_COLOR_TYPE, MSO_FILL, MSO_LINE_DASH_STYLE
from pptx.oxml import parse_xml
from pptx.oxml.ns import nsdecls, qn
from pptx.oxml.xmlchemy import OxmlElement
from pptx.util import Pt

from .coordinate_converter import CoordinateConverter
from .models import ElementKind, ElementRef

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 18.0
LINE_HEIGHT_FACTOR = 1.2
LATIN_CHAR_WIDTH = 0.55
WIDE_CHAR_WIDTH = 1.0

_BORDER_TAGS = ('a:lnL', 'a:lnR', 'a:lnT', 'a:lnB')
_BULK_STYLE_KINDS = (ElementKind.TEXT_BOX, ElementKind.AUTO_SHAPE)


@dataclass(frozen=True)
class ColorValue:
    """An RGB or theme color as read from a ColorFormat"""
    rgb: Optional[RGBColor] = None
    theme_color: Any = None

    @classmethod
    def read(cls, color_format) -> Optional['ColorValue']:
        if color_format.type == MSO_COLOR_TYPE.RGB:
            return cls(rgb=color_format.rgb)
        if color_format.type == MSO_COLOR_TYPE.SCHEME:
            return cls(theme_color=color_format.theme_color)
        return None

    def write(self, color_format):
        if self.rgb is not None:
            color_format.rgb = self.rgb
        elif self.theme_color is not None:
            color_format.theme_color = self.theme_color


@dataclass
class StyleSnapshot:  # pylint: disable=too-many-instance-attributes
    """Formatting copied between elements and cells. None means not captured"""
    font_name: Optional[str] = None
    font_size: Optional[float] = None
    bold: Optional[bool] = None
    italic: Optional[bool] = None
    underline: Any = None
    font_color: Optional[ColorValue] = None
    alignment: Any = None
    fill_visible: Optional[bool] = None
    fill_color: Optional[ColorValue] = None
    fill_transparency: Optional[float] = None
    line_visible: Optional[bool] = None
    line_color: Optional[ColorValue] = None
    line_weight: Optional[float] = None
    line_dash: Any = None
    margins: Optional[Tuple[float, float, float, float]] = None

    def has_font(self) -> bool:
        return any(value is not None for value in
                   (self.font_name, self.font_size, self.bold, self.italic,
                    self.underline, self.font_color, self.alignment))


def _first_font(text_frame):
    """Font of the first run, else of the first paragraph"""
    paragraphs = text_frame.paragraphs
    if not paragraphs:
        return None, None
    first = paragraphs[0]
    if first.runs:
        return first.runs[0].font, first
    return first.font, first


def _read_transparency(parent) -> Optional[float]:
    """Transparency of a solid fill under spPr/tcPr, 0.0 when opaque"""
    if parent is None:
        return None
    alpha = parent.find(f"{qn('a:solidFill')}/*/{qn('a:alpha')}")
    if alpha is None:
        return 0.0
    return 1.0 - int(alpha.get('val', '100000')) / 100000.0


def _write_transparency(parent, transparency: float):
    if parent is None:
        return
    solid_fill = parent.find(qn('a:solidFill'))
    if solid_fill is None or len(solid_fill) == 0:
        return
    color_element = solid_fill[0]
    for alpha in color_element.findall(qn('a:alpha')):
        color_element.remove(alpha)
    if transparency > 0:
        alpha = OxmlElement('a:alpha')
        alpha.set('val', str(int(round((1.0 - transparency) * 100000))))
        color_element.append(alpha)


class _FormatAccess:
    """Common text and fill handling for shapes and cells"""

    def __init__(self, target):
        self.target = target

    def text_frame(self):
        raise NotImplementedError

    def fill_parent(self):
        raise NotImplementedError

    def capture(self) -> StyleSnapshot:
        snapshot = StyleSnapshot()
        self._capture_text(snapshot)
        self._capture_fill(snapshot)
        self._capture_line(snapshot)
        snapshot.margins = self.read_margins()
        return snapshot

    def _capture_text(self, snapshot: StyleSnapshot):
        text_frame = self.text_frame()
        if text_frame is None:
            return
        font, paragraph = _first_font(text_frame)
        if font is None:
            return
        snapshot.font_name = font.name
        snapshot.font_size = font.size.pt if font.size is not None else None
        snapshot.bold = font.bold
        snapshot.italic = font.italic
        snapshot.underline = font.underline
        snapshot.font_color = ColorValue.read(font.color)
        snapshot.alignment = paragraph.alignment

    def _capture_fill(self, snapshot: StyleSnapshot):
        fill = getattr(self.target, 'fill', None)
        if fill is None:
            return
        if fill.type == MSO_FILL.SOLID:
            snapshot.fill_visible = True
            snapshot.fill_color = ColorValue.read(fill.fore_color)
            snapshot.fill_transparency = _read_transparency(self.fill_parent())
        elif fill.type == MSO_FILL.BACKGROUND:
            snapshot.fill_visible = False

    def _capture_line(self, snapshot: StyleSnapshot):
        raise NotImplementedError

    def read_margins(self):
        raise NotImplementedError

    def write_margins(self, margins):
        raise NotImplementedError

    def apply(self, snapshot: StyleSnapshot, include_text_format: bool = True) -> List[str]:
        """
        Apply a snapshot attribute group by attribute group.

        Args:
            snapshot: Formatting to apply
            include_text_format: Whether font and alignment are applied

        Returns:
            Names of the attribute groups that failed
        """
        steps = [
            ('fill', self._apply_fill),
            ('line', self._apply_line),
            ('margins', self._apply_margins),
        ]
        if include_text_format and snapshot.has_font():
            steps.insert(0, ('font', self._apply_font))

        failed = []
        for name, step in steps:
            try:
                step(snapshot)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning("Could not apply %s formatting: %s", name, e)
                failed.append(name)
        return failed

    def _apply_font(self, snapshot: StyleSnapshot):
        text_frame = self.text_frame()
        if text_frame is None:
            return
        for paragraph in text_frame.paragraphs:
            if snapshot.alignment is not None:
                paragraph.alignment = snapshot.alignment
            fonts = [run.font for run in paragraph.runs] or [paragraph.font]
            for font in fonts:
                if snapshot.font_name is not None:
                    font.name = snapshot.font_name
                if snapshot.font_size is not None:
                    font.size = Pt(snapshot.font_size)
                if snapshot.bold is not None:
                    font.bold = snapshot.bold
                if snapshot.italic is not None:
                    font.italic = snapshot.italic
                if snapshot.underline is not None:
                    font.underline = snapshot.underline
                if snapshot.font_color is not None:
                    snapshot.font_color.write(font.color)

    def _apply_fill(self, snapshot: StyleSnapshot):
        if snapshot.fill_visible is None:
            return
        fill = self.target.fill
        if not snapshot.fill_visible:
            fill.background()
            return
        fill.solid()
        if snapshot.fill_color is not None:
            snapshot.fill_color.write(fill.fore_color)
        if snapshot.fill_transparency:
            _write_transparency(self.fill_parent(), snapshot.fill_transparency)

    def _apply_line(self, snapshot: StyleSnapshot):
        raise NotImplementedError

    def _apply_margins(self, snapshot: StyleSnapshot):
        if snapshot.margins is not None:
            self.write_margins(snapshot.margins)


class ShapeFormatAccess(_FormatAccess):
    """Format access for an autoshape, text box or placeholder"""

    def text_frame(self):
        if not getattr(self.target, 'has_text_frame', False):
            return None
        return self.target.text_frame

    def fill_parent(self):
        return self.target._element.spPr  # pylint: disable=protected-access

    def _capture_line(self, snapshot: StyleSnapshot):
        line = getattr(self.target, 'line', None)
        if line is None:
            return
        # line.color is only safe to read on a solid line fill
        if line.fill.type == MSO_FILL.SOLID:
            snapshot.line_visible = True
            snapshot.line_color = ColorValue.read(line.color)
            snapshot.line_weight = line.width.pt if line.width else None
            snapshot.line_dash = line.dash_style
        elif line.fill.type == MSO_FILL.BACKGROUND:
            snapshot.line_visible = False

    def _apply_line(self, snapshot: StyleSnapshot):
        if snapshot.line_visible is None:
            return
        line = self.target.line
        if not snapshot.line_visible:
            line.fill.background()
            return
        line.fill.solid()
        if snapshot.line_color is not None:
            snapshot.line_color.write(line.color)
        if snapshot.line_weight:
            line.width = Pt(snapshot.line_weight)
        if snapshot.line_dash is not None:
            line.dash_style = snapshot.line_dash

    def read_margins(self):
        text_frame = self.text_frame()
        if text_frame is None:
            return None
        return (text_frame.margin_left.pt, text_frame.margin_top.pt,
                text_frame.margin_right.pt, text_frame.margin_bottom.pt)

    def write_margins(self, margins):
        text_frame = self.text_frame()
        if text_frame is None:
            return
        left, top, right, bottom = margins
        text_frame.margin_left = Pt(left)
        text_frame.margin_top = Pt(top)
        text_frame.margin_right = Pt(right)
        text_frame.margin_bottom = Pt(bottom)


class CellFormatAccess(_FormatAccess):
    """Format access for a python-pptx table cell; borders live in tcPr XML"""

    def text_frame(self):
        return self.target.text_frame

    def fill_parent(self):
        return self.target._tc.tcPr  # pylint: disable=protected-access

    def _capture_line(self, snapshot: StyleSnapshot):
        tc_pr = self.fill_parent()
        if tc_pr is None:
            return
        border = None
        for tag in ('a:lnT', 'a:lnB', 'a:lnL', 'a:lnR'):
            border = tc_pr.find(qn(tag))
            if border is not None:
                break
        if border is None:
            return
        if border.find(qn('a:noFill')) is not None:
            snapshot.line_visible = False
            return
        snapshot.line_visible = True
        width = border.get('w')
        snapshot.line_weight = CoordinateConverter.emu_to_points(int(width)) if width else None
        srgb = border.find(f"{qn('a:solidFill')}/{qn('a:srgbClr')}")
        if srgb is not None:
            snapshot.line_color = ColorValue(rgb=RGBColor.from_string(srgb.get('val')))
        dash = border.find(qn('a:prstDash'))
        if dash is not None:
            snapshot.line_dash = MSO_LINE_DASH_STYLE.from_xml(dash.get('val'))

    def _apply_line(self, snapshot: StyleSnapshot):
        if snapshot.line_visible is None:
            return
        self.write_borders(snapshot.line_visible, snapshot.line_weight or 1.0,
                           snapshot.line_color, snapshot.line_dash)

    def write_borders(self, visible: bool, weight: float,
                      color: Optional[ColorValue] = None, dash=None):
        """Replace all four borders of the cell"""
        tc_pr = self.target._tc.get_or_add_tcPr()  # pylint: disable=protected-access
        for tag in _BORDER_TAGS:
            for existing in tc_pr.findall(qn(tag)):
                tc_pr.remove(existing)

        width = int(CoordinateConverter.points_to_emu(weight))
        rgb = color.rgb if color is not None and color.rgb is not None else RGBColor(0, 0, 0)
        for index, tag in enumerate(_BORDER_TAGS):
            if visible:
                dash_xml = ''
                if dash is not None:
                    dash_xml = f'<a:prstDash val="{MSO_LINE_DASH_STYLE.to_xml(dash)}"/>'
                xml = (f'<{tag} {nsdecls("a")} w="{width}"><a:solidFill>'
                       f'<a:srgbClr val="{rgb}"/></a:solidFill>{dash_xml}</{tag}>')
            else:
                xml = f'<{tag} {nsdecls("a")} w="{width}"><a:noFill/></{tag}>'
            tc_pr.insert(index, parse_xml(xml))

    def read_margins(self):
        cell = self.target
        return (cell.margin_left.pt, cell.margin_top.pt,
                cell.margin_right.pt, cell.margin_bottom.pt)

    def write_margins(self, margins):
        left, top, right, bottom = margins
        cell = self.target
        cell.margin_left = Pt(left)
        cell.margin_top = Pt(top)
        cell.margin_right = Pt(right)
        cell.margin_bottom = Pt(bottom)


def can_bulk_clone_style(source: ElementRef, target: ElementRef) -> bool:
    """True when both are plain sp shapes whose spPr can be copied wholesale"""
    return (source.traits.kind in _BULK_STYLE_KINDS
            and target.traits.kind in _BULK_STYLE_KINDS)


def bulk_clone_style(source: ElementRef, target: ElementRef):
    """Copy fill, outline and effects of spPr plus the shape style reference"""
    source_sp = source.shape._element  # pylint: disable=protected-access
    target_sp = target.shape._element  # pylint: disable=protected-access
    keep = (qn('a:xfrm'), qn('a:prstGeom'), qn('a:custGeom'))

    target_sp_pr = target_sp.spPr
    for child in list(target_sp_pr):
        if child.tag not in keep:
            target_sp_pr.remove(child)
    for child in source_sp.spPr:
        if child.tag not in keep:
            target_sp_pr.append(copy.deepcopy(child))

    source_style = source_sp.find(qn('p:style'))
    target_style = target_sp.find(qn('p:style'))
    if target_style is not None:
        target_sp.remove(target_style)
    if source_style is not None:
        target_sp.spPr.addnext(copy.deepcopy(source_style))


def copy_element_style(source: ElementRef, target: ElementRef,
                       include_text_format: bool = True) -> List[str]:
    """
    Copy formatting between two shapes.

    Uses a wholesale spPr clone when can_bulk_clone_style allows it and the
    attribute-by-attribute path otherwise; text formatting always goes
    attribute by attribute.

    Returns:
        Names of the attribute groups that failed
    """
    snapshot = ShapeFormatAccess(source.shape).capture()
    if can_bulk_clone_style(source, target):
        bulk_clone_style(source, target)
        failed = []
        if include_text_format and snapshot.has_font():
            failed = ShapeFormatAccess(target.shape).apply(
                StyleSnapshot(font_name=snapshot.font_name, font_size=snapshot.font_size,
                              bold=snapshot.bold, italic=snapshot.italic,
                              underline=snapshot.underline, font_color=snapshot.font_color,
                              alignment=snapshot.alignment, margins=snapshot.margins))
        return failed
    return ShapeFormatAccess(target.shape).apply(snapshot, include_text_format)


def copy_cell_style(source_cell, target_cell) -> List[str]:
    """Copy fill, borders, margins and font between two table cells"""
    snapshot = CellFormatAccess(source_cell).capture()
    return CellFormatAccess(target_cell).apply(snapshot)


def is_wide_char(char: str) -> bool:
    return unicodedata.east_asian_width(char) in ('W', 'F')


def _line_width(line: str, font_size: float) -> float:
    return sum(font_size * (WIDE_CHAR_WIDTH if is_wide_char(char) else LATIN_CHAR_WIDTH)
               for char in line)


def estimate_text_height(text: str, font_size: float, width: float,
                         margin_top: float = 3.6, margin_bottom: float = 3.6,
                         margin_horizontal: float = 14.4) -> float:
    """
    Estimate the rendered height of wrapped text in points

    Args:
        text: Text content, paragraphs separated by newlines
        font_size: Font size in points
        width: Box width in points
        margin_top, margin_bottom: Vertical text frame margins
        margin_horizontal: Sum of left and right margins

    Returns:
        Height in points including margins
    """
    available = max(width - margin_horizontal, font_size)
    line_count = 0
    for paragraph in (text or "").split("\n"):
        line_count += max(1, math.ceil(_line_width(paragraph, font_size) / available))
    return line_count * font_size * LINE_HEIGHT_FACTOR + margin_top + margin_bottom


def estimate_text_width(text: str, font_size: float, margin_horizontal: float = 14.4) -> float:
    """Width in points of the longest paragraph set on a single line, margins included"""
    paragraphs = (text or "").split("\n")
    return max(_line_width(paragraph, font_size) for paragraph in paragraphs) + margin_horizontal
