"""
Separator line lifecycle.

A separator belongs to a row gap only through its name: "RowSeparator_<n>"
with a 1-based gap number. SeparatorRegistry is the single place that knows
this convention; everything else asks it to tag and find lines.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from pptx.enum.dml import MSO_COLOR_TYPE, MSO_FILL
from pptx.util import Pt

from .errors import HostOperationFailure, PartialFailure
from .models import ElementRef, Grid, SeparatorSettings
from .surface import SlideSurface, TableHandle

logger = logging.getLogger(__name__)

ROW_SEPARATOR_PREFIX = "RowSeparator_"
HEADER_SEPARATOR_PREFIX = "HeaderSeparator_"


class SeparatorRegistry:
    """Finds and tags separator lines by name prefix and numeric suffix"""

    def __init__(self, surface: SlideSurface, prefix: str = ROW_SEPARATOR_PREFIX):
        self.surface = surface
        self.prefix = prefix
        self._suffix = re.compile(re.escape(prefix) + r"(\d+)$")

    def tag(self, line: ElementRef, index: int):
        line.name = f"{self.prefix}{index}"

    def index_of(self, line: ElementRef) -> Optional[int]:
        match = self._suffix.match(line.name)
        return int(match.group(1)) if match else None

    def find(self) -> List[ElementRef]:
        """Tagged lines ordered by their numeric suffix"""
        lines = [element for element in self.surface.find_by_name_prefix(self.prefix)
                 if element.traits.is_line]
        return sorted(lines, key=lambda line: (self.index_of(line) is None,
                                               self.index_of(line) or 0))


@dataclass
class SeparatorGeometry:
    """Horizontal extent and the Y of every row gap"""
    left: float
    right: float
    positions: List[float]

    @classmethod
    def from_grid(cls, grid: Grid) -> 'SeparatorGeometry':
        bounds = grid.bounds()
        return cls(left=bounds.left, right=bounds.right, positions=grid.row_gap_midpoints())

    @classmethod
    def from_table(cls, table: TableHandle) -> 'SeparatorGeometry':
        left, _ = table.origin
        return cls(left=left, right=left + sum(table.column_widths),
                   positions=table.row_boundaries())


def style_line(line: ElementRef, settings: SeparatorSettings):
    line_format = line.shape.line
    line_format.fill.solid()
    line_format.color.rgb = settings.color
    line_format.width = Pt(settings.weight)
    line_format.dash_style = settings.dash_style


def read_line_style(line: ElementRef) -> SeparatorSettings:
    """Style of an existing line, falling back to the defaults per attribute"""
    defaults = SeparatorSettings()
    line_format = line.shape.line
    if line_format.fill.type != MSO_FILL.SOLID:
        return defaults
    color = defaults.color
    if line_format.color.type == MSO_COLOR_TYPE.RGB:
        color = line_format.color.rgb
    weight = line_format.width.pt if line_format.width else defaults.weight
    dash_style = line_format.dash_style or defaults.dash_style
    return SeparatorSettings(dash_style=dash_style, weight=weight, color=color)


class SeparatorManager:
    """Creates, realigns and deletes the row separators of a matrix"""

    def __init__(self, surface: SlideSurface, registry: Optional[SeparatorRegistry] = None):
        self.surface = surface
        self.registry = registry or SeparatorRegistry(surface)

    def create(self, geometry: SeparatorGeometry,
               settings: SeparatorSettings) -> Tuple[int, List[PartialFailure]]:
        """
        Draw one horizontal line per row gap

        Args:
            geometry: Extent and gap positions
            settings: Line style

        Returns:
            Tuple of (created count, failures)
        """
        created = 0
        failures: List[PartialFailure] = []
        for index, y in enumerate(geometry.positions, start=1):
            try:
                line = self.surface.create_line(geometry.left, y, geometry.right, y)
                self.registry.tag(line, index)
                style_line(line, settings)
                created += 1
                logger.debug("Created separator %d at y=%.2f", index, y)
            except (HostOperationFailure, ValueError, TypeError) as e:
                logger.warning("Could not create separator %d: %s", index, e)
                failures.append(PartialFailure(unit=f"separator {index}", reason=str(e)))
        return created, failures

    def delete_all(self) -> int:
        lines = self.registry.find()
        for line in lines:
            self.surface.delete(line)
        if lines:
            logger.info("Deleted %d separator(s)", len(lines))
        return len(lines)

    def realign(self, geometry: SeparatorGeometry) -> Tuple[int, List[PartialFailure]]:
        """
        Move existing separators onto the current row gaps.

        Lines are repositioned one to one when their count matches the gap
        count. Otherwise all of them are deleted and recreated in the style
        of the first one.

        Returns:
            Tuple of (separators now in place, failures)
        """
        lines = self.registry.find()
        if not lines:
            return 0, []

        if len(lines) == len(geometry.positions):
            failures: List[PartialFailure] = []
            moved = 0
            for index, (line, y) in enumerate(zip(lines, geometry.positions), start=1):
                try:
                    self.surface.move_line(line, geometry.left, y, geometry.right, y)
                    moved += 1
                except (HostOperationFailure, ValueError) as e:
                    logger.warning("Could not move separator %d: %s", index, e)
                    failures.append(PartialFailure(unit=f"separator {index}", reason=str(e)))
            logger.info("Realigned %d separator(s)", moved)
            return moved, failures

        template = read_line_style(lines[0])
        logger.info("Separator count changed (%d lines, %d gaps), recreating",
                    len(lines), len(geometry.positions))
        self.delete_all()
        return self.create(geometry, template)
