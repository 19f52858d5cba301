from dataclasses import dataclass
from typing import Iterable, Optional
from enum import Enum

from pptx.util import Emu


class Axis(Enum):
    """Axis along which elements are measured or clustered"""
    ROW = "row"
    COLUMN = "column"


@dataclass
class BoundingBox:
    """Represents a bounding box with position and size"""
    left: float
    top: float
    width: float
    height: float

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

    def contains(self, x: float, y: float) -> bool:
        """Inclusive point containment test"""
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    @classmethod
    def enclosing(cls, boxes: Iterable['BoundingBox']) -> Optional['BoundingBox']:
        """Smallest box enclosing every box given, or None for no boxes"""
        boxes = list(boxes)
        if not boxes:
            return None
        left = min(b.left for b in boxes)
        top = min(b.top for b in boxes)
        right = max(b.right for b in boxes)
        bottom = max(b.bottom for b in boxes)
        return cls(left=left, top=top, width=right - left, height=bottom - top)


class CoordinateConverter:
    """Converts between centimetres, points and EMU for slide geometry"""

    POINTS_PER_INCH = 72
    CM_PER_INCH = 2.54
    EMU_PER_POINT = 12700

    # One authoritative constant (72 / 2.54)
    CM_TO_POINTS = POINTS_PER_INCH / CM_PER_INCH

    @classmethod
    def cm_to_points(cls, cm: float) -> float:
        """Convert centimetres to points"""
        return cm * cls.CM_TO_POINTS

    @classmethod
    def points_to_cm(cls, points: float) -> float:
        """Convert points to centimetres"""
        return points / cls.CM_TO_POINTS

    @classmethod
    def points_to_emu(cls, points: float) -> Emu:
        """
        Convert points to an EMU length python-pptx accepts

        Args:
            points: Distance in points, may be fractional

        Returns:
            Emu length rounded to the nearest whole EMU
        """
        return Emu(int(round(points * cls.EMU_PER_POINT)))

    @classmethod
    def emu_to_points(cls, emu) -> float:
        """Convert an EMU length (or None) to points"""
        if emu is None:
            return 0.0
        return int(emu) / cls.EMU_PER_POINT

    @classmethod
    def box_to_emu(cls, box: BoundingBox):
        """Return (left, top, width, height) of a box as EMU lengths"""
        return (
            cls.points_to_emu(box.left),
            cls.points_to_emu(box.top),
            cls.points_to_emu(max(box.width, 0.0)),
            cls.points_to_emu(max(box.height, 0.0)),
        )
