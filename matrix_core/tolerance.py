import logging
from typing import Sequence

from .coordinate_converter import Axis
from .models import ElementRef

logger = logging.getLogger(__name__)


class ToleranceCalculator:
    """Derives the clustering distance from the sizes of the elements involved"""

    RATIO = 0.3
    MINIMUM = 3.0
    MAXIMUM = 25.0
    DEFAULT = 10.0

    def calculate(self, elements: Sequence[ElementRef], axis: Axis = Axis.ROW) -> float:
        """
        Return clamp(average size * 0.3, 3pt, 25pt)

        Args:
            elements: Elements to measure
            axis: ROW measures heights, COLUMN measures widths

        Returns:
            Tolerance in points, DEFAULT for no elements
        """
        if not elements:
            return self.DEFAULT

        if axis == Axis.ROW:
            sizes = [element.height for element in elements]
        else:
            sizes = [element.width for element in elements]

        average = sum(sizes) / len(sizes)
        tolerance = min(max(average * self.RATIO, self.MINIMUM), self.MAXIMUM)
        logger.debug("Tolerance for %d element(s) along %s: %.2fpt (average %.2fpt)",
                     len(elements), axis.value, tolerance, average)
        return tolerance
