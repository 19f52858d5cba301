import unittest

from matrix_core.coordinate_converter import Axis, BoundingBox, CoordinateConverter
from matrix_core.surface import SlideSurface
from matrix_core.tolerance import ToleranceCalculator

from tests.support import add_box, new_slide


class TestToleranceCalculator(unittest.TestCase):
    def setUp(self):
        _, self.slide = new_slide()
        self.surface = SlideSurface(self.slide)
        self.calculator = ToleranceCalculator()

    def wrap(self, *shapes):
        return [self.surface.wrap(shape) for shape in shapes]

    def test_default_for_no_elements(self):
        self.assertEqual(self.calculator.calculate([]), 10.0)

    def test_ratio_of_average_height(self):
        elements = self.wrap(add_box(self.slide, 0, 0, height=20), add_box(self.slide, 0, 50, height=40))
        self.assertAlmostEqual(self.calculator.calculate(elements), 9.0)

    def test_clamped_to_minimum(self):
        elements = self.wrap(add_box(self.slide, 0, 0, height=5))
        self.assertEqual(self.calculator.calculate(elements), 3.0)

    def test_clamped_to_maximum(self):
        elements = self.wrap(add_box(self.slide, 0, 0, height=200))
        self.assertEqual(self.calculator.calculate(elements), 25.0)

    def test_column_axis_measures_widths(self):
        elements = self.wrap(add_box(self.slide, 0, 0, width=50, height=200))
        self.assertAlmostEqual(self.calculator.calculate(elements, Axis.COLUMN), 15.0)


class TestCoordinateConverter(unittest.TestCase):
    def test_cm_points_round_trip(self):
        self.assertAlmostEqual(CoordinateConverter.cm_to_points(2.54), 72.0)
        self.assertAlmostEqual(CoordinateConverter.points_to_cm(72.0), 2.54)

    def test_points_to_emu_rounds(self):
        self.assertEqual(int(CoordinateConverter.points_to_emu(1.5)), 19050)
        self.assertEqual(CoordinateConverter.emu_to_points(None), 0.0)

    def test_box_contains_is_inclusive(self):
        box = BoundingBox(left=10, top=10, width=20, height=20)
        self.assertTrue(box.contains(30, 30))
        self.assertFalse(box.contains(30.01, 30))
        enclosing = BoundingBox.enclosing([box, BoundingBox(left=0, top=40, width=5, height=5)])
        self.assertEqual((enclosing.left, enclosing.top, enclosing.right, enclosing.bottom),
                         (0, 10, 30, 45))


if __name__ == '__main__':
    unittest.main()
