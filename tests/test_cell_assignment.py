import unittest

from pptx.enum.shapes import MSO_CONNECTOR, MSO_SHAPE

from matrix_core.cell_assignment import CellAssignmentEngine, split_selection
from matrix_core.feature_gate import FeatureGate
from matrix_core.models import Cell
from matrix_core.service import MatrixOperationService
from matrix_core.surface import SlideSurface

from tests.support import add_box, add_rect, add_table, geometry, new_slide


class TestCellAssignment(unittest.TestCase):
    def setUp(self):
        _, self.slide = new_slide()
        self.surface = SlideSurface(self.slide)
        self.service = MatrixOperationService(self.surface, feature_gate=FeatureGate([]))

    def test_star_is_centered_in_its_table_cell(self):
        add_table(self.slide, 2, 2, 100, 100, 200, 100)
        star = add_rect(self.slide, 230, 160, 20, 20, MSO_SHAPE.STAR_5_POINT)
        outside = add_rect(self.slide, 500, 400, 20, 20, MSO_SHAPE.OVAL)

        result = self.service.align_to_cells()

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.counts['aligned'], 1)
        self.assertEqual(result.counts['skipped'], 1)
        left, top, width, height = geometry(star)
        self.assertAlmostEqual(left + width / 2, 250, places=2)
        self.assertAlmostEqual(top + height / 2, 175, places=2)
        self.assertEqual(geometry(outside)[:2], (500, 400))
        self.assertEqual(self.slide.shapes[-1].shape_id, star.shape_id)

    def test_grid_of_boxes_defines_cells(self):
        add_box(self.slide, 50, 50)
        add_box(self.slide, 160, 50)
        oval = add_rect(self.slide, 150, 55, 20, 20, MSO_SHAPE.OVAL)

        result = self.service.align_to_cells()

        self.assertTrue(result.success, result.message)
        left, top, _, _ = geometry(oval)
        self.assertAlmostEqual(left, 200, places=2)
        self.assertAlmostEqual(top, 60, places=2)

    def test_ties_go_to_the_first_cell(self):
        cells = [
            Cell(row=0, column=0, left=0, top=0, width=100, height=50),
            Cell(row=0, column=1, left=100, top=0, width=100, height=50),
        ]
        target = self.surface.wrap(add_rect(self.slide, 90, 15, 20, 20, MSO_SHAPE.OVAL))

        mapping = CellAssignmentEngine(self.surface).assign([target], cells)

        self.assertEqual(list(mapping), [cells[0]])
        self.assertEqual(mapping[cells[0]], [target])

    def test_empty_cells_are_omitted(self):
        cells = [Cell(row=0, column=0, left=0, top=0, width=100, height=50)]
        mapping = CellAssignmentEngine(self.surface).assign([], cells)
        self.assertEqual(mapping, {})

    def test_selection_split(self):
        table = self.surface.wrap(add_table(self.slide, 1, 1, 0, 0, 100, 40))
        box = self.surface.wrap(add_box(self.slide, 0, 100))
        rect = self.surface.wrap(add_rect(self.slide, 0, 200))
        oval = self.surface.wrap(add_rect(self.slide, 0, 300, shape_type=MSO_SHAPE.OVAL))
        line = self.surface.wrap(self.slide.shapes.add_connector(MSO_CONNECTOR.STRAIGHT, 0, 0, 100, 100))

        matrix_elements, targets = split_selection([table, box, rect, oval, line])

        self.assertEqual(matrix_elements, [table, box, rect])
        self.assertEqual(targets, [oval])

    def test_no_targets_selected(self):
        add_table(self.slide, 2, 2, 100, 100, 200, 100)
        result = self.service.align_to_cells()

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "PRECONDITION_VIOLATION")


if __name__ == '__main__':
    unittest.main()
