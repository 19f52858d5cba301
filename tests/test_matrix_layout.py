import unittest

from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_CONNECTOR, MSO_SHAPE
from pptx.oxml.ns import qn
from pptx.util import Pt

from matrix_core.coordinate_converter import CoordinateConverter
from matrix_core.feature_gate import FeatureGate
from matrix_core.service import MatrixOperationService
from matrix_core.surface import SlideSurface

from tests.support import add_box, add_grid, add_rect, add_table, geometry, new_slide, pt

cm = CoordinateConverter.cm_to_points


class LayoutTestCase(unittest.TestCase):
    def setUp(self):
        _, self.slide = new_slide()
        self.surface = SlideSurface(self.slide)
        self.service = MatrixOperationService(self.surface, feature_gate=FeatureGate([]))


class TestGenerateMatrix(LayoutTestCase):
    def test_generates_lattice_at_default_origin(self):
        result = self.service.generate_matrix(
            {'rows': 2, 'columns': 3, 'cellWidth': 2, 'cellHeight': 1, 'spacing': 0.5})

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.counts['cells'], 6)
        self.assertEqual(len(self.slide.shapes), 6)
        last = self.slide.shapes[-1]
        left, top, width, height = geometry(last)
        self.assertAlmostEqual(left, 100 + 2 * (cm(2) + cm(0.5)), places=2)
        self.assertAlmostEqual(top, 100 + cm(1) + cm(0.5), places=2)
        self.assertAlmostEqual(width, cm(2), places=2)
        self.assertAlmostEqual(height, cm(1), places=2)
        self.assertEqual(last.fill.fore_color.rgb, RGBColor(0xFF, 0xFF, 0xFF))
        self.assertEqual(last.line.color.rgb, RGBColor(0, 0, 0))

    def test_starts_at_first_selected_element(self):
        add_box(self.slide, 30, 40)

        result = self.service.generate_matrix({'rows': 1, 'columns': 1})

        self.assertTrue(result.success, result.message)
        left, top, _, _ = geometry(self.slide.shapes[-1])
        self.assertAlmostEqual(left, 30, places=2)
        self.assertAlmostEqual(top, 40, places=2)

    def test_invalid_settings_change_nothing(self):
        result = self.service.generate_matrix({'rows': 0})

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "PRECONDITION_VIOLATION")
        self.assertEqual(len(self.slide.shapes), 0)


class TestSplitAndDuplicate(LayoutTestCase):
    def test_split_replaces_the_shape(self):
        original = add_rect(self.slide, 50, 50, 300, 200)
        original.fill.solid()
        original.fill.fore_color.rgb = RGBColor(0xC0, 0x00, 0x00)
        original_id = original.shape_id

        result = self.service.split_shape({'rows': 2, 'columns': 3, 'spacing': 0})

        self.assertTrue(result.success, result.message)
        shapes = list(self.slide.shapes)
        self.assertEqual(len(shapes), 6)
        self.assertNotIn(original_id, [shape.shape_id for shape in shapes])
        boxes = sorted(geometry(shape) for shape in shapes)
        self.assertEqual(boxes[0], (50.0, 50.0, 100.0, 100.0))
        self.assertEqual(boxes[-1], (250.0, 150.0, 100.0, 100.0))
        for shape in shapes:
            self.assertEqual(shape.auto_shape_type, MSO_SHAPE.RECTANGLE)
            self.assertEqual(shape.fill.fore_color.rgb, RGBColor(0xC0, 0x00, 0x00))

    def test_split_needs_exactly_one_shape(self):
        add_rect(self.slide, 50, 50)
        add_rect(self.slide, 200, 50)

        result = self.service.split_shape()

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "PRECONDITION_VIOLATION")
        self.assertEqual(len(self.slide.shapes), 2)

    def test_split_spacing_too_large(self):
        add_rect(self.slide, 50, 50, 20, 20)
        result = self.service.split_shape({'rows': 3, 'columns': 3, 'spacing': 5})
        self.assertFalse(result.success)
        self.assertEqual(len(self.slide.shapes), 1)

    def test_duplicate_onto_lattice(self):
        add_box(self.slide, 50, 50, 100, 40, text="Hello")

        result = self.service.duplicate_shape(
            {'rows': 2, 'columns': 2, 'spacing': 0, 'includeText': False})

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.counts['cells'], 3)
        shapes = sorted(self.slide.shapes, key=lambda shape: (shape.top, shape.left))
        self.assertEqual([geometry(shape)[:2] for shape in shapes],
                         [(50.0, 50.0), (150.0, 50.0), (50.0, 90.0), (150.0, 90.0)])
        self.assertEqual([shape.text_frame.text for shape in shapes], ["Hello", "", "", ""])
        self.assertEqual(len({shape.shape_id for shape in shapes}), 4)
        self.assertEqual(len(result.selection), 4)

    def test_duplicate_keeps_text(self):
        add_box(self.slide, 50, 50, text="Hello")
        result = self.service.duplicate_shape({'rows': 1, 'columns': 3})
        self.assertTrue(result.success, result.message)
        self.assertEqual([shape.text_frame.text for shape in self.slide.shapes], ["Hello"] * 3)

    def test_split_parts_keep_the_font(self):
        original = add_box(self.slide, 50, 50, 300, 200, text="Title")
        font = original.text_frame.paragraphs[0].runs[0].font
        font.size = Pt(20)
        font.bold = True

        result = self.service.split_shape({'rows': 1, 'columns': 2, 'spacing': 0})

        self.assertTrue(result.success, result.message)
        shapes = list(self.slide.shapes)
        self.assertEqual(len(shapes), 2)
        for shape in shapes:
            self.assertEqual(shape.text_frame.text, "")
            self.assertEqual(shape.text_frame.paragraphs[0].font.size, Pt(20))
            self.assertTrue(shape.text_frame.paragraphs[0].font.bold)

    def test_duplicate_without_text_keeps_the_font(self):
        original = add_box(self.slide, 50, 50, text="Hello")
        font = original.text_frame.paragraphs[0].runs[0].font
        font.size = Pt(28)
        font.italic = True

        result = self.service.duplicate_shape({'rows': 1, 'columns': 2, 'includeText': False})

        self.assertTrue(result.success, result.message)
        copies = [shape for shape in self.slide.shapes if shape.shape_id != original.shape_id]
        self.assertEqual(len(copies), 1)
        paragraph = copies[0].text_frame.paragraphs[0]
        self.assertEqual(copies[0].text_frame.text, "")
        self.assertEqual(paragraph.runs, ())
        end = paragraph._p.find(qn('a:endParaRPr'))  # pylint: disable=protected-access
        self.assertIsNotNone(end)
        self.assertEqual(end.get('sz'), '2800')
        self.assertEqual(end.get('i'), '1')


class TestSpacingAndSizes(LayoutTestCase):
    def test_equal_spacing(self):
        add_box(self.slide, 50, 50, 100, 40)
        add_box(self.slide, 200, 52, 80, 40)
        add_box(self.slide, 60, 130, 100, 30)

        result = self.service.adjust_equal_spacing({'spacing': 1})

        self.assertTrue(result.success, result.message)
        first, second, third = self.slide.shapes
        self.assertAlmostEqual(pt(second.left), 150 + cm(1), places=2)
        self.assertAlmostEqual(pt(second.top), 50, places=2)
        self.assertAlmostEqual(pt(third.left), 50, places=2)
        self.assertAlmostEqual(pt(third.top), 90 + cm(1), places=2)
        self.assertAlmostEqual(pt(first.width), 100, places=2)

    def test_equal_spacing_needs_two_shapes(self):
        add_box(self.slide, 50, 50)
        result = self.service.adjust_equal_spacing()
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "PRECONDITION_VIOLATION")

    def test_equalize_column_widths_of_grid(self):
        add_box(self.slide, 50, 50, 80, 40)
        add_box(self.slide, 140, 50, 120, 40)
        add_box(self.slide, 50, 100, 80, 40)
        add_box(self.slide, 140, 100, 120, 40)

        result = self.service.equalize_column_widths()

        self.assertTrue(result.success, result.message)
        for shape in self.slide.shapes:
            self.assertAlmostEqual(pt(shape.width), 100, places=2)
        second = self.slide.shapes[1]
        self.assertAlmostEqual(pt(second.left), 50 + 100 + 10, places=2)

    def test_equalize_row_heights_of_table(self):
        frame = add_table(self.slide, 2, 2, 50, 50, 200, 80)
        frame.table.rows[0].height = 254000  # 20pt
        frame.table.rows[1].height = 762000  # 60pt

        result = self.service.equalize_row_heights()

        self.assertTrue(result.success, result.message)
        self.assertEqual([round(pt(row.height), 2) for row in frame.table.rows], [60.0, 60.0])
        self.assertAlmostEqual(pt(frame.height), 120, places=2)

    def test_equalize_removes_row_separators(self):
        add_grid(self.slide, 3, 2)
        self.service.add_row_separators()

        result = self.service.equalize_row_heights()

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.counts['deleted'], 2)
        self.assertFalse(any(shape.name.startswith("RowSeparator_") for shape in self.slide.shapes))

    def test_fit_row_heights_of_grid(self):
        add_box(self.slide, 50, 50, 100, 40, text="a" * 60)
        add_box(self.slide, 160, 50, 100, 40, text="b")
        add_box(self.slide, 50, 100, 100, 40, text="c")
        add_box(self.slide, 160, 100, 100, 40)

        result = self.service.fit_row_heights()

        self.assertTrue(result.success, result.message)
        shapes = list(self.slide.shapes)
        self.assertAlmostEqual(pt(shapes[0].height), 7 * 18 * 1.2 + 7.2, places=2)
        self.assertAlmostEqual(pt(shapes[1].height), pt(shapes[0].height), places=2)
        self.assertAlmostEqual(pt(shapes[2].height), 18 * 1.2 + 7.2, places=2)
        self.assertAlmostEqual(pt(shapes[2].top), pt(shapes[0].top) + pt(shapes[0].height) + 10, places=2)

    def test_fit_row_heights_moves_row_separators(self):
        grid = add_grid(self.slide, 3, 2)
        self.service.add_row_separators()

        result = self.service.fit_row_heights()

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.counts['separators'], 2)
        lines = sorted((shape for shape in self.slide.shapes if shape.name.startswith("RowSeparator_")),
                       key=lambda shape: shape.name)
        self.assertEqual(len(lines), 2)
        for index, line in enumerate(lines):
            upper, lower = grid[index][0], grid[index + 1][0]
            expected = (pt(upper.top) + pt(upper.height) + pt(lower.top)) / 2
            self.assertAlmostEqual(pt(line.begin_y), expected, places=2)
        self.assertAlmostEqual(pt(lines[0].begin_y), 50 + 28.8 + 5, places=2)

    def test_equal_spacing_rejects_non_numeric_spacing(self):
        add_box(self.slide, 50, 50)
        add_box(self.slide, 200, 50)

        result = self.service.adjust_equal_spacing({'spacing': 'wide'})

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "PRECONDITION_VIOLATION")
        self.assertAlmostEqual(pt(self.slide.shapes[1].left), 200, places=2)

    def test_cell_margins(self):
        frame = add_table(self.slide, 2, 2, 50, 50, 200, 80)
        box = add_box(self.slide, 50, 200, text="x")

        result = self.service.set_cell_margins(
            {'marginTop': 0.1, 'marginBottom': 0.2, 'marginLeft': 0.3, 'marginRight': 0.4})

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.counts['cells'], 4)
        self.assertEqual(result.counts['elements'], 1)
        cell = frame.table.cell(1, 1)
        self.assertAlmostEqual(cell.margin_top.pt, cm(0.1), places=2)
        self.assertAlmostEqual(cell.margin_right.pt, cm(0.4), places=2)
        self.assertAlmostEqual(box.text_frame.margin_left.pt, cm(0.3), places=2)
        self.assertAlmostEqual(box.text_frame.margin_bottom.pt, cm(0.2), places=2)

    def test_cell_margins_without_text(self):
        self.slide.shapes.add_connector(MSO_CONNECTOR.STRAIGHT, 0, 0, 100, 100)

        result = self.service.set_cell_margins()

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "PRECONDITION_VIOLATION")


class TestOptimizeTable(LayoutTestCase):
    # longest lines at 18pt plus 14.4pt of margins: "a" * 10 -> 113.4, "bb" -> 34.2
    RATIO = 113.4 / 34.2

    def label(self, shapes):
        for shape, text in zip(shapes, ["a" * 10, "bb", "c", "d"]):
            shape.text_frame.text = text

    def test_grid_columns_follow_longest_text(self):
        grid = add_grid(self.slide, 2, 2)
        self.label([grid[0][0], grid[0][1], grid[1][0], grid[1][1]])

        result = self.service.optimize_table()

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.counts['columns'], 2)
        self.assertEqual(result.counts['rows'], 2)
        first, second = pt(grid[0][0].width), pt(grid[0][1].width)
        self.assertAlmostEqual(first + second, 200, places=2)
        self.assertAlmostEqual(first / second, self.RATIO, places=3)
        self.assertAlmostEqual(pt(grid[0][1].left), 50 + first + 10, places=2)
        self.assertAlmostEqual(pt(grid[1][0].top), 50 + 28.8 + 10, places=2)
        for row in grid:
            for shape in row:
                self.assertAlmostEqual(pt(shape.height), 28.8, places=2)

    def test_table_keeps_its_overall_width(self):
        frame = add_table(self.slide, 2, 2, 50, 50, 200, 80)
        cells = [frame.table.cell(r, c) for r in range(2) for c in range(2)]
        self.label(cells)

        result = self.service.optimize_table()

        self.assertTrue(result.success, result.message)
        first, second = (pt(column.width) for column in frame.table.columns)
        self.assertAlmostEqual(first + second, 200, places=2)
        self.assertAlmostEqual(first / second, self.RATIO, places=3)
        self.assertEqual([round(pt(row.height), 2) for row in frame.table.rows], [28.8, 28.8])
        self.assertAlmostEqual(pt(frame.width), 200, places=2)
        self.assertAlmostEqual(pt(frame.height), 57.6, places=2)

    def test_shrinking_stops_at_minimum_column_width(self):
        first = add_box(self.slide, 50, 50, 100, 40, text="a" * 30)
        second = add_box(self.slide, 160, 50, 100, 40, text="b")

        result = self.service.optimize_table()

        self.assertTrue(result.success, result.message)
        self.assertAlmostEqual(pt(second.width), 30, places=2)
        self.assertAlmostEqual(pt(first.width), 200 * 200 / 230, places=2)

    def test_row_separators_follow_new_heights(self):
        grid = add_grid(self.slide, 2, 2)
        self.label([grid[0][0], grid[0][1], grid[1][0], grid[1][1]])
        self.service.add_row_separators()

        result = self.service.optimize_table()

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.counts['separators'], 1)
        line = next(shape for shape in self.slide.shapes if shape.name.startswith("RowSeparator_"))
        self.assertAlmostEqual(pt(line.begin_y), 50 + 28.8 + 5, places=2)

    def test_nothing_to_optimize(self):
        add_box(self.slide, 50, 50, text="alone")
        result = self.service.optimize_table()
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "PRECONDITION_VIOLATION")

    def test_disabled_by_feature_gate(self):
        add_grid(self.slide, 2, 2)
        service = MatrixOperationService(self.surface, feature_gate=FeatureGate(['optimizeTable']))

        result = service.optimize_table()

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "FEATURE_DISABLED")
        self.assertEqual(len(self.slide.shapes), 4)


if __name__ == '__main__':
    unittest.main()
