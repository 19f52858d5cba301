import os
import unittest
from unittest import mock

from matrix_core.errors import FeatureDisabled
from matrix_core.feature_gate import FeatureGate
from matrix_core.service import GENERIC_FAILURE, OPERATION_REGISTRY, MatrixOperationService
from matrix_core.surface import SlideSurface

from tests.support import add_grid, geometry, new_slide, shapes_named


class TestMatrixOperationService(unittest.TestCase):
    def setUp(self):
        _, self.slide = new_slide()
        self.surface = SlideSurface(self.slide)
        self.service = MatrixOperationService(self.surface, feature_gate=FeatureGate([]))

    def test_detect_grid(self):
        add_grid(self.slide, 2, 3)

        result = self.service.detect_grid()

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.counts['rows'], 2)
        self.assertEqual(result.counts['columns'], 3)
        self.assertEqual(result.message, "Detected 2 x 3 matrix")

    def test_detect_grid_failure_is_classified(self):
        result = self.service.detect_grid()

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "GRID_DETECTION_FAILED")
        self.assertEqual(result.to_dict()['errorCode'], "GRID_DETECTION_FAILED")

    def test_disabled_feature_changes_nothing(self):
        add_grid(self.slide, 2, 2)
        service = MatrixOperationService(self.surface, feature_gate=FeatureGate(['addRow']))

        result = service.add_row()

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "FEATURE_DISABLED")
        self.assertEqual(len(self.slide.shapes), 4)

    def test_unexpected_error_gets_generic_message(self):
        add_grid(self.slide, 2, 2)

        with mock.patch.object(self.service.structure, 'add_row', side_effect=RuntimeError("boom")):
            result = self.service.add_row()

        self.assertFalse(result.success)
        self.assertEqual(result.message, GENERIC_FAILURE)
        self.assertEqual(result.error_code, "UNEXPECTED_ERROR")

    def test_handles_are_released_after_each_operation(self):
        add_grid(self.slide, 2, 2)
        acquired = []
        original_wrap = self.surface.wrap

        def recording_wrap(shape):
            element = original_wrap(shape)
            acquired.append(element)
            return element

        self.surface.wrap = recording_wrap
        self.service.detect_grid()

        self.assertTrue(acquired)
        self.assertTrue(all(element.is_released for element in acquired))

    def test_registry_covers_every_operation(self):
        self.assertEqual(len(OPERATION_REGISTRY), 20)
        for name, handler in OPERATION_REGISTRY.items():
            self.assertTrue(callable(handler), name)


class TestTuneMatrixOperation(unittest.TestCase):
    def setUp(self):
        _, self.slide = new_slide()
        self.surface = SlideSurface(self.slide)
        self.service = MatrixOperationService(self.surface, feature_gate=FeatureGate([]))
        self.grid = add_grid(self.slide, 2, 2, left=50, top=50, width=100, height=40, spacing=10)

    def test_scripted_steps(self):
        result = self.service.tune_matrix({'steps': [
            {'mode': 'row', 'select': [1], 'sizeDelta': 10, 'spacing': 0.5, 'action': 'commit'},
            {'mode': 'column', 'select': 'all', 'sizeDelta': 20, 'action': 'commit'},
        ]})

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.counts['steps'], 2)
        spacing = 72 / 2.54 * 0.5
        top_left, top_right = self.grid[0]
        bottom_left, _ = self.grid[1]
        self.assertAlmostEqual(geometry(top_left)[3], 50, places=2)
        self.assertAlmostEqual(geometry(top_left)[2], 120, places=2)
        self.assertAlmostEqual(geometry(top_right)[0], 50 + 120 + spacing, places=2)
        self.assertAlmostEqual(geometry(bottom_left)[1], 50 + 50 + spacing, places=2)

    def test_cancel_restores_original(self):
        before = [geometry(shape) for row in self.grid for shape in row]

        result = self.service.tune_matrix({'steps': [
            {'select': 'all', 'sizeDelta': 30, 'action': 'commit'},
            {'action': 'cancel'},
        ]})

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.counts['cancelled'], 1)
        self.assertEqual([geometry(shape) for row in self.grid for shape in row], before)

    def test_session_removes_row_separators(self):
        self.service.add_row_separators()
        self.assertEqual(len(shapes_named(self.slide, "RowSeparator_")), 1)

        result = self.service.tune_matrix({'action': 'commit'})

        self.assertTrue(result.success, result.message)
        self.assertEqual(shapes_named(self.slide, "RowSeparator_"), [])

    def test_invalid_step(self):
        result = self.service.tune_matrix({'mode': 'diagonal'})
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "PRECONDITION_VIOLATION")


class TestFeatureGate(unittest.TestCase):
    def test_reads_environment(self):
        with mock.patch.dict(os.environ, {'MATRIX_DISABLED_FEATURES': 'addRow, splitShape,'}):
            gate = FeatureGate()

        self.assertFalse(gate.is_allowed('addRow'))
        self.assertFalse(gate.is_allowed('splitShape'))
        self.assertTrue(gate.is_allowed('addColumn'))
        with self.assertRaises(FeatureDisabled):
            gate.check('addRow')

    def test_everything_allowed_by_default(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            gate = FeatureGate()
        self.assertTrue(gate.is_allowed('tuneMatrix'))


if __name__ == '__main__':
    unittest.main()
