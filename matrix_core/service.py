"""
This module contains the MatrixOperationService class, the public entry
point for every matrix operation on one slide.

Each operation is gated, runs inside a handle scope and is turned into an
OperationResult. Classified errors keep their message; anything else is
logged with its traceback and reported with a generic message.
"""
import logging
import time
import traceback
from typing import Any, Callable, Dict, Optional

from .cell_assignment import CellAssignmentEngine, cells_from_grid, cells_from_table, split_selection
from .coordinate_converter import CoordinateConverter
from .errors import GridDetectionFailure, HostOperationFailure, MatrixError, PreconditionViolation
from .feature_gate import FeatureGate
from .grid_detection import GridClusterer, detect_matrix_layout, is_matrix_candidate
from .matrix_layout import MatrixLayoutEditor
from .matrix_structure import MatrixStructureEditor, tables_in, text_elements
from .matrix_tuner import Granularity, MatrixTuner, TunerState
from .models import (
    BatchOutcome, DuplicateSettings, MarginSettings, MatrixSettings, OperationResult,
    SeparatorSettings, SpacingSettings, SplitSettings, TunerSettings,
)
from .separators import SeparatorManager
from .surface import SlideSurface, TableHandle
from .table_conversion import GridTableConverter

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "The operation could not be completed."


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" + ("" if count == 1 else "s")


class MatrixOperationService:  # pylint: disable=too-many-public-methods
    """Public matrix operations over one slide surface"""

    def __init__(self, surface: SlideSurface, feature_gate: Optional[FeatureGate] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the service

        Args:
            surface: Slide and selection to operate on
            feature_gate: Allow/deny check (defaults to the environment configured gate)
            clock: Clock handed to tuner sessions
        """
        self.surface = surface
        self.feature_gate = feature_gate or FeatureGate()
        self.clock = clock
        self.clusterer = GridClusterer()
        self.separators = SeparatorManager(surface)
        self.converter = GridTableConverter(surface)
        self.assignment = CellAssignmentEngine(surface)
        self.structure = MatrixStructureEditor(surface, self.clusterer, self.separators)
        self.layout = MatrixLayoutEditor(surface, self.clusterer, self.separators)

    def _execute(self, operation: str, action: Callable[[], BatchOutcome],
                 describe: Callable[[Dict[str, int]], str]) -> OperationResult:
        """
        Run one operation behind the feature gate and the error boundary

        Args:
            operation: Feature name of the operation
            action: Performs the work and returns its outcome
            describe: Builds the success summary from the outcome counts

        Returns:
            OperationResult, never raises
        """
        if not self.feature_gate.is_allowed(operation):
            logger.warning("Operation %s is disabled", operation)
            return OperationResult(operation=operation, success=False,
                                   message=f"The feature '{operation}' is not available.",
                                   error_code="FEATURE_DISABLED")

        logger.info("%s operation started", operation)
        try:
            with self.surface.scope():
                outcome = action()
        except MatrixError as e:
            logger.warning("%s failed: %s", operation, e.message)
            return OperationResult(operation=operation, success=False, message=e.message,
                                   error_code=e.code, selection=self._selection_ids())
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Unexpected error in %s: %s", operation, e)
            logger.error(traceback.format_exc())
            return OperationResult(operation=operation, success=False, message=GENERIC_FAILURE,
                                   error_code="UNEXPECTED_ERROR", selection=self._selection_ids())

        message = describe(outcome.counts)
        if outcome.failures:
            message += f" ({_plural(len(outcome.failures), 'item')} could not be processed)"
        logger.info("%s completed: %s", operation, message)
        return OperationResult(operation=operation, success=True, message=message,
                               counts=outcome.counts, failures=outcome.failures,
                               selection=self._selection_ids())

    def _selection_ids(self):
        return list(self.surface.selected_ids or [])

    def detect_grid(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        def action():
            layout = detect_matrix_layout(self.surface.get_selection(), self.clusterer)
            if layout is None:
                raise GridDetectionFailure("No grid could be detected in the selection.")
            outcome = BatchOutcome()
            outcome.add('rows', layout.rows)
            outcome.add('columns', layout.columns)
            if layout.grid is not None:
                outcome.add('rectangular', int(layout.grid.is_rectangular))
            return outcome

        return self._execute('detectGrid', action,
                             lambda c: f"Detected {c['rows']} x {c['columns']} matrix")

    def table_to_elements(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        def action():
            tables = tables_in(self.surface.get_selection())
            if not tables:
                raise PreconditionViolation("Select at least one table to convert.")
            if len(tables) == 1:
                created = self.converter.table_to_elements(tables[0])
                failures = []
            else:
                created, failures = self.converter.convert_tables_to_elements(tables)
                if len(failures) == len(tables):
                    raise HostOperationFailure("None of the selected tables could be converted.")
            outcome = BatchOutcome(failures=failures)
            outcome.add('tables', len(tables) - len(failures))
            outcome.add('elements', len(created))
            self.surface.select(created)
            return outcome

        return self._execute(
            'tableToElements', action,
            lambda c: f"Converted {_plural(c['tables'], 'table')} into {_plural(c['elements'], 'element')}")

    def elements_to_table(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        def action():
            candidates = text_elements(self.surface.get_selection())
            if len(candidates) < 2:
                raise PreconditionViolation("Select at least two text elements to build a table.")
            grid = self.clusterer.cluster(candidates)
            if grid is None:
                raise GridDetectionFailure("No grid could be detected in the selection.")
            table, failures = self.converter.elements_to_table(grid)
            outcome = BatchOutcome(failures=failures)
            outcome.add('rows', table.row_count)
            outcome.add('columns', table.column_count)
            self.surface.select([table.element])
            return outcome

        return self._execute('elementsToTable', action,
                             lambda c: f"Created {c['rows']} x {c['columns']} table")

    def align_to_cells(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        def action():
            matrix_elements, targets = split_selection(self.surface.get_selection())
            if not targets:
                raise PreconditionViolation("Select the shapes to align together with the matrix.")
            tables = tables_in(matrix_elements)
            if len(tables) == 1:
                cells = cells_from_table(TableHandle(tables[0]))
            else:
                grid = self.clusterer.cluster(
                    [element for element in matrix_elements if not element.traits.has_table])
                if grid is None:
                    raise GridDetectionFailure("Select a table or at least two matrix cells.")
                cells = cells_from_grid(grid)
            mapping = self.assignment.assign(targets, cells)
            aligned, failures = self.assignment.align_to_cells(mapping)
            outcome = BatchOutcome(failures=failures)
            outcome.add('aligned', aligned)
            outcome.add('skipped', len(targets) - sum(len(t) for t in mapping.values()))
            return outcome

        return self._execute(
            'alignToCells', action,
            lambda c: f"Aligned {_plural(c['aligned'], 'shape')} to cells, skipped {c['skipped']}")

    def add_row(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        return self._execute(
            'addRow', lambda: self.structure.add_row(self.surface.get_selection()),
            lambda c: f"Added {_plural(c.get('rows', 0), 'row')} with {_plural(c.get('cells', 0), 'cell')}")

    def add_column(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        return self._execute(
            'addColumn', lambda: self.structure.add_column(self.surface.get_selection()),
            lambda c: f"Added {_plural(c.get('columns', 0), 'column')} with {_plural(c.get('cells', 0), 'cell')}")

    def add_header_row(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        return self._execute(
            'addHeaderRow', lambda: self.structure.add_header_row(self.surface.get_selection()),
            lambda c: f"Added {_plural(c.get('headers', 0), 'header row')} with "
                      f"{_plural(c.get('cells', 0), 'label')}")

    def add_row_separators(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        def action():
            settings = SeparatorSettings.from_params(params)
            return self.structure.add_row_separators(self.surface.get_selection(), settings)

        return self._execute('addRowSeparators', action,
                             lambda c: f"Added {_plural(c.get('separators', 0), 'separator')}")

    def realign_row_separators(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        return self._execute(
            'realignRowSeparators',
            lambda: self.structure.realign_row_separators(self.surface.get_selection()),
            lambda c: f"Realigned {_plural(c.get('separators', 0), 'separator')}")

    def delete_row_separators(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        return self._execute('deleteRowSeparators', self.structure.delete_row_separators,
                             lambda c: f"Deleted {_plural(c.get('deleted', 0), 'separator')}")

    def generate_matrix(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        def action():
            settings = MatrixSettings.from_params(params)
            return self.layout.generate_matrix(self.surface.get_selection(), settings)

        return self._execute('generateMatrix', action,
                             lambda c: f"Generated {_plural(c.get('cells', 0), 'cell')}")

    def split_shape(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        def action():
            settings = SplitSettings.from_params(params)
            return self.layout.split_shape(self.surface.get_selection(), settings)

        return self._execute('splitShape', action,
                             lambda c: f"Split shape into {_plural(c.get('cells', 0), 'part')}")

    def duplicate_shape(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        def action():
            settings = DuplicateSettings.from_params(params)
            return self.layout.duplicate_shape(self.surface.get_selection(), settings)

        return self._execute('duplicateShape', action,
                             lambda c: f"Created {_plural(c.get('cells', 0), 'copy')}")

    def adjust_equal_spacing(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        def action():
            settings = SpacingSettings.from_params(params)
            return self.layout.adjust_equal_spacing(self.surface.get_selection(), settings.spacing)

        return self._execute('adjustEqualSpacing', action,
                             lambda c: f"Spaced {_plural(c.get('elements', 0), 'element')}")

    def equalize_column_widths(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        return self._execute(
            'equalizeColumnWidths',
            lambda: self.layout.equalize_column_widths(self.surface.get_selection()),
            lambda c: f"Equalized {_plural(c.get('columns', 0), 'column')}")

    def equalize_row_heights(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        return self._execute(
            'equalizeRowHeights',
            lambda: self.layout.equalize_row_heights(self.surface.get_selection()),
            lambda c: f"Equalized {_plural(c.get('rows', 0), 'row')}")

    def fit_row_heights(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        return self._execute(
            'fitRowHeights',
            lambda: self.layout.fit_row_heights(self.surface.get_selection()),
            lambda c: f"Fitted {_plural(c.get('rows', 0), 'row')} to their text")

    def optimize_table(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        return self._execute(
            'optimizeTable',
            lambda: self.layout.optimize_table(self.surface.get_selection()),
            lambda c: f"Optimized {_plural(c.get('columns', 0), 'column')} and "
                      f"{_plural(c.get('rows', 0), 'row')}")

    def set_cell_margins(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        def action():
            settings = MarginSettings.from_params(params)
            return self.layout.set_cell_margins(self.surface.get_selection(), settings)

        return self._execute(
            'setCellMargins', action,
            lambda c: f"Set margins on {_plural(c.get('cells', 0), 'cell')} and "
                      f"{_plural(c.get('elements', 0), 'element')}")

    def open_tuner_session(self) -> MatrixTuner:
        """
        Open an interactive tuner over the selected grid. Existing row
        separators are removed first.

        Raises:
            FeatureDisabled, GridDetectionFailure, PreconditionViolation
        """
        self.feature_gate.check('tuneMatrix')
        candidates = [e for e in self.surface.get_selection() if is_matrix_candidate(e)]
        grid = self.clusterer.cluster(candidates)
        if grid is None:
            raise GridDetectionFailure("Select at least two shapes arranged in a grid.")
        tuner = MatrixTuner(grid, clock=self.clock)
        self.separators.delete_all()
        return tuner

    def tune_matrix(self, params: Optional[Dict[str, Any]] = None) -> OperationResult:
        """
        Run a scripted tuner session: each step sets mode, selection, size
        delta and spacing, previews and then commits, resets or cancels
        """
        def action():
            params_ = params or {}
            steps = [TunerSettings.from_params(step) for step in params_.get('steps', [params_])]
            tuner = self.open_tuner_session()
            outcome = BatchOutcome()
            for step in steps:
                self._apply_tuner_step(tuner, step)
                outcome.add('steps')
                if tuner.state == TunerState.CANCELLED:
                    outcome.add('cancelled')
                    break
            else:
                tuner.finish()
            outcome.add('elements', len(tuner.elements))
            return outcome

        return self._execute(
            'tuneMatrix', action,
            lambda c: ("Tuning cancelled, original layout restored" if c.get('cancelled')
                       else f"Applied {_plural(c.get('steps', 0), 'step')} to "
                            f"{_plural(c.get('elements', 0), 'element')}"))

    @staticmethod
    def _apply_tuner_step(tuner: MatrixTuner, step: TunerSettings):
        tuner.set_granularity(Granularity(step.mode))
        if isinstance(step.selection, tuple):
            tuner.select_none()
            for number in step.selection:
                tuner.toggle(number - 1)
        else:
            getattr(tuner, f"select_{step.selection}")()
        tuner.set_size_delta(step.size_delta)
        if step.spacing is not None:
            tuner.set_spacing(CoordinateConverter.cm_to_points(step.spacing))
        tuner.flush()

        if step.action == 'commit':
            tuner.commit()
        elif step.action == 'reset':
            tuner.reset()
        else:
            tuner.cancel()


# Operation registry - maps job operation names to service methods
OPERATION_REGISTRY = {
    'detectGrid': MatrixOperationService.detect_grid,
    'tableToElements': MatrixOperationService.table_to_elements,
    'elementsToTable': MatrixOperationService.elements_to_table,
    'alignToCells': MatrixOperationService.align_to_cells,
    'addRow': MatrixOperationService.add_row,
    'addColumn': MatrixOperationService.add_column,
    'addHeaderRow': MatrixOperationService.add_header_row,
    'addRowSeparators': MatrixOperationService.add_row_separators,
    'realignRowSeparators': MatrixOperationService.realign_row_separators,
    'deleteRowSeparators': MatrixOperationService.delete_row_separators,
    'tuneMatrix': MatrixOperationService.tune_matrix,
    'generateMatrix': MatrixOperationService.generate_matrix,
    'splitShape': MatrixOperationService.split_shape,
    'duplicateShape': MatrixOperationService.duplicate_shape,
    'adjustEqualSpacing': MatrixOperationService.adjust_equal_spacing,
    'equalizeColumnWidths': MatrixOperationService.equalize_column_widths,
    'equalizeRowHeights': MatrixOperationService.equalize_row_heights,
    'fitRowHeights': MatrixOperationService.fit_row_heights,
    'optimizeTable': MatrixOperationService.optimize_table,
    'setCellMargins': MatrixOperationService.set_cell_margins,
}
