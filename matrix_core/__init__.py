"""
Core module for the matrix layout engine.
"""
from .processor import PresentationProcessor
from .service import MatrixOperationService, OPERATION_REGISTRY
from .surface import SlideSurface, TableHandle
from .coordinate_converter import Axis, BoundingBox, CoordinateConverter
from .tolerance import ToleranceCalculator
from .grid_detection import GridClusterer, MatrixLayout, detect_matrix_layout
from .table_conversion import GridTableConverter
from .cell_assignment import CellAssignmentEngine
from .separators import SeparatorManager, SeparatorRegistry
from .matrix_structure import MatrixStructureEditor
from .matrix_layout import MatrixLayoutEditor
from .matrix_tuner import Granularity, MatrixTuner, TunerState
from .feature_gate import FeatureGate

from .models import (
    ElementKind, ElementTraits, ElementRef, Grid, Cell, GeometrySnapshot,
    MatrixSettings, SplitSettings, DuplicateSettings, MarginSettings,
    SeparatorSettings, SpacingSettings, TunerSettings, BatchOutcome, OperationResult,
)

from .errors import (
    MatrixError, PreconditionViolation, GridDetectionFailure,
    HostOperationFailure, FeatureDisabled, PartialFailure,
)

__all__ = [
    'PresentationProcessor',
    'MatrixOperationService',
    'OPERATION_REGISTRY',
    'SlideSurface',
    'TableHandle',
    'CoordinateConverter',
    'ToleranceCalculator',
    'GridClusterer',
    'MatrixLayout',
    'detect_matrix_layout',
    'GridTableConverter',
    'CellAssignmentEngine',
    'SeparatorManager',
    'SeparatorRegistry',
    'MatrixStructureEditor',
    'MatrixLayoutEditor',
    'MatrixTuner',
    'FeatureGate',

    # Data classes
    'Axis', 'BoundingBox', 'Granularity', 'TunerState',
    'ElementKind', 'ElementTraits', 'ElementRef', 'Grid', 'Cell', 'GeometrySnapshot',
    'MatrixSettings', 'SplitSettings', 'DuplicateSettings', 'MarginSettings',
    'SeparatorSettings', 'SpacingSettings', 'TunerSettings', 'BatchOutcome', 'OperationResult',

    'MatrixError', 'PreconditionViolation', 'GridDetectionFailure',
    'HostOperationFailure', 'FeatureDisabled', 'PartialFailure',
]
