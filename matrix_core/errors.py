"""
Error taxonomy for matrix layout operations.

Preconditions and grid detection are checked before anything on the slide is
touched. Host failures abort single-subject operations; inside batches they
are recorded as PartialFailure entries and the batch continues.
"""

from dataclasses import dataclass


class MatrixError(Exception):
    """Base class for classified matrix operation errors"""

    code = "MATRIX_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PreconditionViolation(MatrixError):
    """Selection cardinality or capability requirements are not met"""

    code = "PRECONDITION_VIOLATION"


class GridDetectionFailure(MatrixError):
    """The selection could not be resolved into a usable grid"""

    code = "GRID_DETECTION_FAILED"


class HostOperationFailure(MatrixError):
    """Creating, deleting or editing a slide object failed"""

    code = "HOST_OPERATION_FAILED"


class FeatureDisabled(MatrixError):
    """The operation is switched off by the feature gate"""

    code = "FEATURE_DISABLED"


@dataclass
class PartialFailure:
    """One failed unit inside a batch (a cell, a row, a table, a separator)"""
    unit: str
    reason: str

    def to_dict(self):
        return {"unit": self.unit, "reason": self.reason}
