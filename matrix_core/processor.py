"""
This module contains the PresentationProcessor class, which applies one
matrix operation to one slide of a .pptx file.
"""
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from pptx import Presentation

from .errors import PreconditionViolation
from .feature_gate import FeatureGate
from .models import OperationResult
from .service import OPERATION_REGISTRY, MatrixOperationService
from .surface import SlideSurface

logger = logging.getLogger(__name__)


class PresentationProcessor:
    """Loads a presentation, runs one operation and saves the result"""

    def __init__(self, feature_gate: Optional[FeatureGate] = None):
        self.feature_gate = feature_gate or FeatureGate()

    @staticmethod
    def supported_operations():
        return sorted(OPERATION_REGISTRY)

    def process(self, input_path: Union[str, Path], output_path: Union[str, Path],
                operation: str, params: Optional[Dict[str, Any]] = None,
                slide_index: int = 1, shape_ids: Optional[Iterable[int]] = None) -> OperationResult:
        """
        Apply an operation to a slide and save the presentation

        Args:
            input_path: Source .pptx file
            output_path: Destination .pptx file, written only when the operation succeeds
            operation: Registered operation name, e.g. 'detectGrid'
            params: Operation parameters
            slide_index: 1-based slide number
            shape_ids: Shape ids forming the selection (None selects every shape)

        Returns:
            OperationResult of the operation

        Raises:
            ValueError: Unknown operation
            PreconditionViolation: The slide does not exist
        """
        handler = OPERATION_REGISTRY.get(operation)
        if handler is None:
            raise ValueError(f"Unknown operation: {operation}. "
                             f"Supported: {', '.join(self.supported_operations())}")

        presentation = Presentation(str(input_path))
        slide_count = len(presentation.slides)
        if not 1 <= slide_index <= slide_count:
            raise PreconditionViolation(
                f"Slide {slide_index} does not exist, the presentation has {slide_count} slide(s).")

        slide = presentation.slides[slide_index - 1]
        surface = SlideSurface(slide, shape_ids)
        service = MatrixOperationService(surface, feature_gate=self.feature_gate)

        logger.info("Running %s on slide %d of %s", operation, slide_index, input_path)
        result = handler(service, params)

        if result.success:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            presentation.save(str(output_path))
            logger.info("Saved presentation to %s", output_path)
        else:
            logger.warning("%s did not succeed, output not written: %s", operation, result.message)
        return result
