import os
import logging
from typing import Iterable, Optional

from .errors import FeatureDisabled

logger = logging.getLogger(__name__)


class FeatureGate:
    """Allow/deny check consulted before every public matrix operation"""

    ENV_VAR = 'MATRIX_DISABLED_FEATURES'

    def __init__(self, disabled: Optional[Iterable[str]] = None):
        """
        Args:
            disabled: Operation names to deny (defaults to the comma separated
                      MATRIX_DISABLED_FEATURES environment variable)
        """
        if disabled is None:
            disabled = os.getenv(self.ENV_VAR, '').split(',')
        self.disabled = {name.strip() for name in disabled if name and name.strip()}
        if self.disabled:
            logger.info("Disabled features: %s", ', '.join(sorted(self.disabled)))

    def is_allowed(self, feature: str) -> bool:
        return feature not in self.disabled

    def check(self, feature: str):
        if not self.is_allowed(feature):
            raise FeatureDisabled(f"The feature '{feature}' is not available.")
