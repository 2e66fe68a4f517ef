"""Find ecosystems, working directories and descriptors."""

from depaudit.engines.detection.detector import (
    detect_in_directory,
    detect_technologies_descriptors,
)

__all__ = ["detect_in_directory", "detect_technologies_descriptors"]
