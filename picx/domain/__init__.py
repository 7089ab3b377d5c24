"""Domain layer: project-wide exceptions.

No dependencies on infrastructure or presentation.
"""

from picx.domain.exceptions import PicxException

__all__ = ["PicxException"]
