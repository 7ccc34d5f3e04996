from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class MaskKind(str, Enum):
    MultiClass = "multiclass"
    Saliency = "saliency"


class CompositeStatus(str, Enum):
    Applied = "applied"
    NoRegion = "no_region"


@dataclass(frozen=True)
class LabelMask:
    """
    Per-pixel labels at the network's native output resolution.

    `values` holds integer class indices in [0, num_classes) for multi-class masks
    and float32 probabilities in [0, 1] for saliency masks.
    """
    values: np.ndarray
    kind: MaskKind
    num_classes: int

    @property
    def height(self) -> int:
        return self.values.shape[0]

    @property
    def width(self) -> int:
        return self.values.shape[1]


@dataclass(frozen=True)
class RefinedMask:
    """Single-channel uint8 mask at photo resolution, 255 = selected."""
    values: np.ndarray
    soft_edges: bool = False

    @property
    def is_empty(self) -> bool:
        return not np.any(self.values)


@dataclass(frozen=True)
class BoundingBox:
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.width, self.height


@dataclass(frozen=True)
class ReplacementAsset:
    """
    A replacement source: either a solid RGB color or an opaque RGB image.

    `alpha` is a boolean mask derived from the source image's own transparency,
    None when the source was fully opaque.
    """
    image: Optional[np.ndarray] = None
    color: Optional[Tuple[int, int, int]] = None
    alpha: Optional[np.ndarray] = None
    name: str = ""

    @property
    def is_color(self) -> bool:
        return self.color is not None


@dataclass(frozen=True)
class CompositeResult:
    image: np.ndarray
    status: CompositeStatus
    bounding_box: Optional[BoundingBox] = None
    message: str = ""

    @property
    def applied(self) -> bool:
        return self.status == CompositeStatus.Applied
