from enum import IntEnum
from typing import Dict, Tuple

import cv2
import numpy as np


class ClothesClass(IntEnum):
    Background = 0
    Hat = 1
    Hair = 2
    Sunglasses = 3
    UpperClothes = 4
    Skirt = 5
    Pants = 6
    Dress = 7
    Belt = 8
    LeftShoe = 9
    RightShoe = 10
    Face = 11
    LeftLeg = 12
    RightLeg = 13
    LeftArm = 14
    RightArm = 15
    Bag = 16
    Scarf = 17


GARMENT_CLASSES = (ClothesClass.UpperClothes, ClothesClass.Dress)

# RGB
PALETTE: Dict[ClothesClass, Tuple[int, int, int]] = {
    ClothesClass.Background: (0, 0, 0),
    ClothesClass.Hat: (0, 0, 255),
    ClothesClass.Hair: (0, 255, 0),
    ClothesClass.Sunglasses: (255, 0, 0),
    ClothesClass.UpperClothes: (0, 255, 255),
    ClothesClass.Skirt: (255, 0, 255),
    ClothesClass.Pants: (255, 255, 0),
    ClothesClass.Dress: (0, 0, 128),
    ClothesClass.Belt: (0, 128, 0),
    ClothesClass.LeftShoe: (128, 0, 0),
    ClothesClass.RightShoe: (0, 128, 128),
    ClothesClass.Face: (128, 0, 128),
    ClothesClass.LeftLeg: (128, 128, 0),
    ClothesClass.RightLeg: (128, 128, 128),
    ClothesClass.LeftArm: (0, 0, 64),
    ClothesClass.RightArm: (0, 64, 0),
    ClothesClass.Bag: (64, 0, 0),
    ClothesClass.Scarf: (0, 64, 64),
}


def class_name(index: int) -> str:
    try:
        return ClothesClass(index).name
    except ValueError:
        return f"class_{index}"


def colorize_labels(labels: np.ndarray) -> np.ndarray:
    """
    Paint every class of a label map with its palette color.

    Args:
        labels (np.ndarray): Integer label map of shape (H, W).

    Returns:
        np.ndarray: RGB image of shape (H, W, 3). Classes outside the palette stay black.
    """
    lookup = np.zeros((256, 3), dtype=np.uint8)
    for cls, color in PALETTE.items():
        lookup[int(cls)] = color

    return lookup[np.clip(labels, 0, 255).astype(np.uint8)]


def overlay_labels(image: np.ndarray, labels: np.ndarray, opacity: float = 0.3) -> np.ndarray:
    """
    Blend the colorized label map over the photo.

    Args:
        image (np.ndarray): RGB photo of shape (H, W, 3).
        labels (np.ndarray): Integer label map, resized to the photo with nearest-neighbor if needed.
        opacity (float): Weight of the colorized labels.

    Returns:
        np.ndarray: The blended RGB image.
    """
    height, width = image.shape[:2]
    if labels.shape[:2] != (height, width):
        labels = cv2.resize(labels.astype(np.uint8), (width, height), interpolation=cv2.INTER_NEAREST)

    colored = colorize_labels(labels)
    return cv2.addWeighted(np.ascontiguousarray(image[:, :, :3]), 1.0 - opacity, colored, opacity, 0)
