from typing import Callable, List, Tuple

import cv2
import numpy as np

from idphoto.errors import InvalidImageError


def validate_image(image: np.ndarray) -> np.ndarray:
    """
    Checks that the array is a usable photo and returns its 3 color channels.

    Args:
        image (np.ndarray): Image of shape (H, W, 3) or (H, W, 4).

    Returns:
        np.ndarray: A view of the color channels, shape (H, W, 3).
    """
    if not isinstance(image, np.ndarray):
        raise InvalidImageError(f"Expected a numpy array, got {type(image).__name__}")
    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise InvalidImageError(f"Expected an image of shape (H, W, 3|4), got {image.shape}")
    if image.shape[0] < 1 or image.shape[1] < 1:
        raise InvalidImageError(f"Image has a zero dimension: {image.shape}")
    if image.dtype != np.uint8:
        raise InvalidImageError(f"Expected an 8-bit image, got {image.dtype}")

    return image[:, :, :3]


def get_transforms(
        size: Tuple[int, int],
        mean: List[float],
        std: List[float],
        channel_order: str = "RGB",
) -> Callable[[np.ndarray], np.ndarray]:
    """
    Builds the preprocessing transform for a segmentation network.

    Args:
        size (Tuple[int, int]): Network input size as (height, width).
        mean (List[float]): Per-channel mean, in the network's channel order.
        std (List[float]): Per-channel standard deviation, in the network's channel order.
        channel_order (str): "RGB" or "BGR".

    Returns:
        Callable[[np.ndarray], np.ndarray]: Maps an RGB uint8 image to a (1, 3, H, W) float32 tensor.
    """
    height, width = size
    mean_array = np.asarray(mean, dtype=np.float32).reshape(1, 1, 3)
    std_array = np.asarray(std, dtype=np.float32).reshape(1, 1, 3)

    def transform(image: np.ndarray) -> np.ndarray:
        rgb = validate_image(image)

        # Area averaging avoids aliasing when downscaling large photos
        resized = cv2.resize(np.ascontiguousarray(rgb), (width, height), interpolation=cv2.INTER_AREA)
        if channel_order == "BGR":
            resized = resized[:, :, ::-1]

        normalized = (resized.astype(np.float32) / 255.0 - mean_array) / std_array

        # HWC -> NCHW
        return np.ascontiguousarray(normalized.transpose(2, 0, 1)[np.newaxis], dtype=np.float32)

    return transform


def preprocess_image(image: np.ndarray, transforms: Callable[[np.ndarray], np.ndarray]) -> np.ndarray:
    """
    Preprocess a single RGB image into a network input tensor.

    Args:
        image (np.ndarray): The RGB (or RGBA) photo.
        transforms (Callable): Transform returned by `get_transforms`.

    Returns:
        np.ndarray: Tensor of shape (1, 3, H, W).
    """
    try:
        return transforms(image)
    except cv2.error as e:
        raise InvalidImageError(f"Error processing image: {e}") from e
