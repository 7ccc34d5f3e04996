"""
Turns coarse network labels into clean masks at photo resolution.

The multi-class path is used for garments: labels are upscaled and smoothed per class,
brought back to photo resolution, and the selected classes are straightened and reduced
to one simplified outline. The saliency path is used for the subject: probabilities are
resized, sharpened, thresholded and lightly blurred so the edge can be alpha blended.
"""
import time
from typing import Iterable, List, Optional

import cv2
import numpy as np

from idphoto.configuration.base import RefinementConfiguration
from idphoto.errors import InvalidImageError
from idphoto.logging import logger
from idphoto.metrics import REFINEMENT_TIME
from idphoto.structures import LabelMask, MaskKind, RefinedMask

MASK_THRESHOLD = 127


def _elliptical_kernel(size: int) -> np.ndarray:
    return cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))


def _rectangular_kernel(size: int) -> np.ndarray:
    return cv2.getStructuringElement(cv2.MORPH_RECT, (size, size))


def _check_target_size(width: int, height: int) -> None:
    if width < 1 or height < 1:
        raise InvalidImageError(f"Target size must be at least 1x1, got {width}x{height}")


def _label_dtype(num_classes: int):
    return np.uint8 if num_classes <= 256 else np.uint16


def smooth_labels(labels: np.ndarray, num_classes: int, upscale_factor: int = 4, kernel_size: int = 3) -> np.ndarray:
    """
    Upscale a label map and remove single-pixel noise from every class.

    Each class indicator is dilated then eroded on its own and the results are written back
    in ascending class order, so the highest class index wins pixels claimed by several classes.

    Args:
        labels (np.ndarray): Integer label map of shape (H', W').
        num_classes (int): Number of classes in the label map.
        upscale_factor (int): Integer upscale factor.
        kernel_size (int): Size of the elliptical structuring element.

    Returns:
        np.ndarray: Smoothed label map of shape (H' * factor, W' * factor).
    """
    height, width = labels.shape[:2]
    dtype = _label_dtype(num_classes)

    # Nearest-neighbor keeps labels discrete
    upscaled = cv2.resize(
        labels.astype(dtype),
        (width * upscale_factor, height * upscale_factor),
        interpolation=cv2.INTER_NEAREST,
    )

    kernel = _elliptical_kernel(kernel_size)
    smoothed = np.zeros_like(upscaled)
    for index in range(num_classes):
        indicator = (upscaled == index).astype(np.uint8) * 255
        if not indicator.any():
            continue

        indicator = cv2.dilate(indicator, kernel)
        indicator = cv2.erode(indicator, kernel)
        smoothed[indicator > 0] = index

    return smoothed


def select_classes(labels: np.ndarray, selected_classes: Iterable[int]) -> np.ndarray:
    """
    Build the selection mask for a set of classes.

    Args:
        labels (np.ndarray): Integer label map.
        selected_classes (Iterable[int]): Class indices that count as selected.

    Returns:
        np.ndarray: uint8 mask with 255 where the label is selected.
    """
    selected = np.isin(labels, list(selected_classes))
    return selected.astype(np.uint8) * 255


def straighten_edges(mask: np.ndarray, config: RefinementConfiguration) -> np.ndarray:
    """
    Open, dilate, close, blur and re-threshold a binary mask.

    The result has smooth, slightly enlarged edges biased towards straight lines.

    Args:
        mask (np.ndarray): uint8 binary mask.
        config (RefinementConfiguration): Kernel sizes and blur settings.

    Returns:
        np.ndarray: uint8 mask with values in {0, 255}.
    """
    opened = cv2.morphologyEx(mask, cv2.MORPH_OPEN, _rectangular_kernel(config.open_kernel))
    dilated = cv2.dilate(opened, _rectangular_kernel(config.dilate_kernel))
    closed = cv2.morphologyEx(dilated, cv2.MORPH_CLOSE, _rectangular_kernel(config.close_kernel))

    blur_size = (config.straighten_blur_kernel, config.straighten_blur_kernel)
    blurred = cv2.GaussianBlur(closed, blur_size, config.straighten_blur_sigma)
    _, binary = cv2.threshold(blurred, MASK_THRESHOLD, 255, cv2.THRESH_BINARY)

    return binary


def regularize_contour(mask: np.ndarray, config: RefinementConfiguration) -> Optional[np.ndarray]:
    """
    Replace the mask with a simplified polygon of its largest outer contour.

    Args:
        mask (np.ndarray): uint8 binary mask.
        config (RefinementConfiguration): Contour tolerance and blur settings.

    Returns:
        Optional[np.ndarray]: The regularized mask, or None when there is no usable contour.
    """
    contours, _ = cv2.findContours(mask.copy(), cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    if not contours:
        return None

    # max() keeps the first contour among equal areas
    largest = max(range(len(contours)), key=lambda i: cv2.contourArea(contours[i]))
    contour = contours[largest]

    epsilon = config.contour_tolerance_fraction * cv2.arcLength(contour, True)
    polygon = cv2.approxPolyDP(contour, epsilon, True)

    regularized = np.zeros_like(mask)
    cv2.drawContours(regularized, [polygon], 0, 255, thickness=cv2.FILLED)

    blur_size = (config.contour_blur_kernel, config.contour_blur_kernel)
    regularized = cv2.GaussianBlur(regularized, blur_size, config.contour_blur_sigma)
    _, regularized = cv2.threshold(regularized, MASK_THRESHOLD, 255, cv2.THRESH_BINARY)

    if not regularized.any():
        return None

    return regularized


def refine_label_mask(
        label_mask: LabelMask,
        width: int,
        height: int,
        selected_classes: Iterable[int],
        config: RefinementConfiguration,
) -> RefinedMask:
    """
    Refine a multi-class label mask into a hard selection mask at photo resolution.

    Args:
        label_mask (LabelMask): Multi-class labels at the network's native resolution.
        width (int): Photo width.
        height (int): Photo height.
        selected_classes (Iterable[int]): Classes that make up the selected region.
        config (RefinementConfiguration): Refinement settings.

    Returns:
        RefinedMask: uint8 mask with values in {0, 255}. Empty when no selected class is present.
    """
    if label_mask.kind != MaskKind.MultiClass:
        raise ValueError(f"Expected a multi-class label mask, got {label_mask.kind.value}")
    _check_target_size(width, height)
    selected_classes = list(selected_classes)

    start = time.perf_counter()

    smoothed = smooth_labels(
        label_mask.values,
        num_classes=label_mask.num_classes,
        upscale_factor=config.upscale_factor,
        kernel_size=config.label_kernel,
    )
    labels = cv2.resize(smoothed, (width, height), interpolation=cv2.INTER_NEAREST)

    selection = select_classes(labels, selected_classes)
    if not selection.any():
        logger.info({"event": "empty_selection", "selected_classes": list(selected_classes)})
        return RefinedMask(values=selection)

    straightened = straighten_edges(selection, config)
    regularized = regularize_contour(straightened, config)
    mask = straightened if regularized is None else regularized

    refinement_time = time.perf_counter() - start
    REFINEMENT_TIME.labels(operation="multiclass").observe(refinement_time)
    logger.info({"event": "mask_refined", "mode": "multiclass", "time": refinement_time})

    return RefinedMask(values=mask)


def refine_saliency_mask(
        label_mask: LabelMask,
        width: int,
        height: int,
        config: RefinementConfiguration,
) -> RefinedMask:
    """
    Refine a saliency probability map into a subject mask with antialiased edges.

    Args:
        label_mask (LabelMask): Probabilities in [0, 1] at the network's native resolution.
        width (int): Photo width.
        height (int): Photo height.
        config (RefinementConfiguration): Refinement settings.

    Returns:
        RefinedMask: uint8 mask, 255 inside the subject with a soft transition at the edge.
    """
    if label_mask.kind != MaskKind.Saliency:
        raise ValueError(f"Expected a saliency label mask, got {label_mask.kind.value}")
    _check_target_size(width, height)

    start = time.perf_counter()

    probabilities = cv2.resize(
        label_mask.values.astype(np.float32),
        (width, height),
        interpolation=cv2.INTER_CUBIC,
    )
    # Bicubic overshoots around edges
    probabilities = np.clip(probabilities, 0.0, 1.0)

    sharpened = np.power(probabilities, config.saliency_gamma)
    binary = (sharpened > config.saliency_threshold).astype(np.uint8) * 255
    if not binary.any():
        logger.info({"event": "empty_selection", "threshold": config.saliency_threshold})
        return RefinedMask(values=binary, soft_edges=True)

    closed = cv2.morphologyEx(binary, cv2.MORPH_CLOSE, _elliptical_kernel(config.saliency_close_kernel))
    blur_size = (config.saliency_blur_kernel, config.saliency_blur_kernel)
    softened = cv2.GaussianBlur(closed, blur_size, 0)

    refinement_time = time.perf_counter() - start
    REFINEMENT_TIME.labels(operation="saliency").observe(refinement_time)
    logger.info({"event": "mask_refined", "mode": "saliency", "time": refinement_time})

    return RefinedMask(values=softened, soft_edges=True)


def subject_classes(num_classes: int) -> List[int]:
    """Every class except background, used when no saliency network is configured."""
    return list(range(1, num_classes))
