import time
from typing import Optional

import cv2
import numpy as np

from idphoto.logging import logger
from idphoto.metrics import COMPOSITE_TIME
from idphoto.replacement.foreground_estimation import get_foreground_estimation
from idphoto.structures import BoundingBox, CompositeResult, CompositeStatus, RefinedMask, ReplacementAsset
from idphoto.utils.transforms import validate_image

NO_GARMENT_MESSAGE = "No clothing region detected. Try a clearer photo."
NO_SUBJECT_MESSAGE = "No person detected in the photo. Try a photo with a clearer subject."
NO_VISIBLE_ASSET_MESSAGE = "The selected replacement has no visible pixels in this area. Choose another one."


def _check_mask(image: np.ndarray, mask: RefinedMask) -> None:
    if mask.values.shape != image.shape[:2]:
        raise ValueError(f"Mask shape {mask.values.shape} does not match image shape {image.shape[:2]}")


def _no_region(image: np.ndarray, message: str) -> CompositeResult:
    logger.info({"event": "composite_skipped", "reason": "no_region"})
    return CompositeResult(image=image.copy(), status=CompositeStatus.NoRegion, message=message)


def _resize_alpha(alpha: np.ndarray, width: int, height: int) -> np.ndarray:
    resized = cv2.resize(alpha.astype(np.uint8), (width, height), interpolation=cv2.INTER_NEAREST)
    return resized > 0


def get_bounding_box(mask: np.ndarray) -> Optional[BoundingBox]:
    """
    Smallest axis-aligned rectangle containing every selected pixel.

    Args:
        mask (np.ndarray): Single-channel mask, non-zero = selected.

    Returns:
        Optional[BoundingBox]: The bounding box, or None when nothing is selected.
    """
    rows = np.flatnonzero(np.any(mask, axis=1))
    if rows.size == 0:
        return None
    columns = np.flatnonzero(np.any(mask, axis=0))

    y, x = int(rows[0]), int(columns[0])
    return BoundingBox(x=x, y=y, width=int(columns[-1]) - x + 1, height=int(rows[-1]) - y + 1)


def render_canvas(asset: ReplacementAsset, width: int, height: int) -> np.ndarray:
    """
    Paint the asset over a full canvas.

    Args:
        asset (ReplacementAsset): Solid color or image asset.
        width (int): Canvas width.
        height (int): Canvas height.

    Returns:
        np.ndarray: RGB canvas of shape (height, width, 3).
    """
    if asset.is_color:
        return np.full((height, width, 3), asset.color, dtype=np.uint8)

    return cv2.resize(asset.image, (width, height), interpolation=cv2.INTER_LANCZOS4)


def composite_background(
        image: np.ndarray,
        subject_mask: RefinedMask,
        asset: ReplacementAsset,
        estimate_foreground: bool = False,
) -> CompositeResult:
    """
    Replace everything around the subject with the asset.

    The subject mask is the foreground weight of a source-over composite. Where the asset
    itself is transparent the original pixels are kept.

    Args:
        image (np.ndarray): RGB or RGBA photo. Not modified.
        subject_mask (RefinedMask): Subject mask at photo resolution.
        asset (ReplacementAsset): The new background.
        estimate_foreground (bool): Remove old background spill from the soft mask edge.

    Returns:
        CompositeResult: The composited photo, same shape as the input.
    """
    rgb = validate_image(image)
    _check_mask(image, subject_mask)
    if subject_mask.is_empty:
        return _no_region(image, NO_SUBJECT_MESSAGE)

    start = time.perf_counter()
    height, width = rgb.shape[:2]

    original = rgb.astype(np.float32)
    canvas = render_canvas(asset, width, height).astype(np.float32)
    weight = (subject_mask.values.astype(np.float32) / 255.0)[..., None]

    # Pixels where some of the canvas shows through
    visible = None
    painted = weight[..., 0] < 1.0
    if asset.alpha is not None:
        visible = _resize_alpha(asset.alpha, width, height)
        painted &= visible
    if not painted.any():
        return _no_region(image, NO_VISIBLE_ASSET_MESSAGE)

    foreground = original
    if estimate_foreground:
        band = (weight > 0) & (weight < 1)
        if band.any():
            estimated = get_foreground_estimation(original / 255.0, weight[..., 0]) * 255.0
            foreground = np.where(band, estimated.astype(np.float32), original)

    composite = weight * foreground + (1.0 - weight) * canvas
    if visible is not None:
        composite = np.where(visible[..., None], composite, original)

    result = image.copy()
    result[:, :, :3] = np.clip(np.rint(composite), 0, 255).astype(np.uint8)
    if image.shape[2] == 4:
        # The painted canvas is opaque
        result[:, :, 3] = 255 if visible is None else np.where(visible, 255, image[:, :, 3])

    composite_time = time.perf_counter() - start
    COMPOSITE_TIME.labels(operation="background").observe(composite_time)
    logger.info({"event": "background_composited", "asset": asset.name, "time": composite_time})

    return CompositeResult(image=result, status=CompositeStatus.Applied)


def composite_garment(image: np.ndarray, garment_mask: RefinedMask, asset: ReplacementAsset) -> CompositeResult:
    """
    Paint the asset over the garment region.

    The asset is stretched to the bounding box of the mask and copied only where the mask
    is selected and the asset is visible.

    Args:
        image (np.ndarray): RGB or RGBA photo. Not modified.
        garment_mask (RefinedMask): Garment mask at photo resolution.
        asset (ReplacementAsset): The new garment.

    Returns:
        CompositeResult: The composited photo and the bounding box that was used.
    """
    validate_image(image)
    _check_mask(image, garment_mask)

    box = get_bounding_box(garment_mask.values)
    if box is None or box.area == 0:
        return _no_region(image, NO_GARMENT_MESSAGE)

    start = time.perf_counter()
    x, y, width, height = box.as_tuple()

    if asset.is_color:
        patch = np.full((height, width, 3), asset.color, dtype=np.uint8)
    else:
        patch = cv2.resize(asset.image, (width, height), interpolation=cv2.INTER_CUBIC)

    region = garment_mask.values[y:y + height, x:x + width] > 0
    if asset.alpha is not None:
        region &= _resize_alpha(asset.alpha, width, height)
    if not region.any():
        return _no_region(image, NO_VISIBLE_ASSET_MESSAGE)

    result = image.copy()
    result[y:y + height, x:x + width, :3][region] = patch[region]

    composite_time = time.perf_counter() - start
    COMPOSITE_TIME.labels(operation="garment").observe(composite_time)
    logger.info({
        "event": "garment_composited",
        "asset": asset.name,
        "bounding_box": list(box.as_tuple()),
        "time": composite_time,
    })

    return CompositeResult(image=result, status=CompositeStatus.Applied, bounding_box=box)


def cut_out_subject(image: np.ndarray, subject_mask: RefinedMask) -> CompositeResult:
    """
    Remove the background by turning the subject mask into the alpha channel.

    Args:
        image (np.ndarray): RGB or RGBA photo. Not modified.
        subject_mask (RefinedMask): Subject mask at photo resolution.

    Returns:
        CompositeResult: RGBA photo with a transparent background.
    """
    rgb = validate_image(image)
    _check_mask(image, subject_mask)
    if subject_mask.is_empty:
        return _no_region(image, NO_SUBJECT_MESSAGE)

    start = time.perf_counter()

    alpha = subject_mask.values.astype(np.uint8)
    if image.shape[2] == 4:
        alpha = np.minimum(alpha, image[:, :, 3])

    result = np.dstack([rgb, alpha])

    composite_time = time.perf_counter() - start
    COMPOSITE_TIME.labels(operation="removal").observe(composite_time)
    logger.info({"event": "background_removed", "time": composite_time})

    return CompositeResult(image=result, status=CompositeStatus.Applied)
