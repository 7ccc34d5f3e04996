from typing import Optional

import numpy as np

from idphoto.configuration.base import SegmentationConfiguration
from idphoto.errors import InvalidModelOutputError
from idphoto.structures import LabelMask, MaskKind

# Below this spread a saliency map is treated as flat and left as is
_MIN_PROBABILITY_RANGE = 1e-6


def _validate_volume(volume: np.ndarray) -> np.ndarray:
    """
    Checks the raw model output and strips the batch dimension.

    Args:
        volume (np.ndarray): Score volume of shape (1, C, H', W').

    Returns:
        np.ndarray: Scores of shape (C, H', W').
    """
    volume = np.asarray(volume)
    if volume.ndim != 4:
        raise InvalidModelOutputError(f"Expected a 4-D score volume, got shape {volume.shape}")
    if volume.shape[0] != 1:
        raise InvalidModelOutputError(f"Expected a batch size of 1, got {volume.shape[0]}")
    if volume.shape[1] == 0:
        raise InvalidModelOutputError("Score volume has no classes")
    if volume.shape[2] == 0 or volume.shape[3] == 0:
        raise InvalidModelOutputError(f"Score volume has a zero spatial dimension: {volume.shape}")
    if not np.all(np.isfinite(volume)):
        raise InvalidModelOutputError("Score volume contains non-finite values")

    return volume[0]


def argmax_labels(volume: np.ndarray, num_classes: Optional[int] = None) -> LabelMask:
    """
    Assign every pixel the class with the highest score.

    Ties go to the lowest class index.

    Args:
        volume (np.ndarray): Score volume of shape (1, C, H', W').
        num_classes (Optional[int]): Only the first `num_classes` channels are considered.

    Returns:
        LabelMask: Integer class indices at the volume's native resolution.
    """
    scores = _validate_volume(volume)
    if num_classes is not None:
        if num_classes < 1:
            raise InvalidModelOutputError(f"num_classes must be at least 1, got {num_classes}")
        scores = scores[:num_classes]

    count = scores.shape[0]
    # np.argmax returns the first occurrence of the maximum
    labels = np.argmax(scores, axis=0).astype(np.uint8 if count <= 256 else np.int32)

    return LabelMask(values=labels, kind=MaskKind.MultiClass, num_classes=count)


def stable_sigmoid(logits: np.ndarray) -> np.ndarray:
    logits = np.asarray(logits, dtype=np.float64)
    result = np.empty_like(logits)

    positive = logits >= 0
    result[positive] = 1.0 / (1.0 + np.exp(-logits[positive]))
    exp_negative = np.exp(logits[~positive])
    result[~positive] = exp_negative / (1.0 + exp_negative)

    return result


def sigmoid_probabilities(volume: np.ndarray, renormalize: bool = True) -> LabelMask:
    """
    Turn a single-channel logit map into per-pixel probabilities.

    Args:
        volume (np.ndarray): Score volume of shape (1, C, H', W'). Only channel 0 is used.
        renormalize (bool): Stretch the observed [min, max] onto [0, 1].

    Returns:
        LabelMask: Float32 probabilities in [0, 1].
    """
    scores = _validate_volume(volume)
    probabilities = stable_sigmoid(scores[0])

    if renormalize:
        low, high = float(probabilities.min()), float(probabilities.max())
        if high - low > _MIN_PROBABILITY_RANGE:
            probabilities = (probabilities - low) / (high - low)

    return LabelMask(
        values=np.clip(probabilities, 0.0, 1.0).astype(np.float32),
        kind=MaskKind.Saliency,
        num_classes=1,
    )


def synthesize_label_mask(volume: np.ndarray, config: SegmentationConfiguration) -> LabelMask:
    if config.mode == "saliency":
        return sigmoid_probabilities(volume, renormalize=config.renormalize)

    return argmax_labels(volume, num_classes=config.num_classes)
