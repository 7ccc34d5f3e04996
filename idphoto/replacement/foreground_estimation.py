import pymatting
import numpy as np


def get_foreground_estimation(image: np.ndarray, alpha_mask: np.ndarray) -> np.ndarray:
    """
    Estimate the subject colors inside a soft mask edge.

    Mixed edge pixels still carry some of the old background; the estimated foreground
    removes that spill so the new background does not show a halo of the old one.

    Args:
        image (np.ndarray): RGB image with values between 0 and 1.
        alpha_mask (numpy.ndarray): Subject mask with values between 0 and 1 (subject = 1).

    Returns:
        numpy.ndarray: Foreground image with values between 0 and 1.
    """
    foreground = pymatting.estimate_foreground_ml(
        image=image.astype(np.float64),
        alpha=alpha_mask.astype(np.float64),
    )

    return np.clip(foreground, 0.0, 1.0)
