import io

import numpy as np
from PIL import Image, UnidentifiedImageError

from idphoto.errors import InvalidImageError
from idphoto.logging import logger


def load_image(image_bytes: bytes) -> np.ndarray:
    """
    Decode image bytes into an RGB or RGBA array.

    Args:
        image_bytes (bytes): Encoded image data.

    Returns:
        np.ndarray: The decoded image, RGBA when the source has transparency.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            has_alpha = image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info
            return np.array(image.convert("RGBA" if has_alpha else "RGB"))
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.error({"event": "load_image_failed", "error": str(e)})
        raise InvalidImageError(f"Error reading image: {e}") from e


def get_image_png_bytes(image: np.ndarray) -> bytes:
    """
    Convert a NumPy array to a PNG image.

    Args:
        image (numpy.ndarray): The NumPy array representing the image.

    Returns:
        bytes: The PNG image data.
    """
    # Ensure the image is in uint8 format
    if image.dtype != np.uint8:
        image = (np.clip(image, 0, 1) * 255).astype(np.uint8)

    buffer = io.BytesIO()
    Image.fromarray(image).save(buffer, format="PNG")
    return buffer.getvalue()

