from typing import List, Optional, Sequence

import cv2
import numpy as np

from idphoto.errors import InferenceUnavailableError, InvalidImageError
from idphoto.logging import logger
from idphoto.structures import BoundingBox
from idphoto.utils.transforms import validate_image

NO_FACE_MESSAGE = "No face detected in the photo. Try a photo where the face is clearly visible."

# Print sheets are laid out at 96 dpi
MM_TO_PX = 96 / 25.4

WHITE = (255, 255, 255)


def crop_image(image: np.ndarray, x: int, y: int, width: int, height: int) -> np.ndarray:
    """
    Crop a rectangle out of the photo, clamped to the photo bounds.

    Args:
        image (np.ndarray): RGB or RGBA photo.
        x (int): Left edge. Negative values are clamped to 0.
        y (int): Top edge. Negative values are clamped to 0.
        width (int): Requested width, must be positive.
        height (int): Requested height, must be positive.

    Returns:
        np.ndarray: The cropped copy.
    """
    validate_image(image)
    if width <= 0 or height <= 0:
        raise InvalidImageError(
            f"Invalid crop size {width}x{height}",
            user_message="Invalid crop dimensions: width and height must be positive.",
        )

    image_height, image_width = image.shape[:2]
    x, y = max(0, x), max(0, y)
    if x >= image_width or y >= image_height:
        raise InvalidImageError(
            f"Crop origin ({x}, {y}) lies outside a {image_width}x{image_height} image",
            user_message="The crop area lies outside the photo.",
        )

    width = min(width, image_width - x)
    height = min(height, image_height - y)

    return image[y:y + height, x:x + width].copy()


def resize_image(
        image: np.ndarray,
        width: Optional[int] = None,
        height: Optional[int] = None,
        keep_aspect_ratio: bool = False,
) -> np.ndarray:
    """
    Resize the photo.

    With keep_aspect_ratio the missing dimension is derived from the one given; when both
    are given the width wins.

    Args:
        image (np.ndarray): RGB or RGBA photo.
        width (Optional[int]): Target width.
        height (Optional[int]): Target height.
        keep_aspect_ratio (bool): Keep the photo's aspect ratio.

    Returns:
        np.ndarray: The resized copy.
    """
    validate_image(image)
    image_height, image_width = image.shape[:2]

    if keep_aspect_ratio:
        aspect_ratio = image_width / image_height
        if width is not None:
            height = max(1, int(round(width / aspect_ratio)))
        elif height is not None:
            width = max(1, int(round(height * aspect_ratio)))

    if width is None or height is None or width <= 0 or height <= 0:
        raise InvalidImageError(
            f"Invalid resize size {width}x{height}",
            user_message="Invalid resize dimensions: width and height must be positive.",
        )

    shrinking = width * height < image_width * image_height
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_CUBIC

    return cv2.resize(image, (width, height), interpolation=interpolation)


def enhance_image(image: np.ndarray, brightness: float = 0.0, contrast: float = 0.0) -> np.ndarray:
    """
    Adjust brightness and contrast.

    Negative brightness scales the channels down, positive brightness moves them towards
    white. Contrast then stretches or compresses the channels around mid-grey.

    Args:
        image (np.ndarray): RGB or RGBA photo. The alpha channel is kept.
        brightness (float): Brightness change in [-100, 100], 0 = unchanged.
        contrast (float): Contrast change in [-100, 100], 0 = unchanged.

    Returns:
        np.ndarray: The adjusted copy.
    """
    rgb = validate_image(image)
    if not (-100 <= brightness <= 100 and -100 <= contrast <= 100):
        raise InvalidImageError(
            f"Invalid enhancement brightness={brightness} contrast={contrast}",
            user_message="Brightness and contrast must be between -100 and 100.",
        )

    if brightness == 0 and contrast == 0:
        return image.copy()

    amount = brightness / 100.0
    factor = max(0.1, 1.0 + contrast / 100.0)

    values = rgb.astype(np.float32)
    if amount < 0:
        values *= 1.0 + amount
    elif amount > 0:
        values += amount * (255.0 - values)

    values = ((values / 255.0 - 0.5) * factor + 0.5) * 255.0

    result = image.copy()
    result[:, :, :3] = np.clip(np.rint(values), 0, 255).astype(np.uint8)
    return result


def _flatten(image: np.ndarray) -> np.ndarray:
    """Blend an RGBA photo over white paper."""
    rgb = validate_image(image)
    if image.shape[2] == 3:
        return rgb.copy()

    alpha = image[:, :, 3:].astype(np.float32) / 255.0
    flattened = rgb.astype(np.float32) * alpha + 255.0 * (1.0 - alpha)
    return np.clip(np.rint(flattened), 0, 255).astype(np.uint8)


def tile_layout(
        image: np.ndarray,
        rows: int,
        cols: int,
        sheet_width_mm: float,
        sheet_height_mm: float,
        border_mm: float = 0.0,
) -> np.ndarray:
    """
    Repeat the photo in a grid on a white print sheet.

    Every copy gets a white border. Copies keep their pixel size when the grid fits on the
    sheet, otherwise they are scaled down uniformly until it does.

    Args:
        image (np.ndarray): RGB or RGBA photo. Transparency is flattened onto white.
        rows (int): Number of rows, at least 1.
        cols (int): Number of columns, at least 1.
        sheet_width_mm (float): Sheet width in millimeters.
        sheet_height_mm (float): Sheet height in millimeters.
        border_mm (float): Border around every copy in millimeters.

    Returns:
        np.ndarray: RGB sheet.
    """
    photo = _flatten(image)

    sheet_width = int(round(sheet_width_mm * MM_TO_PX))
    sheet_height = int(round(sheet_height_mm * MM_TO_PX))
    border = int(round(border_mm * MM_TO_PX))
    if rows < 1 or cols < 1 or sheet_width < 1 or sheet_height < 1 or border < 0:
        raise InvalidImageError(
            f"Invalid layout {rows}x{cols} on {sheet_width_mm}x{sheet_height_mm} mm with border {border_mm} mm",
            user_message="Invalid layout: rows, columns and sheet size must be positive.",
        )

    if border > 0:
        photo = cv2.copyMakeBorder(photo, border, border, border, border, cv2.BORDER_CONSTANT, value=WHITE)

    tile_height, tile_width = photo.shape[:2]
    scale = min(1.0, sheet_width / (cols * tile_width), sheet_height / (rows * tile_height))
    if scale < 1.0:
        tile_width = max(1, int(tile_width * scale))
        tile_height = max(1, int(tile_height * scale))
        photo = cv2.resize(photo, (tile_width, tile_height), interpolation=cv2.INTER_AREA)

    sheet = np.full((sheet_height, sheet_width, 3), WHITE, dtype=np.uint8)
    for row in range(rows):
        for col in range(cols):
            x, y = col * tile_width, row * tile_height
            sheet[y:y + tile_height, x:x + tile_width] = photo

    logger.info({
        "event": "layout_created",
        "grid": [rows, cols],
        "sheet": [sheet_width, sheet_height],
        "tile": [tile_width, tile_height],
    })

    return sheet


def get_face_classifier(path: Optional[str] = None) -> cv2.CascadeClassifier:
    """
    Load a Haar cascade face detector.

    Args:
        path (Optional[str]): Cascade XML file, the frontal face cascade shipped with OpenCV when omitted.

    Returns:
        cv2.CascadeClassifier: The loaded detector.
    """
    path = path or cv2.data.haarcascades + "haarcascade_frontalface_default.xml"
    classifier = cv2.CascadeClassifier(path)
    if classifier.empty():
        logger.error({"event": "face_detector_load_failed", "path": path})
        raise InferenceUnavailableError(f"Face detector could not be loaded from {path}")

    return classifier


def detect_faces(image: np.ndarray, classifier: cv2.CascadeClassifier) -> List[BoundingBox]:
    """
    Find frontal faces covering at least a tenth of the photo in each direction.

    Args:
        image (np.ndarray): RGB or RGBA photo.
        classifier (cv2.CascadeClassifier): The face detector.

    Returns:
        List[BoundingBox]: Detected faces, possibly empty.
    """
    rgb = validate_image(image)
    height, width = rgb.shape[:2]

    gray = cv2.cvtColor(np.ascontiguousarray(rgb), cv2.COLOR_RGB2GRAY)
    gray = cv2.equalizeHist(gray)

    faces = classifier.detectMultiScale(
        gray,
        scaleFactor=1.1,
        minNeighbors=3,
        minSize=(max(1, int(width * 0.1)), max(1, int(height * 0.1))),
    )

    return [BoundingBox(x=int(x), y=int(y), width=int(w), height=int(h)) for (x, y, w, h) in faces]


def center_face(image: np.ndarray, faces: Sequence[BoundingBox]) -> np.ndarray:
    """
    Shift the photo horizontally so the faces are centered.

    Several faces are combined into one center weighted by face area. The vertical position
    is kept and uncovered pixels are filled with white.

    Args:
        image (np.ndarray): RGB or RGBA photo.
        faces (Sequence[BoundingBox]): Detected faces.

    Returns:
        np.ndarray: The shifted copy, same size as the input. Unchanged when there are no faces.
    """
    validate_image(image)
    if not faces:
        return image.copy()

    areas = np.array([face.area for face in faces], dtype=np.float64)
    centers = np.array([face.x + face.width // 2 for face in faces], dtype=np.float64)
    face_center = int(np.sum(centers * areas) / np.sum(areas))

    height, width = image.shape[:2]
    offset = width // 2 - face_center
    translation = np.float32([[1, 0, offset], [0, 1, 0]])

    return cv2.warpAffine(
        np.ascontiguousarray(image),
        translation,
        (width, height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(255,) * image.shape[2],
    )
