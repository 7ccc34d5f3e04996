import numpy as np
import pytest

from idphoto.editing.operations import MM_TO_PX, center_face, crop_image, detect_faces, enhance_image, \
    get_face_classifier, resize_image, tile_layout
from idphoto.errors import InvalidImageError
from idphoto.structures import BoundingBox
from idphoto.utils.processing import get_image_png_bytes, load_image

from tests.utils.fakes import get_photo, get_solid_png_bytes


@pytest.fixture
def photo():
    return get_photo(width=120, height=80)


def test_crop(photo):
    cropped = crop_image(photo, 10, 20, 30, 40)

    assert cropped.shape == (40, 30, 3)
    assert np.array_equal(cropped, photo[20:60, 10:40])
    cropped[:] = 0
    assert photo[20, 10].any(), "The crop must be a copy"


def test_crop_is_clamped_to_photo(photo):
    cropped = crop_image(photo, -5, 70, 200, 50)
    assert cropped.shape == (10, 120, 3), f"Unexpected shape {cropped.shape}"


@pytest.mark.parametrize("x, y, width, height", [(0, 0, 0, 10), (0, 0, 10, -1), (120, 0, 10, 10), (0, 80, 10, 10)])
def test_invalid_crop(photo, x, y, width, height):
    with pytest.raises(InvalidImageError) as exc_info:
        crop_image(photo, x, y, width, height)
    assert exc_info.value.user_message


def test_resize(photo):
    assert resize_image(photo, 60, 20).shape == (20, 60, 3)
    assert resize_image(photo, 240, 160).shape == (160, 240, 3)


def test_resize_keeps_aspect_ratio(photo):
    assert resize_image(photo, width=60, keep_aspect_ratio=True).shape == (40, 60, 3)
    assert resize_image(photo, height=160, keep_aspect_ratio=True).shape == (160, 240, 3)
    assert resize_image(photo, width=30, height=999, keep_aspect_ratio=True).shape == (20, 30, 3), \
        "The width wins when both sizes are given"


@pytest.mark.parametrize("width, height", [(None, 10), (10, None), (0, 10), (10, -3)])
def test_invalid_resize(photo, width, height):
    with pytest.raises(InvalidImageError):
        resize_image(photo, width, height)


def test_resize_keeps_alpha():
    photo = np.dstack([get_photo(40, 30), np.full((30, 40), 255, dtype=np.uint8)])
    assert resize_image(photo, 20, 15).shape == (15, 20, 4)


def test_load_image_round_trip(photo):
    loaded = load_image(get_image_png_bytes(photo))
    assert np.array_equal(loaded, photo)


def test_load_transparent_image():
    alpha = np.full((80, 60), 128, dtype=np.uint8)
    loaded = load_image(get_solid_png_bytes((1, 2, 3), alpha=alpha))
    assert loaded.shape == (80, 60, 4)


def test_load_invalid_image():
    with pytest.raises(InvalidImageError):
        load_image(b"not an image")


def test_enhance_without_change_is_identity(photo):
    enhanced = enhance_image(photo)
    assert np.array_equal(enhanced, photo)
    assert enhanced is not photo


def test_enhance_brightness():
    gray = np.full((4, 4, 3), 100, dtype=np.uint8)

    assert enhance_image(gray, brightness=20)[0, 0, 0] == 131, "A fifth of the way towards white"
    assert enhance_image(gray, brightness=-50)[0, 0, 0] == 50, "Half the intensity"
    assert enhance_image(gray, brightness=100)[0, 0, 0] == 255


def test_enhance_contrast():
    image = np.array([[[64, 128, 192]]], dtype=np.uint8)

    stretched = enhance_image(image, contrast=50)[0, 0]
    assert tuple(int(value) for value in stretched) == (32, 128, 224)

    # Contrast is never flattened completely
    flattened = enhance_image(image, contrast=-100)[0, 0]
    assert tuple(int(value) for value in flattened) == (121, 128, 134)


def test_enhance_keeps_alpha():
    alpha = np.arange(16, dtype=np.uint8).reshape(4, 4)
    photo = np.dstack([np.full((4, 4, 3), 100, dtype=np.uint8), alpha])

    enhanced = enhance_image(photo, brightness=20)

    assert np.array_equal(enhanced[:, :, 3], alpha)


@pytest.mark.parametrize("brightness, contrast", [(101, 0), (0, -101)])
def test_invalid_enhancement(photo, brightness, contrast):
    with pytest.raises(InvalidImageError) as exc_info:
        enhance_image(photo, brightness=brightness, contrast=contrast)
    assert exc_info.value.user_message


def test_tile_layout():
    photo = np.zeros((30, 20, 3), dtype=np.uint8)

    sheet = tile_layout(photo, rows=2, cols=3, sheet_width_mm=100, sheet_height_mm=50)

    assert sheet.shape == (round(50 * MM_TO_PX), round(100 * MM_TO_PX), 3)
    assert not sheet[:60, :60].any(), "The grid starts at the top left corner"
    assert (sheet[60:, :] == 255).all() and (sheet[:, 60:] == 255).all(), "The rest of the sheet is white"


def test_tile_layout_border():
    photo = np.zeros((30, 20, 3), dtype=np.uint8)
    border = round(2 * MM_TO_PX)

    sheet = tile_layout(photo, rows=1, cols=2, sheet_width_mm=100, sheet_height_mm=50, border_mm=2)
    tile_width = 20 + 2 * border

    assert (sheet[:border, :] == 255).all()
    assert not sheet[border:border + 30, border:border + 20].any()
    assert not sheet[border:border + 30, tile_width + border:tile_width + border + 20].any()
    assert (sheet[border:border + 30, border + 20:tile_width + border] == 255).all(), "Borders between copies"


def test_tile_layout_scales_down_to_fit():
    photo = get_photo(width=200, height=300)

    sheet = tile_layout(photo, rows=2, cols=2, sheet_width_mm=50, sheet_height_mm=50)

    assert sheet.shape == (189, 189, 3)
    # 2 rows of 300 px are scaled into 189 px, copies stay 2:3
    assert (sheet[:, 126:] == 255).all()
    assert (sheet[188:, :] == 255).all()
    assert sheet[:, :126].min() < 255


def test_tile_layout_flattens_transparency():
    photo = np.zeros((10, 10, 4), dtype=np.uint8)
    sheet = tile_layout(photo, rows=1, cols=1, sheet_width_mm=10, sheet_height_mm=10)
    assert sheet.shape[2] == 3 and (sheet == 255).all(), "Transparent pixels print as white paper"


@pytest.mark.parametrize("rows, cols, width_mm", [(0, 1, 100), (1, 0, 100), (1, 1, 0)])
def test_invalid_layout(photo, rows, cols, width_mm):
    with pytest.raises(InvalidImageError):
        tile_layout(photo, rows=rows, cols=cols, sheet_width_mm=width_mm, sheet_height_mm=100)


def test_center_face():
    photo = np.zeros((40, 100, 3), dtype=np.uint8)
    face = BoundingBox(x=60, y=10, width=20, height=20)

    centered = center_face(photo, [face])

    assert centered.shape == photo.shape
    # The face center moves from x=70 to x=50
    assert (centered[:, 80:] == 255).all(), "Uncovered pixels are white"
    assert not centered[:, :80].any()


def test_center_face_weights_faces_by_area():
    photo = np.zeros((40, 100, 3), dtype=np.uint8)
    faces = [BoundingBox(x=40, y=0, width=20, height=20), BoundingBox(x=75, y=0, width=10, height=10)]

    # (50 * 400 + 80 * 100) / 500 = 56
    centered = center_face(photo, faces)

    assert (centered[:, 94:] == 255).all() and not centered[:, :94].any()


def test_center_face_without_faces(photo):
    centered = center_face(photo, [])
    assert np.array_equal(centered, photo)
    assert centered is not photo


def test_no_face_in_blank_photo():
    photo = np.full((200, 160, 3), 255, dtype=np.uint8)
    assert detect_faces(photo, get_face_classifier()) == []
