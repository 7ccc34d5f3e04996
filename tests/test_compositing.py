import numpy as np
import pytest

from idphoto.replacement.compositing import NO_GARMENT_MESSAGE, NO_SUBJECT_MESSAGE, NO_VISIBLE_ASSET_MESSAGE, \
    composite_background, composite_garment, cut_out_subject, get_bounding_box
from idphoto.structures import CompositeStatus, RefinedMask, ReplacementAsset

from tests.utils.fakes import get_photo


@pytest.fixture
def photo():
    return get_photo(width=120, height=90)


def _mask(shape, box=None, value=255) -> RefinedMask:
    values = np.zeros(shape, dtype=np.uint8)
    if box is not None:
        x, y, w, h = box
        values[y:y + h, x:x + w] = value
    return RefinedMask(values=values)


@pytest.mark.parametrize("seed", range(5))
def test_bounding_box_is_minimal(seed):
    rng = np.random.default_rng(seed)
    mask = np.zeros((50, 70), dtype=np.uint8)
    points = rng.integers(0, [50, 70], size=(6, 2))
    mask[points[:, 0], points[:, 1]] = 255

    box = get_bounding_box(mask)

    ys, xs = np.nonzero(mask)
    assert (box.x, box.y) == (xs.min(), ys.min()), f"Unexpected origin {box}"
    assert box.x + box.width - 1 == xs.max() and box.y + box.height - 1 == ys.max(), f"Unexpected size {box}"
    inside = mask[box.y:box.y + box.height, box.x:box.x + box.width]
    assert np.count_nonzero(inside) == np.count_nonzero(mask), "Every selected pixel must lie inside the box"


def test_bounding_box_of_empty_mask():
    assert get_bounding_box(np.zeros((10, 10), dtype=np.uint8)) is None


def test_garment_with_empty_mask_is_noop(photo):
    asset = ReplacementAsset(color=(255, 0, 0))

    result = composite_garment(photo, _mask(photo.shape[:2]), asset)

    assert result.status == CompositeStatus.NoRegion
    assert result.message == NO_GARMENT_MESSAGE
    assert np.array_equal(result.image, photo), "Empty selection must return the photo unchanged"
    assert result.image is not photo, "The no-op result must be a copy"


def test_garment_is_resized_to_bounding_box(photo):
    garment = np.zeros((10, 20, 3), dtype=np.uint8)
    garment[:, :10] = (255, 0, 0)
    garment[:, 10:] = (0, 0, 255)
    asset = ReplacementAsset(image=garment)

    result = composite_garment(photo, _mask(photo.shape[:2], box=(20, 30, 40, 20)), asset)

    assert result.applied
    assert result.bounding_box.as_tuple() == (20, 30, 40, 20)
    assert np.allclose(result.image[40, 22], (255, 0, 0), atol=1), "Left half of the box must show the left of the garment"
    assert np.allclose(result.image[40, 57], (0, 0, 255), atol=1), "Right half of the box must show the right of the garment"
    assert np.array_equal(result.image[:30], photo[:30]), "Pixels outside the mask must be untouched"


def test_garment_only_paints_selected_pixels(photo):
    values = np.zeros(photo.shape[:2], dtype=np.uint8)
    values[10:50, 10:50] = 255
    values[10:30, 10:30] = 0
    asset = ReplacementAsset(color=(0, 255, 0))

    result = composite_garment(photo, RefinedMask(values=values), asset)

    assert tuple(result.image[40, 40]) == (0, 255, 0)
    assert np.array_equal(result.image[15, 15], photo[15, 15]), "Unselected pixels inside the box must be untouched"


def test_garment_respects_asset_alpha(photo):
    alpha = np.ones((20, 20), dtype=bool)
    alpha[:, :10] = False
    asset = ReplacementAsset(image=np.full((20, 20, 3), 7, dtype=np.uint8), alpha=alpha)

    result = composite_garment(photo, _mask(photo.shape[:2], box=(0, 0, 60, 60)), asset)

    assert np.array_equal(result.image[:60, :30], photo[:60, :30]), \
        "Transparent garment pixels must never overwrite the photo"
    assert np.allclose(result.image[:60, 30:60], 7, atol=1), "Visible garment pixels must be painted"


def test_background_with_empty_mask_is_noop(photo):
    result = composite_background(photo, _mask(photo.shape[:2]), ReplacementAsset(color=(0, 0, 255)))

    assert result.status == CompositeStatus.NoRegion
    assert result.message == NO_SUBJECT_MESSAGE
    assert np.array_equal(result.image, photo)


def test_background_color_keeps_subject(photo):
    before = photo.copy()

    result = composite_background(photo, _mask(photo.shape[:2], box=(40, 20, 30, 50)), ReplacementAsset(color=(0, 0, 255)))

    assert result.applied
    assert np.array_equal(result.image[20:70, 40:70], photo[20:70, 40:70]), "The subject must be preserved"
    assert tuple(result.image[5, 5]) == (0, 0, 255), "The background must show the new color"
    assert np.array_equal(photo, before), "The input photo must not be modified"


def test_background_blends_soft_edges(photo):
    mask = _mask(photo.shape[:2], box=(40, 20, 30, 50), value=128)
    result = composite_background(photo, mask, ReplacementAsset(color=(0, 0, 0)))

    expected = np.rint(photo[30, 50].astype(np.float32) * (128 / 255.0))
    assert np.allclose(result.image[30, 50], expected, atol=1), "Half weights must blend photo and canvas"


def test_background_image_is_scaled_to_canvas(photo):
    background = np.zeros((9, 12, 3), dtype=np.uint8)
    background[:, :] = (10, 200, 30)
    result = composite_background(photo, _mask(photo.shape[:2], box=(40, 20, 30, 50)), ReplacementAsset(image=background))

    assert result.image.shape == photo.shape
    assert np.allclose(result.image[85, 115], (10, 200, 30), atol=1)


def test_background_respects_asset_alpha(photo):
    alpha = np.ones((90, 120), dtype=bool)
    alpha[:30] = False
    asset = ReplacementAsset(image=np.full((90, 120, 3), 3, dtype=np.uint8), alpha=alpha)

    result = composite_background(photo, _mask(photo.shape[:2], box=(50, 50, 10, 10)), asset)

    assert np.array_equal(result.image[:30], photo[:30]), "Transparent background pixels must keep the photo"
    assert tuple(result.image[80, 5]) == (3, 3, 3)


def test_background_keeps_alpha_channel():
    photo = np.dstack([get_photo(40, 30), np.full((30, 40), 255, dtype=np.uint8)])

    result = composite_background(photo, _mask((30, 40), box=(10, 10, 10, 10)), ReplacementAsset(color=(1, 2, 3)))

    assert result.image.shape == (30, 40, 4), "RGBA photos must stay RGBA"
    assert np.all(result.image[:, :, 3] == 255)


def test_background_with_foreground_estimation(photo):
    values = np.zeros(photo.shape[:2], dtype=np.uint8)
    values[20:70, 40:70] = 255
    values[20:70, 39] = 128

    result = composite_background(photo, RefinedMask(values=values, soft_edges=True),
                                  ReplacementAsset(color=(0, 0, 0)), estimate_foreground=True)

    assert result.applied
    assert np.array_equal(result.image[20:70, 40:70], photo[20:70, 40:70]), "Opaque subject pixels must be kept"
    assert tuple(result.image[5, 5]) == (0, 0, 0)


def test_mask_shape_mismatch_is_rejected(photo):
    with pytest.raises(ValueError):
        composite_garment(photo, _mask((10, 10), box=(0, 0, 5, 5)), ReplacementAsset(color=(0, 0, 0)))


def test_cut_out_subject(photo):
    result = cut_out_subject(photo, _mask(photo.shape[:2], box=(40, 20, 30, 50)))

    assert result.applied
    assert result.image.shape == (90, 120, 4)
    assert np.array_equal(result.image[:, :, :3], photo)
    assert result.image[30, 50, 3] == 255 and result.image[5, 5, 3] == 0


def test_cut_out_with_empty_mask_is_noop(photo):
    result = cut_out_subject(photo, _mask(photo.shape[:2]))
    assert result.status == CompositeStatus.NoRegion
    assert np.array_equal(result.image, photo)


def test_fully_transparent_background_is_noop(photo):
    asset = ReplacementAsset(image=np.full((90, 120, 3), 3, dtype=np.uint8), alpha=np.zeros((90, 120), dtype=bool))

    result = composite_background(photo, _mask(photo.shape[:2], box=(40, 20, 30, 50)), asset)

    assert result.status == CompositeStatus.NoRegion
    assert result.message == NO_VISIBLE_ASSET_MESSAGE
    assert np.array_equal(result.image, photo)


def test_background_hidden_by_subject_is_noop(photo):
    alpha = np.zeros((90, 120), dtype=bool)
    alpha[20:70, 40:70] = True
    asset = ReplacementAsset(image=np.full((90, 120, 3), 3, dtype=np.uint8), alpha=alpha)

    result = composite_background(photo, _mask(photo.shape[:2], box=(40, 20, 30, 50)), asset)

    assert result.status == CompositeStatus.NoRegion, "The asset is only visible behind the opaque subject"


def test_garment_outside_asset_alpha_is_noop(photo):
    alpha = np.zeros((20, 20), dtype=bool)
    asset = ReplacementAsset(image=np.full((20, 20, 3), 7, dtype=np.uint8), alpha=alpha)

    result = composite_garment(photo, _mask(photo.shape[:2], box=(0, 0, 60, 60)), asset)

    assert result.status == CompositeStatus.NoRegion
    assert result.message == NO_VISIBLE_ASSET_MESSAGE
    assert result.bounding_box is None
    assert np.array_equal(result.image, photo)
