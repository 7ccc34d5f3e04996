import numpy as np

from idphoto.segmentation.labels import PALETTE, ClothesClass, class_name, colorize_labels, overlay_labels


def test_palette_covers_every_class():
    assert set(PALETTE) == set(ClothesClass), "Every class needs a color"
    assert len(set(PALETTE.values())) == len(PALETTE), "Class colors must be distinct"


def test_colorize_labels():
    labels = np.array([[0, 4], [7, 11]], dtype=np.uint8)
    colored = colorize_labels(labels)

    assert colored.shape == (2, 2, 3)
    assert tuple(colored[0, 1]) == PALETTE[ClothesClass.UpperClothes]
    assert tuple(colored[1, 0]) == PALETTE[ClothesClass.Dress]


def test_overlay_resizes_labels_to_photo():
    photo = np.full((40, 60, 3), 200, dtype=np.uint8)
    labels = np.zeros((10, 15), dtype=np.uint8)

    overlay = overlay_labels(photo, labels, opacity=0.3)

    assert overlay.shape == photo.shape
    assert np.allclose(overlay, 140, atol=1), "Background is black, so the photo is darkened by the opacity"


def test_class_name():
    assert class_name(4) == "UpperClothes"
    assert class_name(99) == "class_99"
