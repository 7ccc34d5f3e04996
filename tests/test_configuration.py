import pytest

from idphoto.configuration.base import Configuration, RefinementConfiguration, SegmentationConfiguration, \
    get_configuration

from tests.utils.configuration import configs_directory, get_custom_config_path, get_mock_garment_configuration


def test_garment_configuration_file():
    config = get_configuration(str(configs_directory / "segformer_clothes.json"))

    assert config.project_info.project_name == "segformer_clothes"
    assert config.model.transforms.image_size == (512, 512)
    assert config.segmentation.mode == "multiclass"
    assert config.segmentation.num_classes == 18
    assert config.segmentation.selected_classes == [4, 7]
    assert config.replacement.garments["formal"] == "Suit"


def test_saliency_configuration_file():
    config = get_configuration(str(configs_directory / "u2net.json"))

    assert config.model.transforms.image_size == (320, 320)
    assert config.segmentation.mode == "saliency"
    assert config.refinement.saliency_threshold == pytest.approx(0.2)
    assert config.refinement.saliency_gamma == pytest.approx(0.5)


def test_field_names_and_aliases_are_accepted():
    mock = get_mock_garment_configuration()
    mock["model"]["transforms"] = {
        "image_size": [256, 128],
        "mean": [0.5, 0.5, 0.5],
        "std": [0.5, 0.5, 0.5],
        "channel_order": "BGR",
    }
    mock["segmentation"] = {"selected_classes": [7, 4, 4]}

    config = Configuration(**mock)

    assert config.model.transforms.image_size == (256, 128)
    assert config.model.transforms.channel_order == "BGR"
    assert config.segmentation.selected_classes == [4, 7], "Selected classes are sorted and deduplicated"


def test_defaults():
    refinement = RefinementConfiguration()

    assert refinement.upscale_factor == 4
    assert (refinement.open_kernel, refinement.dilate_kernel, refinement.close_kernel) == (7, 9, 15)
    assert refinement.contour_tolerance_fraction == pytest.approx(0.01)
    assert refinement.saliency_threshold == pytest.approx(0.2)


def test_missing_configuration_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        get_configuration(str(tmp_path / "missing.json"))


def test_malformed_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{ not json")
    with pytest.raises(ValueError):
        get_configuration(str(path))


@pytest.mark.parametrize("refinement", [
    {"straightenBlurKernel": 10},
    {"openKernel": 0},
    {"saliencyThreshold": 1.5},
    {"saliencyGamma": 0},
    {"contourToleranceFraction": -0.1},
])
def test_invalid_refinement_is_rejected(tmp_path_factory, refinement):
    path = get_custom_config_path(tmp_path_factory, get_mock_garment_configuration(refinement=refinement))
    with pytest.raises(ValueError):
        get_configuration(path)


def test_invalid_transforms_are_rejected(tmp_path_factory):
    mock = get_mock_garment_configuration()
    mock["model"]["transforms"]["stdValues"] = [0.2, 0.0, 0.2]
    with pytest.raises(ValueError):
        get_configuration(get_custom_config_path(tmp_path_factory, mock))


def test_garment_classes_are_the_default_selection():
    assert SegmentationConfiguration().selected_classes == [4, 7]
