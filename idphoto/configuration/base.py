from typing import Tuple, List, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import json

from idphoto.segmentation.labels import GARMENT_CLASSES


class ProjectInfoConfiguration(BaseModel):
    project_name: str = Field(...)
    model_type: str = Field(...)


class ModelTransformsConfiguration(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # (height, width) of the network input
    image_size: Tuple[int, int] = Field(..., alias="inputSize")
    mean: List[float] = Field(..., alias="meanValues")
    std: List[float] = Field(..., alias="stdValues")
    channel_order: Literal["RGB", "BGR"] = Field("RGB", alias="channelOrder")

    @field_validator("image_size")
    @classmethod
    def _check_image_size(cls, value: Tuple[int, int]) -> Tuple[int, int]:
        if value[0] < 1 or value[1] < 1:
            raise ValueError(f"image_size must be positive, got {value}")
        return value

    @field_validator("mean", "std")
    @classmethod
    def _check_channels(cls, value: List[float]) -> List[float]:
        if len(value) != 3:
            raise ValueError(f"Expected 3 per-channel values, got {len(value)}")
        return value

    @field_validator("std")
    @classmethod
    def _check_std(cls, value: List[float]) -> List[float]:
        if any(v == 0 for v in value):
            raise ValueError("std values must be non-zero")
        return value


class ModelConfiguration(BaseModel):
    model_path: str = Field(...)
    transforms: ModelTransformsConfiguration


class SegmentationConfiguration(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mode: Literal["multiclass", "saliency"] = Field("multiclass")
    num_classes: Optional[int] = Field(None, alias="numClasses")
    selected_classes: List[int] = Field(
        default_factory=lambda: [int(cls) for cls in GARMENT_CLASSES],
        alias="selectedClasses",
    )
    renormalize: bool = Field(True)

    @field_validator("selected_classes")
    @classmethod
    def _check_selected_classes(cls, value: List[int]) -> List[int]:
        if any(v < 0 for v in value):
            raise ValueError(f"Class indices must be non-negative, got {value}")
        return sorted(set(value))


class RefinementConfiguration(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Multi-class path
    upscale_factor: int = Field(4, alias="upscaleFactor")
    label_kernel: int = Field(3, alias="labelKernel")
    open_kernel: int = Field(7, alias="openKernel")
    dilate_kernel: int = Field(9, alias="dilateKernel")
    close_kernel: int = Field(15, alias="closeKernel")
    straighten_blur_kernel: int = Field(11, alias="straightenBlurKernel")
    straighten_blur_sigma: float = Field(5.0, alias="straightenBlurSigma")
    contour_tolerance_fraction: float = Field(0.01, alias="contourToleranceFraction")
    contour_blur_kernel: int = Field(21, alias="contourBlurKernel")
    contour_blur_sigma: float = Field(7.0, alias="contourBlurSigma")

    # Binary saliency path
    saliency_threshold: float = Field(0.2, alias="saliencyThreshold")
    saliency_gamma: float = Field(0.5, alias="saliencyGamma")
    saliency_close_kernel: int = Field(3, alias="saliencyCloseKernel")
    saliency_blur_kernel: int = Field(3, alias="saliencyBlurKernel")

    @field_validator(
        "upscale_factor", "label_kernel", "open_kernel", "dilate_kernel", "close_kernel",
        "saliency_close_kernel",
    )
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"Value must be at least 1, got {value}")
        return value

    @field_validator("straighten_blur_kernel", "contour_blur_kernel", "saliency_blur_kernel")
    @classmethod
    def _check_odd(cls, value: int) -> int:
        if value < 1 or value % 2 == 0:
            raise ValueError(f"Gaussian kernel size must be a positive odd number, got {value}")
        return value

    @field_validator("saliency_threshold")
    @classmethod
    def _check_threshold(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"saliency_threshold must be in [0, 1], got {value}")
        return value

    @field_validator("contour_tolerance_fraction")
    @classmethod
    def _check_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError(f"Value must be non-negative, got {value}")
        return value

    @field_validator("saliency_gamma")
    @classmethod
    def _check_gamma(cls, value: float) -> float:
        if value <= 0:
            raise ValueError(f"saliency_gamma must be positive, got {value}")
        return value


class ReplacementConfiguration(BaseModel):
    garments: Dict[str, str] = Field(
        default_factory=lambda: {
            "formal": "Suit",
            "business": "BusinessCasual",
            "dress": "FormalDress",
        }
    )
    default_garment: str = Field("formal")
    estimate_foreground: bool = Field(False)


class Configuration(BaseModel):
    project_info: ProjectInfoConfiguration
    model: ModelConfiguration
    segmentation: SegmentationConfiguration = Field(default_factory=SegmentationConfiguration)
    refinement: RefinementConfiguration = Field(default_factory=RefinementConfiguration)
    replacement: ReplacementConfiguration = Field(default_factory=ReplacementConfiguration)


def get_configuration(configuration_path: str = "./configs/segformer_clothes.json") -> Configuration:
    """
    Loads the configuration from a JSON file.

    Args:
        configuration_path (str): The path to the configuration file.

    Returns:
        Configuration: The loaded configuration object.
    """
    try:
        with open(configuration_path, 'r') as file:
            config = json.load(file)
        return Configuration(**config)
    except FileNotFoundError as e:
        raise FileNotFoundError(f"Configuration file not found: {configuration_path}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Error decoding JSON from configuration file: {configuration_path}") from e
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {configuration_path}: {e}") from e
    except TypeError as e:
        raise ValueError(f"Error loading configuration: {e}") from e
