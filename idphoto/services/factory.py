from idphoto.configuration.base import Configuration
from idphoto.settings import Settings
from idphoto.services.base import BaseModelService


def get_model_service(settings: Settings, configuration: Configuration) -> BaseModelService:
    """
    Returns the model service based on the model type specified in the project info.

    Args:
        settings (Settings): The settings object containing configuration.
        configuration (Configuration): The configuration related to the project.

    Returns:
        BaseModelService: An instance of the appropriate model service.
    """
    model_type = configuration.project_info.model_type

    if model_type == "onnx":
        from idphoto.services.onnx_model_service import OnnxModelService
        return OnnxModelService(settings, configuration)
    elif model_type == "torchscript":
        from idphoto.services.torchscript_model_service import TorchScriptModelService
        return TorchScriptModelService(settings, configuration)
    else:
        raise ValueError(f"Unknown model type: {model_type}")
