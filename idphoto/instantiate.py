from typing import Optional

from idphoto.configuration.base import get_configuration
from idphoto.logging import logger, set_log_level
from idphoto.pipeline import PhotoEditor
from idphoto.replacement.assets import FileSystemAssetStore
from idphoto.services.base import BaseModelService
from idphoto.services.factory import get_model_service
from idphoto.sessions import PhotoSessionStore
from idphoto.settings import Settings, get_settings


def _load_service(settings: Settings, configuration_path: str) -> BaseModelService:
    configuration = get_configuration(configuration_path)
    model_service = get_model_service(settings, configuration)

    try:
        model_service.load_model()
    except Exception as e:
        logger.error({"event": "startup_failed", "configuration": configuration_path, "error": str(e)})
        raise

    return model_service


def instantiate(settings: Optional[Settings] = None) -> PhotoEditor:
    """
    Builds a photo editor with loaded models from the settings.

    Args:
        settings (Optional[Settings]): Settings to use, read from the environment when omitted.

    Returns:
        PhotoEditor: The ready-to-use editor.
    """
    settings = settings if settings is not None else get_settings()
    set_log_level(settings.LOG_LEVEL)

    garment_service = _load_service(settings, settings.GARMENT_CONFIG_PATH)

    saliency_service = None
    if settings.SALIENCY_CONFIG_PATH:
        saliency_service = _load_service(settings, settings.SALIENCY_CONFIG_PATH)

    logger.info({
        "event": "editor_ready",
        "garment_model": garment_service.project_name,
        "saliency_model": saliency_service.project_name if saliency_service is not None else None,
        "hardware": garment_service.hardware,
    })

    return PhotoEditor(
        garment_service=garment_service,
        asset_store=FileSystemAssetStore(settings.ASSETS_DIRECTORY),
        saliency_service=saliency_service,
        sessions=PhotoSessionStore(),
    )
