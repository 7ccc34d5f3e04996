from abc import ABC, abstractmethod
import threading
import time

import numpy as np

from idphoto.configuration.base import Configuration
from idphoto.errors import InferenceUnavailableError, InvalidModelOutputError
from idphoto.logging import logger
from idphoto.metrics import INFERENCE_TIME
from idphoto.settings import Settings
from idphoto.utils.transforms import get_transforms, preprocess_image


class BaseModelService(ABC):
    def __init__(self, settings: Settings, config: Configuration):
        """
        Initializes the BaseModelService with the given configuration.

        Args:
            settings (Settings): The configuration settings for the service.
            config (Configuration): The model configuration.
        """
        self.settings = settings
        self.config = config

        self.transforms = get_transforms(
            size=self.config.model.transforms.image_size,
            mean=self.config.model.transforms.mean,
            std=self.config.model.transforms.std,
            channel_order=self.config.model.transforms.channel_order,
        )

        self.use_gpu = self._is_gpu_available() and self.settings.USE_GPU
        self.project_name = self.config.project_info.project_name
        self.model_type = self.config.project_info.model_type
        self.hardware = "GPU" if self.use_gpu else "CPU"

        # Most runtimes are not reentrant, so calls on one session are serialized
        self._lock = threading.Lock()

    @property
    def input_shape(self):
        height, width = self.config.model.transforms.image_size
        return 1, 3, height, width

    @property
    @abstractmethod
    def is_loaded(self) -> bool:
        """Whether a runtime session is ready for inference."""
        pass

    @abstractmethod
    def load_model(self) -> None:
        """Load the model from disk and initialize runtime resources."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the runtime session."""
        pass

    @abstractmethod
    def _run(self, tensor: np.ndarray) -> np.ndarray:
        """Run the network on a preprocessed tensor and return the first output."""
        pass

    def _is_gpu_available(self) -> bool:
        return False

    def refresh(self) -> None:
        """
        Drop the current runtime session and create a fresh one.
        """
        logger.info({"event": "session_refresh", "model": self.project_name})
        self.close()
        self.load_model()

    def preprocess(self, image: np.ndarray) -> np.ndarray:
        return preprocess_image(image, self.transforms)

    def predict(self, tensor: np.ndarray) -> np.ndarray:
        """
        Perform inference on a single preprocessed tensor.

        A failing call is retried once on a fresh session before the failure is surfaced.

        Args:
            tensor (np.ndarray): Input tensor of shape (1, 3, H, W).

        Returns:
            np.ndarray: The raw score volume of shape (1, C, H', W').
        """
        if tuple(tensor.shape) != self.input_shape:
            raise ValueError(f"Expected input tensor of shape {self.input_shape}, got {tuple(tensor.shape)}")

        with self._lock:
            # A failed refresh leaves the session closed until the next request reloads it
            if not self.is_loaded:
                try:
                    self.load_model()
                except Exception as e:
                    logger.error({"event": "model_reload_failed", "model": self.project_name, "error": str(e)})
                    raise InferenceUnavailableError(f"Model not loaded: {e}") from e

            inf_start = time.perf_counter()
            try:
                output = self._run(tensor)
            except Exception as e:
                logger.warning({"event": "inference_failed", "attempt": 1, "error": str(e)})
                try:
                    self.refresh()
                    output = self._run(tensor)
                except Exception as retry_error:
                    logger.error({"event": "inference_failed", "attempt": 2, "error": str(retry_error)})
                    raise InferenceUnavailableError(f"Inference failed: {retry_error}") from retry_error

            # Log the inference time
            inference_time = time.perf_counter() - inf_start
            INFERENCE_TIME.labels(
                model=self.project_name,
                type=self.model_type,
                hardware=self.hardware
            ).observe(inference_time)
            logger.info({"event": "inference_completed", "model": self.project_name, "time": inference_time})

        output = np.asarray(output, dtype=np.float32)
        if output.ndim != 4:
            raise InvalidModelOutputError(f"Expected a 4-D score volume, got shape {output.shape}")

        return output

    def segment(self, image: np.ndarray) -> np.ndarray:
        """
        Preprocess the photo and run inference on it.

        Args:
            image (np.ndarray): The RGB photo.

        Returns:
            np.ndarray: The raw score volume.
        """
        return self.predict(self.preprocess(image))
