import time

import numpy as np
import torch

from idphoto.configuration.base import Configuration
from idphoto.logging import logger
from idphoto.metrics import MODEL_LOAD_TIME
from idphoto.services.base import BaseModelService
from idphoto.settings import Settings


class TorchScriptModelService(BaseModelService):
    def __init__(self, settings: Settings, config: Configuration):
        """
        Initializes the TorchScriptModelService with the given configuration.

        Args:
            settings (Settings): The configuration settings for the service.
            config (Configuration): The model configuration.
        """
        super().__init__(settings=settings, config=config)

        self.model = None
        self.device = torch.device('cuda' if self.use_gpu else 'cpu')

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    def _is_gpu_available(self) -> bool:
        return torch.cuda.is_available()

    def load_model(self) -> None:
        """
        Load the TorchScript model from disk and initialize runtime resources.
        """
        # Log the start time of model loading
        start = time.perf_counter()

        try:
            model = torch.jit.load(self.config.model.model_path, map_location=self.device)
            model.eval()
            self.model = model
        except Exception as e:
            logger.error({"event": "model_load_failed", "model": self.project_name, "error": str(e)})
            raise e

        # Log the model load time
        model_load_time = time.perf_counter() - start
        MODEL_LOAD_TIME.labels(
            model=self.project_name,
            type=self.model_type,
            hardware=self.hardware
        ).observe(model_load_time)
        logger.info({
            "event": "model_loaded",
            "model": self.project_name,
            "format": "TorchScript",
            "hardware": self.hardware,
            "model_load_time": model_load_time,
        })

    def close(self) -> None:
        self.model = None

    def _run(self, tensor: np.ndarray) -> np.ndarray:
        with torch.no_grad():
            output = self.model(torch.from_numpy(tensor).to(self.device))

        # Saliency networks return side outputs after the fused map
        if isinstance(output, (tuple, list)):
            output = output[0]

        return output.detach().cpu().numpy()
