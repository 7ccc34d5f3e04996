import os
import time

import numpy as np
import onnxruntime

from idphoto.configuration.base import Configuration
from idphoto.logging import logger
from idphoto.metrics import MODEL_LOAD_TIME
from idphoto.services.base import BaseModelService
from idphoto.settings import Settings


class OnnxModelService(BaseModelService):
    def __init__(self, settings: Settings, config: Configuration):
        """
        Initializes the OnnxModelService with the given configuration.

        Args:
            settings (Settings): The configuration settings for the service.
            config (Configuration): The model configuration.
        """
        super().__init__(settings=settings, config=config)

        self.session = None
        self.input_name = None
        self.output_name = None

    @property
    def is_loaded(self) -> bool:
        return self.session is not None

    def _is_gpu_available(self) -> bool:
        return "CUDAExecutionProvider" in onnxruntime.get_available_providers()

    def load_model(self) -> None:
        """
        Load the ONNX model from disk and initialize runtime resources.
        """
        # Log the start time of model loading
        start = time.perf_counter()

        # Load the ONNX model
        try:
            session_options = onnxruntime.SessionOptions()
            session_options.graph_optimization_level = onnxruntime.GraphOptimizationLevel.ORT_ENABLE_ALL
            session_options.intra_op_num_threads = max(1, (os.cpu_count() or 2) - 1)
            providers = ["CUDAExecutionProvider", "CPUExecutionProvider"] if self.use_gpu else ["CPUExecutionProvider"]
            self.session = onnxruntime.InferenceSession(
                self.config.model.model_path,
                session_options,
                providers=providers
            )
        except Exception as e:
            logger.error({"event": "model_load_failed", "model": self.project_name, "error": str(e)})
            raise e

        # Set the input and output names
        self.input_name = self.session.get_inputs()[0].name
        self.output_name = self.session.get_outputs()[0].name

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
            "format": "ONNX",
            "providers": providers,
            "hardware": self.hardware,
            "model_load_time": model_load_time,
        })

    def close(self) -> None:
        self.session = None
        self.input_name = None
        self.output_name = None

    def _run(self, tensor: np.ndarray) -> np.ndarray:
        outputs = self.session.run([self.output_name], {self.input_name: tensor})
        return outputs[0]
