from prometheus_client import Histogram

MODEL_LOAD_TIME = Histogram(
    name="model_startup_latency_seconds",
    documentation="Model startup latency (seconds)",
    labelnames=["model", "type", "hardware"],
)
INFERENCE_TIME = Histogram(
    name="segmentation_inference_latency_seconds",
    documentation="Segmentation inference latency (seconds)",
    labelnames=["model", "type", "hardware"],
)
REFINEMENT_TIME = Histogram(
    name="mask_refinement_latency_seconds",
    documentation="Mask refinement latency (seconds)",
    labelnames=["operation"],
)
COMPOSITE_TIME = Histogram(
    name="composite_latency_seconds",
    documentation="Compositing latency (seconds)",
    labelnames=["operation"],
)
EDIT_TOTAL_TIME = Histogram(
    name="edit_total_time_seconds",
    documentation="Photo edit total time (seconds)",
    labelnames=["operation"],
)
