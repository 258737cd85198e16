"""AI inference for source discovery and report analysis."""

from voc_pipeline.ai.inference_client import InferenceClient, InferenceResult
from voc_pipeline.ai.task_router import get_model_for_task

__all__ = ["InferenceClient", "InferenceResult", "get_model_for_task"]
