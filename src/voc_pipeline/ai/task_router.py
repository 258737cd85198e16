"""Task-to-model routing for the LiteLLM proxy.

LiteLLM maps each model alias to a provider and owns fallbacks and budgets.
Aliases can be overridden per task with VOC_MODEL_<TASK> env vars.
"""

import os

# Task type -> LiteLLM model alias
TASK_MODEL_MAP = {
    "discovery": "gemini-general",  # URL lookup, short answers
    "analysis": "claude-document",  # Full VOC report generation
}

# Default model when task type isn't in the map
DEFAULT_MODEL = "gemini-general"


def get_model_for_task(task_type: str) -> str:
    """Return the LiteLLM model alias for a task type.

    Args:
        task_type: One of "discovery", "analysis"

    Returns:
        LiteLLM model name (e.g. "claude-document")
    """
    override = os.getenv(f"VOC_MODEL_{task_type.upper()}")
    if override:
        return override
    return TASK_MODEL_MAP.get(task_type, DEFAULT_MODEL)
