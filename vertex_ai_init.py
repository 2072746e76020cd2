"""LLM backend initialization.

  - ANTHROPIC_API_KEY set → Anthropic API through LiteLLM, nothing to initialize
  - GOOGLE_CLOUD_PROJECT set → vertexai.init() for the project/location
  - Neither → drafting reports MISSING_API_KEY; the CLI still runs

LANGFUSE_PUBLIC_KEY / LANGFUSE_SECRET_KEY enable LiteLLM's langfuse callbacks.
Call init_vertex_ai() once at startup, before any agent runs.
"""
import logging
import os
from typing import Optional

import litellm
import vertexai

from model_config import active_model_name, active_provider

logger = logging.getLogger(__name__)


def _enable_tracing() -> None:
    if not (os.environ.get("LANGFUSE_PUBLIC_KEY") and os.environ.get("LANGFUSE_SECRET_KEY")):
        return
    litellm.success_callback = ["langfuse"]
    litellm.failure_callback = ["langfuse"]
    logger.info("LiteLLM tracing to langfuse enabled")


def init_vertex_ai() -> Optional[str]:
    """Initialize the active provider and return its name (None when unconfigured)."""
    provider = active_provider()
    if provider is None:
        logger.warning(
            "No LLM provider configured; set ANTHROPIC_API_KEY or GOOGLE_CLOUD_PROJECT "
            "to enable reply drafting"
        )
        return None

    if provider == "vertex_ai":
        project = os.environ["GOOGLE_CLOUD_PROJECT"]
        location = os.environ.get("GOOGLE_CLOUD_LOCATION", "us-east5")
        vertexai.init(project=project, location=location)
        logger.info("LLM provider: Vertex AI (project=%s, location=%s)", project, location)
    else:
        logger.info("LLM provider: Anthropic API")

    # generation enforces its own deadline; keep LiteLLM from retrying past it
    litellm.num_retries = 0
    _enable_tracing()
    logger.info("Drafting model: %s", active_model_name())
    return provider
