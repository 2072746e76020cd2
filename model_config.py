"""Model provider selection.

Priority:
  1. ANTHROPIC_API_KEY set → use Anthropic API directly
  2. GOOGLE_CLOUD_PROJECT set → use Vertex AI (service account credentials)
  3. Neither → no provider; generation reports MISSING_API_KEY

Usage:
    from model_config import get_llm_model
    model = get_llm_model()
"""
import os
from typing import Optional

from google.adk.models.lite_llm import LiteLlm

# Model identifiers
ANTHROPIC_MODEL = "anthropic/claude-sonnet-4-5"
VERTEX_MODEL = "vertex_ai/claude-sonnet-4-5@20250929"


def active_provider() -> Optional[str]:
    """Return 'anthropic', 'vertex_ai', or None when no credentials are configured."""
    if os.environ.get("ANTHROPIC_API_KEY"):
        return "anthropic"
    if os.environ.get("GOOGLE_CLOUD_PROJECT"):
        return "vertex_ai"
    return None


def active_model_name() -> Optional[str]:
    provider = active_provider()
    if provider == "anthropic":
        return ANTHROPIC_MODEL
    if provider == "vertex_ai":
        return VERTEX_MODEL
    return None


def get_llm_model() -> LiteLlm:
    """Return a LiteLlm instance for the active provider.

    Raises RuntimeError when no provider credentials are configured.
    """
    model_name = active_model_name()
    if model_name is None:
        raise RuntimeError("Neither ANTHROPIC_API_KEY nor GOOGLE_CLOUD_PROJECT is set")
    return LiteLlm(model_name)
