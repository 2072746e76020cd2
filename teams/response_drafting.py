"""Response Drafting Team — writes the suggested reply for one inbound message.

Agents:
  1. ResponseDraftingAgent — answers as the account owner, returns JSON
     {"response", "confidence", "reasoning"}

The instruction is the per-user prompt assembled by pipeline.prompt_composer.
It is passed as a callable so ADK does not try to template the braces that
appear in user content and in the JSON contract.
"""
from google.adk.agents import LlmAgent

from model_config import get_llm_model

DRAFT_OUTPUT_KEY = "draft"

RESPONSE_CONTRACT = """
Return ONLY valid JSON:
{
  "response": "The reply text exactly as it should be sent",
  "confidence": 0.85,
  "reasoning": "One sentence on why this reply fits the message and the owner's voice."
}

CONFIDENCE GUIDE:
  0.9-1.0  the knowledge above answers the message directly
  0.6-0.9  the reply is on-voice but partly inferred
  below 0.6  guessing; a human should review

SELF-CHECK:
- [ ] Reply is in the same language as the message
- [ ] Reply follows every priority guideline
- [ ] Output is valid JSON only
"""


def build_drafting_agent(instruction: str) -> LlmAgent:
    """Return a drafting agent bound to ``instruction``."""
    full_instruction = f"{instruction.rstrip()}\n{RESPONSE_CONTRACT}"

    def _instruction(_ctx) -> str:
        return full_instruction

    return LlmAgent(
        name="ResponseDraftingAgent",
        model=get_llm_model(),
        tools=[],
        output_key=DRAFT_OUTPUT_KEY,
        instruction=_instruction,
    )
