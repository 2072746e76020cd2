"""Personality Synthesis Team — turns the knowledge store into a system prompt.

Agents:
  1. PersonalitySynthesisAgent — reads guidelines, captions, public replies and
     golden corrections, and writes the system prompt used for drafting
"""
from google.adk.agents import LlmAgent

from model_config import get_llm_model

PERSONALITY_OUTPUT_KEY = "system_prompt"

PERSONALITY_INSTRUCTION = """
You are an expert in digital communication analysis.

Based on the material in the user message, write a detailed SYSTEM PROMPT for an
AI that will answer Instagram messages and comments as if it were this person.

The system prompt MUST cover:
1. Who the person is and what they talk about
2. Tone of voice (formal/informal, energy, humor)
3. Typical greetings, sign-offs, emojis and expressions they actually use
4. How they handle questions about prices, scheduling and collaborations
5. Every PRIORITY GUIDELINE, restated as a rule that must never be broken

Write it in the second person ("You are ..."), in the same language the person
writes in. Return ONLY the system prompt text, with no preamble or markdown fences.
"""


def build_personality_agent() -> LlmAgent:
    """Return an agent that writes a system prompt from knowledge sources."""

    def _instruction(_ctx) -> str:
        return PERSONALITY_INSTRUCTION

    return LlmAgent(
        name="PersonalitySynthesisAgent",
        model=get_llm_model(),
        tools=[],
        output_key=PERSONALITY_OUTPUT_KEY,
        instruction=_instruction,
    )
