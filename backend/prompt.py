# prompt.py
import os
from dataclasses import dataclass

PROMPT_VERSION = "study-v2"

PROMPT_PATH = os.path.join(os.path.dirname(__file__), "prompts", "study_prompt.md")
with open(PROMPT_PATH, "r", encoding="utf-8") as f:
    SYSTEM_INSTRUCTION = f.read().strip()

LEAD_IN = "Analyse the following text and generate the requested learning structure:"


@dataclass(frozen=True)
class AnalysisRequest:
    system_instruction: str
    user_content: str
    instruction_version: str = PROMPT_VERSION


def build_request(text: str) -> AnalysisRequest:
    # The instruction is fixed; only user_content depends on the study text.
    return AnalysisRequest(
        system_instruction=SYSTEM_INSTRUCTION,
        user_content=f"{LEAD_IN}\n\n---\n{text}\n---",
    )
