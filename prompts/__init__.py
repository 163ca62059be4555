"""Prompt text shipped with the package. Files are read once per process."""
from functools import lru_cache
from pathlib import Path

PROMPTS_DIR = Path(__file__).resolve().parent
MATCHING_SYSTEM_PROMPT = "system_prompt_matching.txt"


@lru_cache(maxsize=None)
def load_prompt(filename: str) -> str:
    """Prompt text from prompts/<filename>, stripped. FileNotFoundError if the file is not packaged."""
    path = PROMPTS_DIR / filename
    if not path.is_file():
        raise FileNotFoundError(f"Prompt file not found: {path}")
    return path.read_text(encoding="utf-8").strip()


def matching_system_prompt() -> str:
    return load_prompt(MATCHING_SYSTEM_PROMPT)
