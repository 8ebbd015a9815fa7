from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from string import Template

PROMPT_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_prompt(filename: str) -> str:
    """Load a prompt text file shipped with the codebase."""

    path = PROMPT_DIR / filename
    if not path.exists():
        raise RuntimeError(f"Prompt file not found: {filename}")
    return path.read_text(encoding="utf-8").strip() + "\n"


def render_prompt(filename: str, **values: str) -> str:
    """Fill the `$name` placeholders of a prompt file."""

    return Template(load_prompt(filename)).substitute(values)
