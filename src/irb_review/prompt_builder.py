"""Utilities for constructing the prompts sent to the review model."""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Sequence

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"

DEFAULT_CRITERIA = (
    "Compliance with IRB standards",
    "Clarity of information",
    "Ethical considerations",
)


def _load_template(name: str) -> str:
    """Read and trim the contents of a template file."""
    return (_PROMPTS_DIR / name).read_text(encoding="utf-8").strip()


_EVALUATION_PREFIX = _load_template("evaluation_prefix.txt")
_EVALUATION_SUFFIX = _load_template("evaluation_suffix.txt")
_CRITERIA_TEMPLATE = _load_template("criteria.txt")
_SUMMARY_TEMPLATE = _load_template("summary.txt")
_FINAL_TEMPLATE = _load_template("final.txt")

_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


@dataclass(frozen=True, slots=True)
class EvaluationPrompt:
    text: str
    token_count: int
    context_passages: int


def build_evaluation_prompt(
    *,
    section_title: str,
    chunk: str,
    chunk_number: int,
    total_chunks: int,
    criteria: Sequence[str],
    contexts: Sequence[str],
    count_tokens: Callable[[str], int],
    max_tokens: int,
) -> EvaluationPrompt:
    """Compose the evaluation prompt for one chunk of a section.

    Retrieved passages are added in rank order until the next one would push
    the prompt past ``max_tokens``; the rest are dropped.
    """

    criteria_block = "\n".join(f"- {criterion}" for criterion in criteria)
    prefix = _EVALUATION_PREFIX.format(criteria=criteria_block) + "\n"
    suffix = "\n" + _EVALUATION_SUFFIX.format(
        section_title=section_title,
        chunk_number=chunk_number,
        total_chunks=total_chunks,
        chunk=chunk,
    )

    available = max_tokens - count_tokens(prefix) - count_tokens(suffix)
    context = ""
    used = 0
    for passage in contexts:
        if count_tokens(context + passage) > available:
            break
        context += passage + "\n\n"
        used += 1

    text = prefix + context + suffix
    return EvaluationPrompt(text=text, token_count=count_tokens(text), context_passages=used)


def build_criteria_prompt(section_title: str) -> str:
    return _CRITERIA_TEMPLATE.format(section_title=section_title)


def parse_criteria(response: str) -> List[str]:
    """Split a comma-separated criteria answer into clean items.

    Preamble lines ending in a colon are ignored, as are list bullets.
    """

    lines = [line for line in (response or "").splitlines() if line.strip()]
    lines = [line for line in lines if not line.rstrip().endswith(":")]
    items = []
    for part in ",".join(lines).split(","):
        item = _BULLET.sub("", part).strip().strip(".")
        if item:
            items.append(item)
    return items


def build_summary_prompt(text: str) -> str:
    return _SUMMARY_TEMPLATE.format(text=text)


def build_final_prompt(text: str) -> str:
    return _FINAL_TEMPLATE.format(text=text)


__all__ = [
    "DEFAULT_CRITERIA",
    "EvaluationPrompt",
    "build_criteria_prompt",
    "build_evaluation_prompt",
    "build_final_prompt",
    "build_summary_prompt",
    "parse_criteria",
]
