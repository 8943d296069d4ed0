from irb_review.prompt_builder import (
    build_criteria_prompt,
    build_evaluation_prompt,
    build_final_prompt,
    build_summary_prompt,
    parse_criteria,
)
from irb_review.tokenizer import Tokenizer

from conftest import WordEncoder


def _count(text: str) -> int:
    return Tokenizer(WordEncoder()).count_tokens(text)


def _build(contexts, max_tokens):
    return build_evaluation_prompt(
        section_title="Risks",
        chunk="Participants may feel tired.",
        chunk_number=2,
        total_chunks=3,
        criteria=["Risk minimisation", "Monitoring"],
        contexts=contexts,
        count_tokens=_count,
        max_tokens=max_tokens,
    )


def test_evaluation_prompt_layout() -> None:
    prompt = _build(["Risks must be minimised."], 1000)

    text = prompt.text
    assert text.startswith("You are an expert on IRB standards")
    assert text.index("- Risk minimisation") < text.index("Context:") < text.index("Risks must be minimised.")
    assert "Section: Risks\nStudy Part 2 of 3:\nParticipants may feel tired." in text
    assert text.rstrip().endswith("provide your evaluation.")
    assert prompt.context_passages == 1
    assert prompt.token_count == _count(text)


def test_context_is_added_greedily_until_the_budget_is_reached() -> None:
    base = _build([], 1000).token_count
    contexts = ["one two three", "four five six seven", "eight"]

    prompt = _build(contexts, base + 5)

    assert prompt.context_passages == 1
    assert "one two three" in prompt.text
    assert "four five six seven" not in prompt.text
    assert "eight" not in prompt.text
    assert prompt.token_count <= base + 5


def test_criteria_prompt_names_the_section() -> None:
    prompt = build_criteria_prompt("Data Management")

    assert "Section Title: Data Management" in prompt
    assert "comma-separated" in prompt


def test_parse_criteria() -> None:
    assert parse_criteria("Consent, Privacy ,  Risk.") == ["Consent", "Privacy", "Risk"]
    assert parse_criteria("Here are the criteria:\n1. Consent\n2. Privacy") == ["Consent", "Privacy"]
    assert parse_criteria("") == []


def test_summary_prompts_embed_the_text() -> None:
    assert build_summary_prompt("EVAL TEXT").rstrip().endswith("EVAL TEXT")
    final = build_final_prompt("EVAL TEXT")
    assert "single, clear verdict" in final
    assert "recommendations" in final
    assert final.rstrip().endswith("EVAL TEXT")
