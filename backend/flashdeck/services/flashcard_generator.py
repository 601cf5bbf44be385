"""
Flashcard generation service.

  1. Sends the source text to the completion provider
  2. Parses a JSON array of {"front", "back"} (or {"flashcards": [...]}),
     tolerating a surrounding Markdown code fence
  3. Keeps cards whose trimmed sides are 1-1000 characters

Generated cards are returned, not stored; the client accepts them through the
regular flashcard create endpoint.
"""
from __future__ import annotations

import json
import logging

from flashdeck.models.generation import GeneratedFlashcard
from flashdeck.services.llm_service import CompletionProvider

logger = logging.getLogger(__name__)

MAX_CARD_CHARS = 1000

SYSTEM_PROMPT = (
    "You are a flashcard generator for active recall learning. "
    "Respond ONLY with a JSON array of flashcard objects, each with exactly two "
    'string properties: "front" and "back". No markdown, no commentary.'
)


class GenerationParseError(Exception):
    """Raised when the provider's reply is not parseable flashcard JSON."""


def _user_prompt(source_text: str) -> str:
    return (
        "Analyze the following text and generate high-quality flashcards for "
        "learning and memorization.\n\n"
        f"TEXT TO ANALYZE:\n{source_text}\n\n"
        "INSTRUCTIONS:\n"
        "1. Cover the key concepts, facts and relationships in the text.\n"
        "2. Put a clear, concise question or prompt on the front.\n"
        "3. Put the complete, accurate answer on the back.\n"
        "4. Make every card self-contained.\n"
        "5. Generate between 3 and 15 cards depending on length and complexity.\n\n"
        'Example: [{"front": "What is the capital of France?", "back": "Paris"}]'
    )


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```") and text.endswith("```") and len(text) >= 6:
        text = text[3:-3]
        if text.startswith("json"):
            text = text[4:]
    return text.strip()


def parse_flashcards(content: str) -> list[GeneratedFlashcard]:
    try:
        parsed = json.loads(_strip_code_fence(content))
    except json.JSONDecodeError as e:
        raise GenerationParseError(f"Invalid JSON from completion provider: {e}") from e

    if isinstance(parsed, list):
        raw_cards = parsed
    elif isinstance(parsed, dict) and isinstance(parsed.get("flashcards"), list):
        raw_cards = parsed["flashcards"]
    else:
        raw_cards = []

    cards: list[GeneratedFlashcard] = []
    for card in raw_cards:
        if not isinstance(card, dict):
            continue
        front = str(card.get("front") or "").strip()
        back = str(card.get("back") or "").strip()
        if not front or not back:
            continue
        if len(front) > MAX_CARD_CHARS or len(back) > MAX_CARD_CHARS:
            continue
        cards.append(GeneratedFlashcard(front=front, back=back))
    return cards


async def generate_flashcards(
    provider: CompletionProvider,
    source_text: str,
    max_tokens: int = 4000,
) -> list[GeneratedFlashcard]:
    """
    Generate flashcards from source text.

    Raises LLMUnavailableError if the provider cannot be reached and
    GenerationParseError if its reply is not valid JSON.
    """
    content = await provider.complete(SYSTEM_PROMPT, _user_prompt(source_text), max_tokens=max_tokens)
    cards = parse_flashcards(content)
    logger.info(
        "Generated %d flashcards from %d chars of source text", len(cards), len(source_text)
    )
    return cards
