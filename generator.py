"""
Document to flashcard generation.

Text is pulled out of the uploaded PDF, cut to a prompt-sized chunk and
handed to the chat model, which answers with a JSON object of cards.
"""

import json
import logging
from io import BytesIO

import PyPDF2
from PyPDF2.errors import PdfReadError

import config
from errors import GenerationError
from models import GeneratedCard

logger = logging.getLogger(__name__)

CARD_STYLES = ("qa", "cloze", "mixed")

SYSTEM_PROMPT = "You are a helpful assistant that outputs JSON."

STYLE_DESCRIPTIONS = {
    "qa": "Question & Answer style ONLY",
    "cloze": "Fill-in-the-blank (Cloze) style ONLY",
    "mixed": "Mix of Q&A and Fill-in-the-blank",
}


def extract_text(file_content: bytes) -> str:
    """Extract the text of every page of a PDF."""
    try:
        reader = PyPDF2.PdfReader(BytesIO(file_content))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as e:
        raise GenerationError(f"Could not read PDF: {e}") from e
    return "\n".join(p for p in pages if p).strip()


def build_prompt(text: str, count: int, style: str) -> str:
    return f"""You are an expert at creating high-quality flashcards for spaced repetition study.
Extract the most important information from the text and turn it into clear, atomic flashcards.

Configuration:
- Target card count: EXACTLY {count} cards.
- Style: {STYLE_DESCRIPTIONS[style]}.

Rules:
1. Atomic: each card tests ONE specific fact or concept.
2. Cloze cards use "______" (6 underscores) for the blank on the front; the back holds the missing term.
3. Add context to the question when a term is ambiguous.
4. Use Markdown for key terms and LaTeX for formulas (e.g. $E=mc^2$).
5. Go straight to the point.

Return a JSON object with a "cards" array, where each object has "front" and "back".

Text:
{text}"""


def parse_cards(content: str) -> list[GeneratedCard]:
    """Parse the model reply, tolerating text around the JSON object."""
    start = content.find("{")
    end = content.rfind("}") + 1
    if start < 0 or end <= start:
        raise GenerationError("Could not parse AI response")
    try:
        data = json.loads(content[start:end])
    except json.JSONDecodeError as e:
        raise GenerationError(f"JSON parse error: {e}") from e

    cards = []
    for item in data.get("cards", []):
        if not isinstance(item, dict):
            continue
        front = str(item.get("front") or "").strip()
        back = str(item.get("back") or "").strip()
        if front and back:
            cards.append(GeneratedCard(front=front, back=back))
    return cards


def generate_cards(client, text: str, count: int = None, style: str = "mixed") -> list[GeneratedCard]:
    count = count or config.DEFAULT_CARD_COUNT
    if style not in CARD_STYLES:
        raise GenerationError(f"Unknown card style {style!r}")
    if not text.strip():
        raise GenerationError("Document contains no extractable text")

    truncated = text[:config.MAX_DOCUMENT_CHARS]
    logger.info("Generating %d %s cards from %d characters", count, style, len(truncated))

    response = client.chat(
        message=build_prompt(truncated, count, style),
        system=SYSTEM_PROMPT,
        response_format={"type": "json_object"},
    )
    cards = parse_cards(response.get("content") or "")
    if not cards:
        raise GenerationError("The model returned no usable cards")

    logger.info("Generated %d cards", len(cards))
    return cards
