from __future__ import annotations

import re
from typing import Iterable, List

from .models import Token

PARAGRAPH_SEPARATOR = "\n\n"

# URLs first, then word-like runs (internal apostrophes and single dots
# allowed), then runs of punctuation.
TOKEN_PATTERN = re.compile(
    r"https?://\S+"
    r"|www\.\S+"
    r"|[^\W_]+(?:['’][^\W_]+)*(?:\.[^\W_]+)*"
    r"|(?:[^\w\s]|_)+",
    re.UNICODE,
)
WORD_START_PATTERN = re.compile(r"[^\W_]|https?://|www\.", re.UNICODE)
PARAGRAPH_SPLIT_PATTERN = re.compile(r"\n{2,}")

EMPTY_TOKEN = Token(text=" ")


def normalize_newlines(text: str) -> str:
    """Convert CRLF/CR to LF and collapse blank-line runs to one separator."""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    return PARAGRAPH_SPLIT_PATTERN.sub(PARAGRAPH_SEPARATOR, normalized)


def split_paragraphs(text: str) -> List[str]:
    return normalize_newlines(text).split(PARAGRAPH_SEPARATOR)


def tokenize(text: str) -> List[Token]:
    """
    Split text into display tokens.

    Punctuation runs are attached to the token before them, leading punctuation
    with nothing to attach to is dropped, and the last token of every paragraph
    but the final one is flagged as a paragraph end. Never raises: input with
    no word-like content yields a single blank token.
    """
    return tokenize_page(text) or [EMPTY_TOKEN]


def tokenize_page(text: str) -> List[Token]:
    """Like :func:`tokenize`, but a page without words yields no tokens."""
    if not isinstance(text, str):
        text = "" if text is None else str(text)

    paragraphs = split_paragraphs(text)
    texts: List[str] = []
    paragraph_ends: set[int] = set()

    for position, paragraph in enumerate(paragraphs):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        for match in TOKEN_PATTERN.finditer(paragraph):
            piece = match.group()
            if WORD_START_PATTERN.match(piece):
                texts.append(piece)
            elif texts:
                texts[-1] += piece
        if texts and position < len(paragraphs) - 1:
            paragraph_ends.add(len(texts) - 1)

    return [
        Token(text=value, is_paragraph_end=idx in paragraph_ends)
        for idx, value in enumerate(texts)
    ]


def join_tokens(tokens: Iterable[Token]) -> str:
    """Rebuild text from tokens: spaces between words, blank lines at paragraph ends."""
    parts: List[str] = []
    for token in tokens:
        if parts and not parts[-1].endswith("\n"):
            parts.append(" ")
        parts.append(token.text)
        if token.is_paragraph_end:
            parts.append(PARAGRAPH_SEPARATOR)
    return "".join(parts).strip()
