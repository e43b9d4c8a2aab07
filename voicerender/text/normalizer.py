"""Text normalization stage.

Responsibilities:
- Canonicalize quotes, dashes, ellipses, whitespace and emoji spacing.
- Keep normalization deterministic so identical scripts yield identical markup.
"""

from __future__ import annotations

import re

_CHARACTER_MAP = str.maketrans(
    {
        "“": '"',
        "”": '"',
        "‘": "'",
        "’": "'",
        "′": "'",
        "″": "'",
        "–": "-",
        "‒": "-",
        "…": "...",
        "—": " -- ",
        "\t": " ",
        " ": " ",
    }
)
_EMOJI_PATTERN = re.compile(
    "([\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF"
    "\U0001F1E0-\U0001F1FF☀-⛿✀-➿])"
)
_LEFTOVER_PATTERN = re.compile("[“”‘’—–…]")
_EMOJI_TRAILING_EXEMPT = frozenset({" ", "\n", ".", ",", "!", "?"})


class TextNormalizer:
    """Normalize raw script text into a stable character set."""

    def normalize(self, text: str) -> str:
        """Normalize text; empty or whitespace-only input yields an empty string."""

        if not text or not text.strip():
            return ""

        normalized = text.replace("\r\n", "\n").replace("\r", "\n")
        normalized = normalized.translate(_CHARACTER_MAP)
        normalized = re.sub(r"\.{4,}", "...", normalized)
        normalized = re.sub(r" {2,}", " ", normalized)
        normalized = re.sub(r"\n{3,}", "\n\n", normalized)
        normalized = self._space_emoji(normalized)
        normalized = "\n".join(line.strip() for line in normalized.split("\n"))
        return normalized.strip()

    @staticmethod
    def _space_emoji(text: str) -> str:
        """Ensure emoji are separated from adjacent words by one space."""

        def replace(match: re.Match[str]) -> str:
            start, end = match.span()
            before = text[start - 1] if start > 0 else ""
            after = text[end] if end < len(text) else ""
            result = match.group(1)
            if before and before not in {" ", "\n"}:
                result = " " + result
            if after and after not in _EMOJI_TRAILING_EXEMPT:
                result = result + " "
            return result

        return _EMOJI_PATTERN.sub(replace, text)


def is_valid_normalized_text(text: str) -> bool:
    """Return whether text is non-empty and free of un-normalized leftovers."""

    if not text or not text.strip():
        return False
    if _LEFTOVER_PATTERN.search(text):
        return False
    if re.search(r"\s{3,}", text) or re.search(r"\n{4,}", text):
        return False
    return True
