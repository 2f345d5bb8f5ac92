"""Document chunker - deterministic recursive splitting with overlap."""

import re

DEFAULT_MAX_CHARS = 1000
DEFAULT_OVERLAP = 200

# Boundary preference order: (split pattern, joiner used when re-packing pieces)
_BOUNDARIES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\n[ \t]*\n\s*"), "\n\n"),  # paragraph break
    (re.compile(r"\n"), "\n"),  # line break
    (re.compile(r"(?<=[.!?])[ \t]+"), " "),  # sentence end followed by space
    (re.compile(r"\s+"), " "),  # whitespace
)


def split_text(
    text: str,
    *,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap: int = DEFAULT_OVERLAP,
    hard_split: bool = False,
) -> list[str]:
    """Split document text into ordered, overlapping segments.

    Pure function with no I/O or randomness: the same input always yields the
    same segments.

    Args:
        text: Raw document text
        max_chars: Target maximum characters per segment
        overlap: Characters of trailing context repeated at the start of the
            next segment (approximate, whole pieces only)
        hard_split: Cut tokens longer than max_chars on character boundaries
            instead of emitting them as oversized segments

    Returns:
        List of stripped, non-empty segments in document order

    Raises:
        ValueError: If max_chars is not positive or overlap is not in [0, max_chars)

    Strategy:
        1. Normalize line endings to \\n
        2. Split on the most coarse boundary present (paragraph, line,
           sentence, whitespace)
        3. Pack pieces into segments <= max_chars, carrying a tail of the
           previous segment forward as overlap
        4. Recurse into any piece that is still too long using the next
           boundary type
        5. A single token longer than max_chars becomes its own segment
           (or is cut per character when hard_split is set)
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")
    if overlap < 0 or overlap >= max_chars:
        raise ValueError(f"overlap must be in [0, {max_chars}), got {overlap}")

    if not text or not text.strip():
        return []

    normalized = text.replace("\r\n", "\n").replace("\r", "\n").strip()

    return _split(normalized, 0, max_chars, overlap, hard_split)


def _split(text: str, level: int, max_chars: int, overlap: int, hard_split: bool) -> list[str]:
    if len(text) <= max_chars:
        return [text]

    if level >= len(_BOUNDARIES):
        # Single token with no boundary left
        if hard_split:
            return _merge(list(text), "", max_chars, overlap)
        return [text]

    pattern, joiner = _BOUNDARIES[level]
    pieces = [piece.strip() for piece in pattern.split(text)]
    pieces = [piece for piece in pieces if piece]

    if len(pieces) <= 1:
        return _split(text, level + 1, max_chars, overlap, hard_split)

    segments: list[str] = []
    pending: list[str] = []

    for piece in pieces:
        if len(piece) <= max_chars:
            pending.append(piece)
            continue

        if pending:
            segments.extend(_merge(pending, joiner, max_chars, overlap))
            pending = []
        segments.extend(_split(piece, level + 1, max_chars, overlap, hard_split))

    if pending:
        segments.extend(_merge(pending, joiner, max_chars, overlap))

    return segments


def _merge(pieces: list[str], joiner: str, max_chars: int, overlap: int) -> list[str]:
    """Pack pieces into segments, keeping up to `overlap` chars of tail context."""
    sep_len = len(joiner)
    segments: list[str] = []
    window: list[str] = []
    total = 0

    for piece in pieces:
        size = len(piece)

        if window and total + sep_len + size > max_chars:
            segments.append(joiner.join(window))

            # Drop from the front until the tail fits the overlap budget
            # and leaves room for the incoming piece
            while window and (total > overlap or total + sep_len + size > max_chars):
                total -= len(window[0]) + (sep_len if len(window) > 1 else 0)
                window.pop(0)

        window.append(piece)
        total += size + (sep_len if len(window) > 1 else 0)

    if window:
        segments.append(joiner.join(window))

    return segments
