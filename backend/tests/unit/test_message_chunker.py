"""
Unit tests for outbound message chunking.
"""

from core.constants import MAX_MESSAGE_LENGTH
from utils.message_chunker import split_message, strip_part_marker


def _sentences(total_length: int) -> str:
    sentences = []
    i = 0
    while len(" ".join(sentences)) < total_length:
        sentences.append(f"La paciente número {i} tiene control de presión arterial la próxima semana.")
        i += 1
    return " ".join(sentences)


class TestSplitMessage:
    """Test split_message."""

    def test_short_text_is_returned_unchanged(self):
        """A message within the limit is a single part without a marker."""
        assert split_message("Hola doctora") == ["Hola doctora"]

    def test_text_at_exact_limit_is_single_part(self):
        text = "a" * MAX_MESSAGE_LENGTH
        assert split_message(text) == [text]

    def test_long_text_is_split_into_marked_parts_within_limit(self):
        """A 2500 character answer becomes at least three parts of at most 990 characters."""
        text = _sentences(2500)
        parts = split_message(text)

        assert len(parts) >= 3
        total = len(parts)
        for index, part in enumerate(parts, start=1):
            assert part.startswith(f"[{index}/{total}]\n")
            assert len(strip_part_marker(part)) <= MAX_MESSAGE_LENGTH

    def test_sentence_split_preserves_content(self):
        """Joining the unmarked parts gives back the original text."""
        text = _sentences(2500)
        parts = split_message(text)
        assert " ".join(strip_part_marker(part) for part in parts) == text

    def test_paragraph_boundaries_are_preferred(self):
        first = "A" * 600
        second = "B" * 600
        parts = split_message(f"{first}\n\n{second}")
        assert parts == [f"[1/2]\n{first}", f"[2/2]\n{second}"]

    def test_small_paragraphs_are_packed_together(self):
        paragraphs = ["P" * 300, "Q" * 300, "R" * 300, "S" * 300]
        parts = split_message("\n\n".join(paragraphs))
        assert [strip_part_marker(part) for part in parts] == [
            "\n\n".join(paragraphs[:3]),
            paragraphs[3],
        ]

    def test_text_without_spaces_is_hard_wrapped(self):
        parts = split_message("x" * 2000)
        contents = [strip_part_marker(part) for part in parts]
        assert [len(c) for c in contents] == [990, 990, 20]

    def test_custom_max_length(self):
        parts = split_message("uno dos tres cuatro", max_length=8)
        assert [strip_part_marker(part) for part in parts] == ["uno dos", "tres", "cuatro"]


class TestStripPartMarker:
    """Test strip_part_marker."""

    def test_removes_leading_marker(self):
        assert strip_part_marker("[2/3]\nhola") == "hola"

    def test_leaves_unmarked_text(self):
        assert strip_part_marker("[nota] hola") == "[nota] hola"
