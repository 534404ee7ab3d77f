"""Unit tests for batch grouping."""

import random

import pytest

from epub_translator.core.epub.grouper import group_fragments
from epub_translator.core.epub.models import Fragment


def make_fragments(lengths):
    return [Fragment(id=i, anchor=None, original_text="x" * length) for i, length in enumerate(lengths)]


class TestGroupFragments:
    """Test group_fragments."""

    def test_small_fragments_share_a_batch(self):
        batches = group_fragments(make_fragments([50, 50, 50]), min_chars=300, max_chars=500)

        assert len(batches) == 1
        assert batches[0].expected_count == 3
        assert batches[0].combined_text == "\n\n".join("x" * 50 for _ in range(3))

    def test_batch_closed_at_soft_minimum(self):
        batches = group_fragments(make_fragments([200, 150, 100]), min_chars=300, max_chars=500)

        assert [b.expected_count for b in batches] == [2, 1]

    def test_never_exceeds_hard_maximum(self):
        """A fragment that would overflow the batch starts a new one."""
        batches = group_fragments(make_fragments([250, 240, 10]), min_chars=500, max_chars=500)

        assert [b.expected_count for b in batches] == [2, 1]
        assert all(len(b) <= 500 for b in batches)

    def test_oversized_fragment_travels_alone(self):
        batches = group_fragments(make_fragments([20, 900, 20]), min_chars=300, max_chars=500)

        assert [b.expected_count for b in batches] == [1, 1, 1]
        assert len(batches[1]) == 900

    def test_fragment_cap(self):
        batches = group_fragments(make_fragments([5] * 20), min_chars=300, max_chars=500, max_fragments=8)

        assert [b.expected_count for b in batches] == [8, 8, 4]

    def test_order_and_indexes(self):
        fragments = make_fragments([120, 300, 40, 600, 10, 10])
        batches = group_fragments(fragments, min_chars=300, max_chars=500)

        assert [b.index for b in batches] == list(range(len(batches)))
        assert [f for b in batches for f in b.fragments] == fragments

    def test_window_property_on_random_input(self):
        """Every multi-fragment batch fits the hard maximum; oversized fragments are alone."""
        rng = random.Random(7)
        fragments = make_fragments([rng.randint(1, 700) for _ in range(300)])

        batches = group_fragments(fragments, min_chars=300, max_chars=500, max_fragments=8)

        for batch in batches:
            assert 1 <= batch.expected_count <= 8
            if batch.expected_count > 1:
                assert len(batch) <= 500
            if any(len(f.original_text) > 500 for f in batch.fragments):
                assert batch.expected_count == 1
        assert [f for b in batches for f in b.fragments] == fragments

    def test_empty_input(self):
        assert group_fragments([]) == []

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            group_fragments(make_fragments([10]), min_chars=600, max_chars=500)
