import pytest

from pad_prober import candidates


class TestCandidates:
    """Test suite for candidate sets"""

    def test_text_order(self):
        values = candidates.text_candidates()
        assert values[:16] == tuple(range(1, 17))
        assert values[16] == 0x20
        assert values[17:43] == tuple(range(ord("A"), ord("Z") + 1))
        assert values[43:] == tuple(range(ord("a"), ord("z") + 1))

    def test_printable(self):
        values = candidates.printable_candidates()
        assert len(values) == 16 + 95
        assert ord("~") in values and ord("!") in values

    def test_large_block_sizes_do_not_repeat(self):
        values = candidates.printable_candidates(64)
        assert len(values) == len(set(values))

    def test_full(self):
        assert candidates.full_candidates() == tuple(range(256))

    def test_unknown_preset(self):
        with pytest.raises(ValueError, match="Unknown candidate preset"):
            candidates.from_preset("emoji")

    def test_normalize(self):
        assert candidates.normalize([3, 1, 2]) == (3, 1, 2)
        with pytest.raises(ValueError, match="duplicates"):
            candidates.normalize([1, 1])
        with pytest.raises(ValueError, match="not a byte value"):
            candidates.normalize([300])
        with pytest.raises(ValueError, match="must not be empty"):
            candidates.normalize([])
