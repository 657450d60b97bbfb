"""
Tests for duplicate detection.
"""
from scotopia.core.duplicates import is_duplicate
from conftest import make_deposit


class TestIsDuplicate:
    """Test matching against prior deposits."""

    def test_same_tx_ref_different_id(self):
        first = make_deposit(id="test-1", tx_ref="0x123")
        second = make_deposit(id="test-2", tx_ref="0x123")
        assert is_duplicate(second, [first]) is True

    def test_same_id_different_tx_ref(self):
        first = make_deposit(id="test-1", tx_ref="0x123")
        replay = make_deposit(id="test-1", tx_ref="0x456")
        assert is_duplicate(replay, [first]) is True

    def test_disjoint(self):
        first = make_deposit(id="test-1", tx_ref="0x123")
        other = make_deposit(id="test-2", tx_ref="0x456")
        assert is_duplicate(other, [first]) is False

    def test_empty_history(self):
        assert is_duplicate(make_deposit(), []) is False

    def test_accepts_any_iterable(self):
        prior = (make_deposit(id=f"d-{i}", tx_ref=f"0x{i}") for i in range(3))
        assert is_duplicate(make_deposit(id="new", tx_ref="0x2"), prior) is True
