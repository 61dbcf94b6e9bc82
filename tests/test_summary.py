"""Tests for round summaries."""

from pokerroom.models import Card, Estimate
from pokerroom.summary import summarize


def _votes(*values):
    return {
        f"p{i}": Estimate(f"p{i}", Card.parse(v))
        for i, v in enumerate(values)
    }


class TestSummarize:
    def test_empty_round(self):
        summary = summarize({})
        assert summary.count == 0
        assert summary.consensus is None
        assert summary.nearest_card is None

    def test_average_and_consensus(self):
        summary = summarize(_votes(5, 5, 8, 13))

        assert summary.count == 4
        assert summary.average == 7.75
        assert summary.nearest_card == 8
        assert summary.consensus == 5
        assert summary.agreement == 50
        assert summary.distribution == {5: 2, 8: 1, 13: 1}

    def test_unknown_cards_excluded(self):
        summary = summarize(_votes("?", 3, "?"))

        assert summary.count == 1
        assert summary.unknown_count == 2
        assert summary.average == 3
        assert summary.agreement == 100

    def test_only_unknown(self):
        summary = summarize(_votes("?"))
        assert summary.count == 0
        assert summary.unknown_count == 1
        assert summary.to_dict()["average"] == 0.0

    def test_tie_goes_to_first_to_reach_top(self):
        summary = summarize(_votes(8, 3, 3, 8))
        assert summary.consensus == 3

    def test_accepts_iterable(self):
        summary = summarize(list(_votes(2, 2).values()))
        assert summary.consensus == 2
        assert summary.to_dict()["distribution"] == {"2": 2}
