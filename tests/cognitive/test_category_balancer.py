"""Tests for category balance tracking."""

import pytest

from ponder.cognitive.categories import CategoryBalancer, CategoryProfile
from ponder.memory.schemas import QuestionCategory

PHIL = QuestionCategory.PHILOSOPHICAL
ETH = QuestionCategory.ETHICAL
CRE = QuestionCategory.CREATIVE


def two_way(cooldown=0.0):
    return (
        CategoryProfile(PHIL, 0.5, cooldown),
        CategoryProfile(ETH, 0.5, cooldown),
    )


class TestBalance:
    """Tests for overuse/underuse detection."""

    def test_empty_history_is_balanced(self):
        """No history means nothing is flagged."""
        balancer = CategoryBalancer()

        balance = balancer.balance(now=0.0)

        assert len(balance) == len(QuestionCategory)
        assert not any(b.overused or b.underused for b in balance.values())

    def test_weights_are_normalized(self):
        """Target weights sum to one."""
        balancer = CategoryBalancer()

        total = sum(b.target_weight for b in balancer.balance(now=0.0).values())

        assert total == pytest.approx(1.0)

    def test_dominant_category_overused_and_other_underused(self):
        """Seven of eight questions in one category skews the balance."""
        balancer = CategoryBalancer(profiles=two_way())
        for i in range(7):
            balancer.record(f"q{i}", PHIL, 0.5, now=float(i))
        balancer.record("other", ETH, 0.5, now=7.0)

        balance = balancer.balance(now=10.0)

        assert balance[PHIL].overused
        assert balance[ETH].underused
        assert balance[PHIL].recommended_weight < balance[PHIL].target_weight

    def test_underuse_needs_enough_samples(self):
        """With five or fewer questions nothing is underused."""
        balancer = CategoryBalancer(profiles=two_way())
        for i in range(5):
            balancer.record(f"q{i}", PHIL, 0.5, now=float(i))

        balance = balancer.balance(now=10.0)

        assert not balance[ETH].underused

    def test_old_records_leave_the_window(self):
        """Only the recent window counts."""
        balancer = CategoryBalancer(profiles=two_way(), window=100.0)
        for i in range(7):
            balancer.record(f"q{i}", PHIL, 0.5, now=float(i))

        balance = balancer.balance(now=1000.0)

        assert balance[PHIL].recent_count == 0
        assert not balance[PHIL].overused

    def test_rejects_empty_profiles(self):
        """At least one category is required."""
        with pytest.raises(ValueError):
            CategoryBalancer(profiles=())


class TestRecommendation:
    """Tests for the recommended category."""

    def test_prefers_underused(self):
        """An underused category is recommended."""
        balancer = CategoryBalancer(profiles=two_way())
        for i in range(7):
            balancer.record(f"q{i}", PHIL, 0.5, now=float(i))
        balancer.record("other", ETH, 0.5, now=7.0)

        assert balancer.recommended_category(now=10.0) == ETH

    def test_respects_recommendation_cooldown(self):
        """A category used moments ago is not recommended again."""
        profiles = (
            CategoryProfile(PHIL, 0.6, 300.0),
            CategoryProfile(CRE, 0.4, 300.0),
        )
        balancer = CategoryBalancer(profiles=profiles)
        balancer.record("q", PHIL, 0.5, now=0.0)

        assert balancer.recommended_category(now=10.0) == CRE

    def test_respects_availability_callback(self):
        """Categories rejected by the callback are skipped."""
        balancer = CategoryBalancer(profiles=two_way())

        choice = balancer.recommended_category(now=0.0, is_available=lambda c: c != PHIL)

        assert choice == ETH

    def test_falls_back_to_least_recently_used(self):
        """When nothing is available the stalest category wins."""
        balancer = CategoryBalancer(profiles=two_way(cooldown=1000.0))
        balancer.record("a", PHIL, 0.5, now=0.0)
        balancer.record("b", ETH, 0.5, now=5.0)

        assert balancer.recommended_category(now=10.0) == PHIL


class TestDiversity:
    """Tests for question diversity scoring."""

    def test_novel_question_scores_high(self):
        """A question unlike recent ones scores 1.0."""
        balancer = CategoryBalancer()
        balancer.record("What is the nature of memory?", PHIL, 0.5, now=0.0)

        assert balancer.diversity_score("Should kindness ever yield to honesty?") == 1.0

    def test_repeated_question_scores_zero(self):
        """An identical question scores 0.0."""
        balancer = CategoryBalancer()
        balancer.record("What is the nature of memory?", PHIL, 0.5, now=0.0)

        assert balancer.diversity_score("What is the nature of memory?") == 0.0
