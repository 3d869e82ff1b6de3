"""
Unit tests for error signature aggregation.
"""

from atp_mastery.adaptive.error_signatures import (
    build_error_signatures,
    recent_error_tags,
    top_error_tags,
)
from atp_mastery.core.models import Attempt, SkillCoverage


class TestBuildErrorSignatures:
    def test_counts_per_window(self, make_attempt, now):
        attempts = [
            make_attempt(error_tags=("missing_prayer",), hours_ago=24 * 100),
            make_attempt(error_tags=("missing_prayer",), hours_ago=24 * 45),
            make_attempt(error_tags=("missing_prayer",), hours_ago=24 * 2),
        ]
        signature = build_error_signatures(attempts, now)["civil-pleadings"][0]

        assert signature.error_tag == "missing_prayer"
        assert signature.count_total == 3
        assert signature.count_90d == 2
        assert signature.count_30d == 1
        assert signature.last_seen_at == attempts[2].submitted_at

    def test_untagged_attempts_ignored(self, make_attempt, now):
        assert build_error_signatures([make_attempt()], now) == {}

    def test_tag_counted_for_every_covered_skill(self, now):
        attempt = Attempt(
            attempt_id="a1",
            user_id="user-1",
            item_id="i1",
            format="written",
            mode="practice",
            score_norm=0.4,
            submitted_at=now,
            skills=(SkillCoverage("civil-pleadings", 1.0), SkillCoverage("civil-jurisdiction", 0.3)),
            error_tags=("wrong_forum", "wrong_forum"),
        )
        signatures = build_error_signatures([attempt], now)

        assert set(signatures) == {"civil-jurisdiction", "civil-pleadings"}
        assert signatures["civil-jurisdiction"][0].count_total == 1


class TestTopErrorTags:
    def test_ranked_by_count_then_recency_then_code(self, make_attempt, now):
        attempts = [
            make_attempt(error_tags=("a_tag", "b_tag", "c_tag", "d_tag"), hours_ago=50),
            make_attempt(error_tags=("d_tag",), hours_ago=40),
            make_attempt(error_tags=("c_tag",), hours_ago=1),
        ]
        signatures = build_error_signatures(attempts, now)

        # d and c both twice, c seen more recently; a and b tie on everything
        assert top_error_tags(signatures, "civil-pleadings") == ["c_tag", "d_tag", "a_tag"]

    def test_accepts_flat_iterable(self, make_attempt, now):
        signatures = build_error_signatures([make_attempt(error_tags=("x",))], now)
        assert top_error_tags(signatures["civil-pleadings"], "civil-pleadings", n=1) == ["x"]

    def test_unknown_skill(self):
        assert top_error_tags({}, "nothing") == []


class TestRecentErrorTags:
    def test_windows(self, make_attempt, now):
        attempts = [
            make_attempt(error_tags=("old",), hours_ago=24 * 60),
            make_attempt(error_tags=("new",), hours_ago=24),
        ]
        signatures = build_error_signatures(attempts, now)

        assert recent_error_tags(signatures) == {"civil-pleadings": {"old", "new"}}
        assert recent_error_tags(signatures, window_days=30) == {"civil-pleadings": {"new"}}
