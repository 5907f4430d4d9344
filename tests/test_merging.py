"""Tests for greedy segment merging and group combination."""

from __future__ import annotations

import pytest

from src.analysis.merging import (
    aggregate_score,
    combine_group,
    merge_segments,
    should_combine,
    topics_overlap,
)
from tests.factories import analyzed_segment


def _groups(merged) -> list[list[str]]:
    return [m.combined_segment_ids for m in merged]


class TestShouldCombine:
    def test_empty_group_always_combines(self) -> None:
        seg = analyzed_segment("s1", 0, 500, 1)
        assert should_combine(seg, [], max_duration=10)

    def test_duration_cutoff_beats_combine_hint(self) -> None:
        first = analyzed_segment("s1", 0, 60, 8, combine=True)
        second = analyzed_segment("s2", 60, 60, 8)
        assert not should_combine(second, [first], max_duration=90)

    def test_span_exactly_at_budget_combines(self) -> None:
        first = analyzed_segment("s1", 0, 60, 5)
        second = analyzed_segment("s2", 60, 30, 5)
        assert should_combine(second, [first], max_duration=90)

    def test_combine_hint_from_last_member(self) -> None:
        first = analyzed_segment("s1", 0, 30, 2, topics=["a"], combine=True)
        second = analyzed_segment("s2", 30, 30, 9, topics=["b"])
        assert should_combine(second, [first], max_duration=120)

    def test_similar_scores_combine(self) -> None:
        first = analyzed_segment("s1", 0, 30, 6, topics=["a"])
        second = analyzed_segment("s2", 30, 30, 4, topics=["b"])
        assert should_combine(second, [first], max_duration=120)

    def test_both_high_value_combine(self) -> None:
        first = analyzed_segment("s1", 0, 30, 10, topics=["a"])
        second = analyzed_segment("s2", 30, 30, 7, topics=["b"])
        assert should_combine(second, [first], max_duration=120)

    def test_unrelated_segments_split(self) -> None:
        first = analyzed_segment("s1", 0, 30, 9, topics=["python"])
        second = analyzed_segment("s2", 30, 30, 3, topics=["cooking"])
        assert not should_combine(second, [first], max_duration=120)

    def test_compares_against_last_member_only(self) -> None:
        group = [
            analyzed_segment("s1", 0, 30, 2, topics=["a"]),
            analyzed_segment("s2", 30, 30, 9, topics=["b"]),
        ]
        # 3 is within 2 of the first member but not of the last
        seg = analyzed_segment("s3", 60, 30, 3, topics=["c"])
        assert not should_combine(seg, group, max_duration=500)


class TestTopicsOverlap:
    def test_case_insensitive_substring(self) -> None:
        assert topics_overlap(["Machine Learning"], ["learning"])
        assert topics_overlap(["ai"], ["AI Safety"])

    def test_disjoint(self) -> None:
        assert not topics_overlap(["python"], ["cooking", "travel"])

    def test_empty(self) -> None:
        assert not topics_overlap([], ["python"])

    def test_blank_topics_never_match(self) -> None:
        assert not topics_overlap([""], ["python"])
        assert not topics_overlap(["python"], ["  "])


class TestAggregateScore:
    def test_weighted_towards_high_scores(self) -> None:
        score = aggregate_score([7, 8, 9])
        assert 8 < score < 9
        assert score == 8.1

    def test_single_score_unchanged(self) -> None:
        assert aggregate_score([6.0]) == 6.0

    def test_equal_scores(self) -> None:
        assert aggregate_score([5, 5, 5]) == 5.0

    def test_empty(self) -> None:
        assert aggregate_score([]) == 0.0


class TestCombineGroup:
    def test_single_segment_identity(self) -> None:
        seg = analyzed_segment("s1", 10, 30, 6.5, topics=["a", "b"])
        merged = combine_group([seg])

        assert merged.id == "s1"
        assert merged.combined_segment_ids == ["s1"]
        assert merged.aggregated_score == 6.5
        assert merged.final_title == seg.title
        assert merged.final_summary == seg.summary
        assert merged.final_key_topics == ["a", "b"]
        assert merged.start_time == seg.start_time
        assert merged.end_time == seg.end_time
        assert merged.duration_seconds == 30
        assert merged.rank == 0

    def test_multi_member_fields(self) -> None:
        group = [
            analyzed_segment("s1", 0, 30, 6, topics=["a", "b"], title="First", summary="One."),
            analyzed_segment("s2", 30, 30, 9, topics=["b", "c"], title="Best", summary="  "),
            analyzed_segment("s3", 60, 20, 7, topics=["a", "d"], title="Third", summary="Three."),
        ]
        merged = combine_group(group)

        assert merged.id == "s1"
        assert merged.combined_segment_ids == ["s1", "s2", "s3"]
        assert merged.start_time == "00:00:00"
        assert merged.end_time == "00:01:20"
        assert merged.duration_seconds == 80
        assert merged.final_title == "Best (Combined)"
        assert merged.final_summary == "One. Three. (Combined segments)"
        assert merged.final_key_topics == ["a", "b", "c", "d"]
        assert merged.extraction_priority == merged.aggregated_score

    def test_members_reordered_by_time(self) -> None:
        group = [analyzed_segment("late", 30, 30, 5), analyzed_segment("early", 0, 30, 5)]
        merged = combine_group(group)
        assert merged.combined_segment_ids == ["early", "late"]
        assert merged.id == "early"

    def test_empty_group_rejected(self) -> None:
        with pytest.raises(ValueError):
            combine_group([])


class TestMergeSegments:
    def test_duration_cutoff_precedence(self) -> None:
        segments = [
            analyzed_segment("seg1", 0, 60, 5, combine=True),
            analyzed_segment("seg2", 60, 60, 5, combine=True),
            analyzed_segment("seg3", 120, 30, 5, combine=True),
        ]
        merged = merge_segments(segments, max_duration=90)
        assert _groups(merged) == [["seg1"], ["seg2", "seg3"]]
        assert merged[1].duration_seconds == 90

    def test_chain_continues_through_group(self) -> None:
        # 7 -> 8 by score; 8 -> 4 through the shared default topic
        segments = [
            analyzed_segment("segment_1", 0, 30, 7),
            analyzed_segment("segment_2", 30, 30, 8),
            analyzed_segment("segment_3", 60, 30, 4),
        ]
        merged = merge_segments(segments, max_duration=120)
        assert _groups(merged) == [["segment_1", "segment_2", "segment_3"]]
        assert merged[0].duration_seconds == 90

    def test_score_gap_without_shared_topics_splits(self) -> None:
        segments = [
            analyzed_segment("s1", 0, 30, 7, topics=["a"]),
            analyzed_segment("s2", 30, 30, 8, topics=["b"]),
            analyzed_segment("s3", 60, 30, 4, topics=["c"]),
        ]
        merged = merge_segments(segments, max_duration=120)
        assert _groups(merged) == [["s1", "s2"], ["s3"]]

    def test_partition_property(self) -> None:
        scores = [3, 9, 9, 2, 5, 6, 10, 1, 1, 8, 4, 7]
        segments = [
            analyzed_segment(f"s{i}", i * 40, 40, score, topics=[f"t{i % 3}"])
            for i, score in enumerate(scores)
        ]
        merged = merge_segments(segments, max_duration=100)

        ids = [sid for m in merged for sid in m.combined_segment_ids]
        assert sorted(ids) == sorted(s.id for s in segments)
        assert len(ids) == len(set(ids))
        assert all(m.duration_seconds <= 100 for m in merged)

    def test_empty_input(self) -> None:
        assert merge_segments([], max_duration=90) == []
