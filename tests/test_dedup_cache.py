"""Tests for the comment duplicate-suppression cache."""

import threading

from dedup_cache import InMemoryCommentDedupCache


class TestInMemoryCommentDedupCache:

    def test_first_submission_is_not_a_duplicate(self, dedup_cache):
        assert dedup_cache.check_and_mark((1, "hello")) is False

    def test_repeat_within_window_is_a_duplicate(self, dedup_cache, clock):
        dedup_cache.check_and_mark((1, "hello"))
        clock.advance(4.9)
        assert dedup_cache.check_and_mark((1, "hello")) is True

    def test_repeat_after_window_is_accepted(self, dedup_cache, clock):
        dedup_cache.check_and_mark((1, "hello"))
        clock.advance(5.0)
        assert dedup_cache.check_and_mark((1, "hello")) is False

    def test_keys_are_per_ticket_and_content(self, dedup_cache):
        dedup_cache.check_and_mark((1, "hello"))
        assert dedup_cache.check_and_mark((2, "hello")) is False
        assert dedup_cache.check_and_mark((1, "hello again")) is False

    def test_forget_allows_immediate_retry(self, dedup_cache):
        dedup_cache.check_and_mark((1, "hello"))
        dedup_cache.forget((1, "hello"))
        assert dedup_cache.check_and_mark((1, "hello")) is False

    def test_stale_entries_are_purged_opportunistically(self, dedup_cache, clock):
        dedup_cache.check_and_mark((1, "old"))
        clock.advance(61)
        dedup_cache.check_and_mark((2, "new"))
        assert len(dedup_cache) == 1

    def test_explicit_purge(self, dedup_cache, clock):
        dedup_cache.check_and_mark((1, "a"))
        dedup_cache.check_and_mark((2, "b"))
        clock.advance(120)
        assert dedup_cache.purge() == 2
        assert len(dedup_cache) == 0

    def test_concurrent_marks_admit_exactly_one(self):
        cache = InMemoryCommentDedupCache(window_seconds=5, purge_after_seconds=60)
        admitted = []
        barrier = threading.Barrier(8)

        def submit():
            barrier.wait()
            if not cache.check_and_mark((7, "same comment")):
                admitted.append(True)

        threads = [threading.Thread(target=submit) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(admitted) == 1
