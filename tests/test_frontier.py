"""
tests/test_frontier.py

Pytest tests for the in-memory crawl frontier.
"""

from __future__ import annotations

import threading

from app.scanner.frontier import Frontier


class TestFrontier:
    def test_claims_in_discovery_order(self) -> None:
        frontier = Frontier(pending=["u1", "u2"])
        frontier.add("u3")

        assert [frontier.claim_next() for _ in range(4)] == ["u1", "u2", "u3", None]

    def test_known_urls_are_not_requeued(self) -> None:
        frontier = Frontier(pending=["p"], visited=["v"])
        claimed = frontier.claim_next()

        assert frontier.add("v") is False
        assert frontier.add(claimed) is False
        assert frontier.add("new") is True
        assert frontier.add("new") is False

    def test_checkpoint_overlap_is_dropped_on_load(self) -> None:
        frontier = Frontier(pending=["a", "b"], visited=["a"])

        pending, visited = frontier.snapshot()

        assert pending == ["b"]
        assert visited == ["a"]

    def test_release_returns_url_to_head(self) -> None:
        frontier = Frontier(pending=["a", "b"])
        claimed = frontier.claim_next()

        frontier.release(claimed)

        assert frontier.snapshot() == (["a", "b"], [])

    def test_release_of_unclaimed_url_is_ignored(self) -> None:
        frontier = Frontier(pending=["a"])

        frontier.release("zzz")

        assert frontier.snapshot() == (["a"], [])

    def test_snapshot_merges_batch_into_visited(self) -> None:
        frontier = Frontier(pending=["a", "b"], visited=["seed"])
        frontier.claim_next()

        assert frontier.snapshot() == (["b"], ["seed", "a"])
        assert frontier.visited_count == 2
        assert frontier.pending_count == 1

    def test_outbound_hosts_are_marked_once(self) -> None:
        frontier = Frontier()

        assert frontier.mark_outbound("ext.example.org") is True
        assert frontier.mark_outbound("ext.example.org") is False

    def test_concurrent_adds_never_duplicate(self) -> None:
        frontier = Frontier()
        urls = [f"https://example.com/{index}" for index in range(200)]
        accepted: list[str] = []
        lock = threading.Lock()

        def _add_all() -> None:
            for url in urls:
                if frontier.add(url):
                    with lock:
                        accepted.append(url)

        threads = [threading.Thread(target=_add_all) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(accepted) == sorted(urls)
        assert frontier.pending_count == 200
