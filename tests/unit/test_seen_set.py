from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from trendwatch.application.dedup import SeenSet


def test_record_is_idempotent() -> None:
    seen = SeenSet()

    seen.record("GME")
    seen.record("GME")

    assert seen.contains("GME")
    assert len(seen) == 1


def test_claim_returns_true_only_first_time() -> None:
    seen = SeenSet(["AMC"])

    assert seen.claim("GME") is True
    assert seen.claim("GME") is False
    assert seen.claim("AMC") is False
    assert seen.snapshot() == frozenset({"AMC", "GME"})


def test_membership_operator() -> None:
    seen = SeenSet(["GME"])

    assert "GME" in seen
    assert "AMC" not in seen
    assert 42 not in seen


def test_concurrent_claims_grant_each_id_once() -> None:
    seen = SeenSet()
    ids = [f"T{n % 50}" for n in range(2000)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(seen.claim, ids))

    assert sum(results) == 50
    assert len(seen) == 50
