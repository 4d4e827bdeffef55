from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from billing.identifiers import SequenceGenerator, TokenGenerator


def test_sequence_is_monotonic() -> None:
    seq = SequenceGenerator(start=5)
    assert [seq.next() for _ in range(3)] == [5, 6, 7]


def test_tokens_differ_within_the_same_millisecond() -> None:
    tokens = TokenGenerator("BILL", clock_ms=lambda: 1_700_000_000_000)
    first = tokens.next()
    second = tokens.next()

    assert first != second
    assert first.startswith("BILL-1700000000000-")


def test_concurrent_token_generation_never_collides() -> None:
    tokens = TokenGenerator("TXN", clock_ms=lambda: 42)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: tokens.next(), range(500)))

    assert len(set(results)) == 500
