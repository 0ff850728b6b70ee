from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

from ctfadmin.models import Notice
from ctfadmin.ordering import order_notices

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _notice(notice_id: int, *, pinned: bool = False, minutes: int = 0) -> Notice:
    return Notice(
        id=notice_id,
        title=f"Notice {notice_id}",
        content="...",
        is_pinned=pinned,
        time=BASE + timedelta(minutes=minutes),
    )


def test_pinned_first_then_newest_first() -> None:
    notices = [
        _notice(1, minutes=0),
        _notice(2, pinned=True, minutes=5),
        _notice(3, minutes=10),
        _notice(4, pinned=True, minutes=20),
    ]

    assert [n.id for n in order_notices(notices)] == [4, 2, 3, 1]


def test_ordering_invariant_holds_for_random_collections() -> None:
    rng = random.Random(20240501)
    for _ in range(200):
        notices = [
            _notice(i, pinned=rng.random() < 0.3, minutes=rng.randint(0, 30))
            for i in range(rng.randint(0, 12))
        ]
        ordered = order_notices(notices)

        assert sorted(n.id for n in ordered) == sorted(n.id for n in notices)
        for x, y in zip(ordered, ordered[1:]):
            assert x.is_pinned >= y.is_pinned
            if x.is_pinned == y.is_pinned:
                assert x.time >= y.time


def test_ties_keep_input_order_and_input_is_untouched() -> None:
    notices = [_notice(1), _notice(2), _notice(3)]
    snapshot = list(notices)

    assert [n.id for n in order_notices(notices)] == [1, 2, 3]
    assert notices == snapshot
