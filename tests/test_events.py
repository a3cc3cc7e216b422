import asyncio
from typing import List

import pytest

from couchkit.utils.events import EventChannel
from couchkit.utils.mutex import serialized

pytestmark = [pytest.mark.asyncio, pytest.mark.unit]


async def test_publish_in_subscription_order():
    channel: EventChannel[int] = EventChannel()
    seen: List[str] = []
    channel.subscribe(lambda value: seen.append(f"first:{value}"))
    channel.subscribe(lambda value: seen.append(f"second:{value}"))

    channel.publish(1)

    assert seen == ["first:1", "second:1"]
    assert len(channel) == 2


async def test_unsubscribe_is_idempotent():
    channel: EventChannel[int] = EventChannel()
    seen: List[int] = []
    unsubscribe = channel.subscribe(seen.append)

    unsubscribe()
    unsubscribe()
    channel.publish(1)

    assert seen == []
    assert len(channel) == 0


async def test_subscriber_may_unsubscribe_while_notified():
    channel: EventChannel[int] = EventChannel()
    seen: List[int] = []

    def once(value: int) -> None:
        seen.append(value)
        unsubscribe()

    unsubscribe = channel.subscribe(once)
    channel.subscribe(seen.append)
    channel.publish(7)
    channel.publish(8)

    assert seen == [7, 7, 8]


async def test_subscriber_errors_reach_publisher():
    channel: EventChannel[int] = EventChannel()

    def broken(_value: int) -> None:
        raise RuntimeError("subscriber failed")

    channel.subscribe(broken)
    with pytest.raises(RuntimeError):
        channel.publish(1)


class Counter:
    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self.order: List[int] = []

    @serialized
    async def run(self, marker: int) -> int:
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.001)
        self.order.append(marker)
        self.active -= 1
        return marker


async def test_serialized_runs_one_at_a_time_in_arrival_order():
    counter = Counter()

    results = await asyncio.gather(*(counter.run(i) for i in range(5)))

    assert results == [0, 1, 2, 3, 4]
    assert counter.peak == 1
    assert counter.order == [0, 1, 2, 3, 4]


async def test_serialized_locks_are_per_instance():
    first, second = Counter(), Counter()

    await asyncio.gather(first.run(1), second.run(2))

    assert first.peak == 1
    assert second.peak == 1
    assert first.__dict__["_couchkit_locks"]["run"] is not second.__dict__["_couchkit_locks"]["run"]


async def test_serialized_releases_lock_after_error():
    class Failing:
        @serialized
        async def run(self) -> None:
            raise ValueError("boom")

    failing = Failing()
    for _ in range(2):
        with pytest.raises(ValueError):
            await failing.run()
