"""Per-key asyncio lock registry tests."""

import asyncio

from vendabot.infra.keyed_locks import KeyedLocks


class TestKeyedLocks:
    def test_same_key_is_serialized(self):
        locks = KeyedLocks()
        events: list[str] = []

        async def work(name: str):
            async with locks.hold("user"):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        async def main():
            await asyncio.gather(work("a"), work("b"))

        asyncio.run(main())
        assert events == ["a-start", "a-end", "b-start", "b-end"]

    def test_different_keys_do_not_block(self):
        locks = KeyedLocks()
        events: list[str] = []

        async def holder():
            async with locks.hold("one"):
                events.append("one-start")
                await asyncio.sleep(0.05)
                events.append("one-end")

        async def other():
            await asyncio.sleep(0.01)
            async with locks.hold("two"):
                events.append("two")

        async def main():
            await asyncio.gather(holder(), other())

        asyncio.run(main())
        assert events == ["one-start", "two", "one-end"]

    def test_idle_locks_are_dropped(self):
        locks = KeyedLocks()

        async def main():
            async with locks.hold("a"):
                assert locks.active_keys() == ["a"]
            assert locks.active_keys() == []

        asyncio.run(main())

    def test_lock_released_on_exception(self):
        locks = KeyedLocks()

        async def fails():
            async with locks.hold("a"):
                raise RuntimeError("boom")

        async def main():
            try:
                await fails()
            except RuntimeError:
                pass
            async with locks.hold("a"):
                return "reacquired"

        assert asyncio.run(main()) == "reacquired"
