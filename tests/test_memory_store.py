import pytest

from rendezvous.models import MatchRecord, Signal

from .conftest import make_entry


def make_signal(seq: int, sender: str = "a") -> Signal:
    return Signal(kind="candidate", payload={"seq": seq}, sender_id=sender, sent_at=seq)


class TestMemoryWaitingPool:
    async def test_upsert_replaces_and_requeues(self, pool):
        await pool.upsert(make_entry("a", 1.0, timezone=1))
        await pool.upsert(make_entry("b", 2.0))
        await pool.upsert(make_entry("a", 3.0, timezone=5))

        entries = await pool.entries()
        assert [e.user_id for e in entries] == ["b", "a"]
        assert entries[1].timezone == 5
        assert await pool.size() == 2
        assert await pool.position("a") == 2
        assert await pool.position("b") == 1
        assert await pool.position("ghost") == 0

    async def test_remove_reports_whether_anything_was_removed(self, pool):
        await pool.upsert(make_entry("a", 1.0))
        assert await pool.remove("a") is True
        assert await pool.remove("a") is False
        assert await pool.get("a") is None

    async def test_evict_older_than(self, pool):
        await pool.upsert(make_entry("old", 0.0))
        await pool.upsert(make_entry("new", 100.0))

        evicted = await pool.evict_older_than(120, now=150.0)

        assert [e.user_id for e in evicted] == ["old"]
        assert [e.user_id for e in await pool.entries()] == ["new"]

    async def test_evict_excess_drops_oldest(self, pool):
        for idx in range(5):
            await pool.upsert(make_entry(f"u{idx}", float(idx)))

        assert await pool.evict_excess(3) == 2
        assert [e.user_id for e in await pool.entries()] == ["u2", "u3", "u4"]
        assert await pool.evict_excess(3) == 0


class TestMemoryMatchRegistry:
    async def test_create_orders_participants(self, registry):
        match = await registry.create("zed", "amy", created_at=10.0)

        assert isinstance(match, MatchRecord)
        assert match.participant_a == "amy"
        assert match.participant_b == "zed"
        assert match.is_initiator("amy")
        assert match.partner_of("zed") == "amy"
        assert await registry.find_by_member("zed") is match
        assert await registry.find_by_member("amy") is match
        assert await registry.find_by_member("bob") is None

    async def test_create_rejects_self_match(self, registry):
        with pytest.raises(ValueError):
            await registry.create("amy", "amy", created_at=10.0)

    async def test_preferred_id_is_used_when_free(self, registry):
        first = await registry.create("a", "b", created_at=1.0, preferred_id="room-1")
        second = await registry.create("c", "d", created_at=1.0, preferred_id="room-1")

        assert first.match_id == "room-1"
        assert second.match_id != "room-1"
        assert len(second.match_id) == 32

    async def test_generated_ids_are_unique(self, registry):
        ids = set()
        for idx in range(50):
            match = await registry.create(f"x{idx}", f"y{idx}", created_at=1.0)
            ids.add(match.match_id)
        assert len(ids) == 50

    async def test_drain_returns_once(self, registry):
        match = await registry.create("a", "b", created_at=1.0)
        await registry.enqueue_signal(match.match_id, "b", make_signal(1))
        await registry.enqueue_signal(match.match_id, "b", make_signal(2))

        drained = await registry.drain_signals(match.match_id, "b")

        assert [s.payload["seq"] for s in drained] == [1, 2]
        assert await registry.drain_signals(match.match_id, "b") == []
        assert await registry.drain_signals(match.match_id, "a") == []

    async def test_queue_is_cut_to_most_recent_after_overflow(self, registry):
        match = await registry.create("a", "b", created_at=1.0)

        lengths = [
            await registry.enqueue_signal(match.match_id, "b", make_signal(seq))
            for seq in range(101)
        ]
        assert lengths[99] == 100
        assert lengths[100] == 50

        drained = await registry.drain_signals(match.match_id, "b")
        assert len(drained) == 50
        assert drained[0].payload["seq"] == 51
        assert drained[-1].payload["seq"] == 100

    async def test_queue_never_exceeds_limit(self, registry):
        match = await registry.create("a", "b", created_at=1.0)
        for seq in range(150):
            length = await registry.enqueue_signal(match.match_id, "b", make_signal(seq))
            assert length <= 100

        drained = await registry.drain_signals(match.match_id, "b")
        assert drained[-1].payload["seq"] == 149
        assert len(drained) == 99

    async def test_small_keep_window(self):
        from rendezvous.stores import MemoryMatchRegistry

        registry = MemoryMatchRegistry(queue_limit=50, queue_keep=50)
        match = await registry.create("a", "b", created_at=1.0)
        for seq in range(150):
            await registry.enqueue_signal(match.match_id, "b", make_signal(seq))

        drained = await registry.drain_signals(match.match_id, "b")
        assert [s.payload["seq"] for s in drained] == list(range(100, 150))

    async def test_delete_clears_membership(self, registry):
        match = await registry.create("a", "b", created_at=1.0)

        assert await registry.delete(match.match_id) is True
        assert await registry.delete(match.match_id) is False
        assert await registry.find_by_member("a") is None
        assert await registry.count() == 0

    async def test_evict_older_than(self, registry):
        old = await registry.create("a", "b", created_at=0.0)
        new = await registry.create("c", "d", created_at=500.0)

        evicted = await registry.evict_older_than(600, now=700.0)

        assert evicted == [old.match_id]
        assert [m.match_id for m in await registry.matches()] == [new.match_id]

    async def test_notices_drain_once_and_expire(self, registry):
        await registry.post_notice("a", Signal.disconnect_notice("b", 1), now=0.0)
        assert [s.kind for s in await registry.drain_notices("a")] == ["disconnect-notice"]
        assert await registry.drain_notices("a") == []

        await registry.post_notice("a", Signal.disconnect_notice("b", 1), now=0.0)
        await registry.evict_older_than(600, now=601.0)
        assert await registry.drain_notices("a") == []
