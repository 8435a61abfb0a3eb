"""
Tests for live queries.

A live query must re-deliver after every commit that touches what it
reads, stay quiet for commits that don't, and never expose a
half-applied transaction.
"""

import asyncio
from datetime import date

import pytest

from helpers import make_log
from ildang.backup import BackupCodec
from ildang.models.worklog import UserSettings
from ildang.queries import Dependency
from ildang.services.storage import Collection, RecordChange


class TestDependency:
    """Tests for matching committed changes against what a query reads."""

    def test_whole_collection(self):
        dep = Dependency(collection=Collection.LOGS)
        change = RecordChange(collection=Collection.LOGS, key=1, after={"date": date(2024, 6, 1)})
        assert dep.touched_by(change)

    def test_other_collection(self):
        dep = Dependency(collection=Collection.LOGS)
        assert not dep.touched_by(RecordChange(collection=Collection.SETTINGS, key=1, after={"id": 1}))

    def test_range_matches_before_or_after(self):
        """Test that moving a record out of a range still touches the range."""
        dep = Dependency(
            collection=Collection.LOGS,
            field="date",
            lo=date(2024, 6, 1),
            hi=date(2024, 6, 30),
        )
        moved_out = RecordChange(
            collection=Collection.LOGS,
            key=1,
            before={"date": date(2024, 6, 10)},
            after={"date": date(2024, 7, 10)},
        )
        elsewhere = RecordChange(
            collection=Collection.LOGS,
            key=2,
            before={"date": date(2024, 7, 1)},
            after={"date": date(2024, 7, 2)},
        )
        assert dep.touched_by(moved_out)
        assert not dep.touched_by(elsewhere)

    def test_range_bounds_are_inclusive(self):
        dep = Dependency(
            collection=Collection.LOGS,
            field="date",
            lo=date(2024, 6, 1),
            hi=date(2024, 6, 30),
        )
        for day in (date(2024, 6, 1), date(2024, 6, 30)):
            assert dep.touched_by(RecordChange(collection=Collection.LOGS, key=1, after={"date": day}))

    def test_clear_touches_every_range(self):
        dep = Dependency(collection=Collection.LOGS, field="date", lo=date(2024, 6, 1))
        assert dep.touched_by(RecordChange(collection=Collection.LOGS))


class TestSubscriptions:
    """Tests for live query delivery."""

    @pytest.mark.asyncio
    async def test_initial_result_is_delivered(self, queries):
        sub = queries.query_all()
        assert await sub.next() == []
        assert sub.version == 1

    @pytest.mark.asyncio
    async def test_redelivers_after_write(self, store, queries):
        sub = queries.query_all()
        await sub.next()

        await store.add(Collection.LOGS, make_log("2024-06-01"))
        logs = await sub.next()

        assert [log.date for log in logs] == [date(2024, 6, 1)]

    @pytest.mark.asyncio
    async def test_date_range_subscription(self, store, queries):
        await store.bulk_add(Collection.LOGS, [
            make_log("2024-05-31"),
            make_log("2024-06-02"),
            make_log("2024-06-01"),
            make_log("2024-07-01"),
        ])

        sub = queries.query_by_date_range("2024-06-01", "2024-06-30")
        logs = await sub.next()
        assert [log.date.day for log in logs] == [1, 2]

    @pytest.mark.asyncio
    async def test_date_range_reverse(self, store, queries):
        await store.bulk_add(Collection.LOGS, [make_log("2024-06-01"), make_log("2024-06-02")])

        sub = queries.query_by_date_range(date(2024, 6, 1), date(2024, 6, 30), reverse=True)
        logs = await sub.next()
        assert [log.date.day for log in logs] == [2, 1]

    @pytest.mark.asyncio
    async def test_inverted_range_yields_empty(self, store, queries):
        await store.add(Collection.LOGS, make_log("2024-06-15"))

        sub = queries.query_by_date_range("2024-06-30", "2024-06-01")
        assert await sub.next() == []

    @pytest.mark.asyncio
    async def test_paid_toggle_does_not_refire_disjoint_range(self, store, live, queries):
        """Test that a write outside a subscription's date range leaves it alone."""
        june_key = await store.add(Collection.LOGS, make_log("2024-06-10"))
        await store.add(Collection.LOGS, make_log("2024-07-10"))

        june = queries.query_by_date_range("2024-06-01", "2024-06-30")
        july = queries.query_by_date_range("2024-07-01", "2024-07-31")
        await june.next()
        await july.next()

        await store.update(Collection.LOGS, june_key, {"is_paid": True})
        await live.wait_idle()

        assert june.version == 2
        assert june.latest[0].is_paid is True
        assert july.version == 1

    @pytest.mark.asyncio
    async def test_moving_a_log_refires_both_ranges(self, store, live, queries):
        key = await store.add(Collection.LOGS, make_log("2024-06-10"))

        june = queries.query_by_date_range("2024-06-01", "2024-06-30")
        july = queries.query_by_date_range("2024-07-01", "2024-07-31")
        await live.wait_idle()

        await store.update(Collection.LOGS, key, {"date": date(2024, 7, 10)})
        await live.wait_idle()

        assert june.latest == []
        assert [log.id for log in july.latest] == [key]

    @pytest.mark.asyncio
    async def test_settings_subscription(self, store, live, queries):
        sub = queries.get_settings()
        assert (await sub.next()).user_name == ""

        await store.update(Collection.SETTINGS, 1, {"user_name": "김철수"})
        assert (await sub.next()).user_name == "김철수"

    @pytest.mark.asyncio
    async def test_settings_write_does_not_refire_log_queries(self, store, live, queries):
        sub = queries.query_all()
        await live.wait_idle()

        await store.update(Collection.SETTINGS, 1, {"user_name": "김철수"})
        await live.wait_idle()

        assert sub.version == 1

    @pytest.mark.asyncio
    async def test_on_result_callback(self, store, live, queries):
        seen: list[int] = []
        queries.query_all(on_result=lambda logs: seen.append(len(logs)))
        await live.wait_idle()

        await store.add(Collection.LOGS, make_log("2024-06-01"))
        await live.wait_idle()

        assert seen == [0, 1]

    @pytest.mark.asyncio
    async def test_rapid_writes_coalesce(self, store, live, queries):
        """Test that bursts of writes end in one up-to-date result."""
        sub = queries.query_all()
        await live.wait_idle()

        for day in range(1, 6):
            await store.add(Collection.LOGS, make_log(f"2024-06-{day:02d}"))
        await live.wait_idle()

        assert len(sub.latest) == 5
        assert 2 <= sub.version <= 6

    @pytest.mark.asyncio
    async def test_results_never_go_backwards(self, store, live, queries):
        seen: list[int] = []
        queries.query_all(on_result=lambda logs: seen.append(len(logs)))

        await asyncio.gather(*(
            store.add(Collection.LOGS, make_log("2024-06-01")) for _ in range(8)
        ))
        await live.wait_idle()

        assert seen == sorted(seen)
        assert seen[-1] == 8

    @pytest.mark.asyncio
    async def test_async_iteration(self, store, queries):
        sub = queries.query_all()
        sizes = []

        async for logs in sub:
            sizes.append(len(logs))
            if len(logs) == 0:
                await store.add(Collection.LOGS, make_log("2024-06-01"))
            else:
                sub.cancel()

        assert sizes == [0, 1]

    @pytest.mark.asyncio
    async def test_query_error_is_raised_to_consumer(self, live):
        async def broken():
            raise RuntimeError("query failed")

        sub = live.subscribe(broken, [Dependency(collection=Collection.LOGS)])
        with pytest.raises(RuntimeError):
            await sub.next()


class TestOneShotReads:

    @pytest.mark.asyncio
    async def test_month_logs(self, store, queries):
        await store.bulk_add(Collection.LOGS, [
            make_log("2024-05-31"),
            make_log("2024-06-02"),
            make_log("2024-06-30"),
            make_log("2024-06-01"),
            make_log("2024-07-01"),
        ])

        logs = await queries.month_logs(2024, 6)
        assert [log.date.day for log in logs] == [1, 2, 30]

        newest_first = await queries.month_logs(2024, 6, reverse=True)
        assert [log.date.day for log in newest_first] == [30, 2, 1]

    @pytest.mark.asyncio
    async def test_month_logs_handles_leap_february(self, store, queries):
        await store.bulk_add(Collection.LOGS, [make_log("2024-02-29"), make_log("2024-03-01")])
        assert [log.date for log in await queries.month_logs(2024, 2)] == [date(2024, 2, 29)]


class TestCancellation:
    """Tests for stopping live queries."""

    @pytest.mark.asyncio
    async def test_no_delivery_after_cancel(self, store, live, queries):
        sub = queries.query_all()
        await sub.next()
        sub.cancel()

        await store.add(Collection.LOGS, make_log("2024-06-01"))
        await live.wait_idle()

        assert sub.version == 1
        assert sub.latest == []
        assert live.subscription_count == 0

    @pytest.mark.asyncio
    async def test_cancel_before_first_result(self, live, queries):
        seen = []
        sub = queries.query_all(on_result=seen.append)
        sub.cancel()
        await asyncio.sleep(0)
        await live.wait_idle()

        assert seen == []
        assert sub.version == 0

    @pytest.mark.asyncio
    async def test_next_after_cancel_stops_iteration(self, queries):
        sub = queries.query_all()
        sub.cancel()
        with pytest.raises(StopAsyncIteration):
            await sub.next()

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, live, queries):
        sub = queries.query_all()
        sub.cancel()
        sub.cancel()
        assert sub.cancelled
        assert live.subscription_count == 0

    @pytest.mark.asyncio
    async def test_close_cancels_everything(self, store, live, queries):
        subs = [queries.query_all(), queries.get_settings()]
        live.close()

        assert all(sub.cancelled for sub in subs)
        await store.add(Collection.LOGS, make_log("2024-06-01"))
        assert all(sub.version == 0 for sub in subs)


class TestAtomicVisibility:
    """Tests that observers only ever see committed states."""

    @pytest.mark.asyncio
    async def test_restore_is_seen_all_or_nothing(self, store, live, queries):
        """Test that a restore never shows cleared logs next to old settings."""
        await store.bulk_add(Collection.LOGS, [make_log("2024-06-01"), make_log("2024-06-02")])
        await store.update(Collection.SETTINGS, 1, {"user_name": "이전"})

        async def read_both():
            async with store.transaction(Collection.LOGS, Collection.SETTINGS) as tx:
                logs = await tx.to_list(Collection.LOGS)
                settings = await tx.first(Collection.SETTINGS)
            return len(logs), settings.user_name

        states: list[tuple[int, str]] = []
        live.subscribe(
            read_both,
            [Dependency(collection=Collection.LOGS), Dependency(collection=Collection.SETTINGS)],
            on_result=states.append,
        )
        await live.wait_idle()

        codec = BackupCodec(store)
        snapshot = {
            "version": 1,
            "timestamp": "2024-07-01T00:00:00Z",
            "logs": [make_log(f"2024-07-{d:02d}").model_dump(mode="json", by_alias=True) for d in (1, 2, 3)],
            "settings": UserSettings(user_name="이후").model_dump(mode="json", by_alias=True),
        }
        await codec.restore(snapshot)
        await live.wait_idle()

        assert states[0] == (2, "이전")
        assert states[-1] == (3, "이후")
        assert set(states) <= {(2, "이전"), (3, "이후")}
