"""Unit tests for period persistence and the storage backends."""

from __future__ import annotations

import pytest

from banner_auction.periods.fsm import BidStatus
from banner_auction.periods.models import PeriodStatus
from banner_auction.periods.store import PeriodStore, PeriodUnavailableError, SlotState
from banner_auction.storage import PERIOD_KEY, archive_key
from banner_auction.storage.codec import CorruptedStateError
from banner_auction.storage.filesystem import FileSystemStorage
from conftest import make_bid, open_period


class TestPeriodStore:
    @pytest.mark.asyncio
    async def test_absent_and_empty_slots(self, storage, period_store):
        assert (await period_store.load()).state is SlotState.ABSENT
        await period_store.reset()
        snapshot = await period_store.load()
        assert snapshot.state is SlotState.EMPTY
        assert snapshot.period is None

    @pytest.mark.asyncio
    async def test_round_trip_keeps_bid_order(self, period_store):
        period = open_period(
            [
                make_bid("alice", 100, BidStatus.APPROVED, 1),
                make_bid("bob", 150, BidStatus.PENDING, 2),
            ]
        )
        await period_store.save(period)
        loaded = (await period_store.load()).period
        assert loaded == period
        assert [bid.comment_id for bid in loaded.bids] == [1, 2]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [b"{not json", b"[1, 2]", b'{"period_id": "p", "status": "sideways"}'],
    )
    async def test_corrupted_documents_raise(self, storage, period_store, raw):
        await storage.write_document(PERIOD_KEY, raw)
        with pytest.raises(CorruptedStateError):
            await period_store.load()

    @pytest.mark.asyncio
    async def test_load_open_reasons(self, period_store):
        with pytest.raises(PeriodUnavailableError) as missing:
            await period_store.load_open()
        assert missing.value.reason == "no_open_period"

        await period_store.save(open_period())
        with pytest.raises(PeriodUnavailableError) as mismatch:
            await period_store.load_open("period-1999-01-01")
        assert mismatch.value.reason == "period_not_open"

        closed = open_period()
        closed.status = PeriodStatus.CLOSED
        await period_store.save(closed)
        with pytest.raises(PeriodUnavailableError) as not_open:
            await period_store.load_open()
        assert not_open.value.reason == "period_not_open"

    @pytest.mark.asyncio
    async def test_update_rereads_before_writing(self, period_store):
        await period_store.save(open_period())
        stale = (await period_store.load()).period

        def add_first(period):
            period.bids.append(make_bid("alice", 100, BidStatus.APPROVED, 1))

        def add_second(period):
            period.bids.append(make_bid("bob", 150, BidStatus.APPROVED, 2))

        await period_store.update(add_first)
        # The stale copy never goes back to storage; update works on a fresh read.
        assert stale.bids == []
        period, _ = await period_store.update(add_second)
        assert [bid.bidder for bid in period.bids] == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_archive_keeps_existing_entry(self, storage, period_store):
        period = open_period([make_bid("alice", 100, BidStatus.APPROVED, 1)])
        period.status = PeriodStatus.CLOSED
        assert await period_store.archive(period) is True

        period.bids.append(make_bid("bob", 500, BidStatus.APPROVED, 2))
        assert await period_store.archive(period) is False
        archived = await period_store.get_archived(period.period_id)
        assert [bid.bidder for bid in archived.bids] == ["alice"]
        assert await storage.document_exists(archive_key(period.period_id))

    @pytest.mark.asyncio
    async def test_list_archived_skips_corrupt_entries(self, storage, period_store):
        period = open_period()
        period.status = PeriodStatus.CLOSED
        await period_store.archive(period)
        await storage.write_document(archive_key("period-2020-01-01"), b"garbage")
        assert [item.period_id for item in await period_store.list_archived()] == [period.period_id]


class TestFileSystemStorage:
    @pytest.mark.asyncio
    async def test_documents_live_under_data_dir(self, tmp_path, schemas):
        storage = FileSystemStorage(data_dir=tmp_path / "data")
        store = PeriodStore(storage, schemas)
        period = open_period()
        await store.save(period)
        await store.archive(period)

        assert (tmp_path / "data" / "current-period.json").exists()
        assert (tmp_path / "data" / "archive" / f"{period.period_id}.json").exists()
        assert await storage.list_documents("archive/") == [archive_key(period.period_id)]
        assert not list((tmp_path / "data").glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_missing_document_reads_as_none(self, tmp_path):
        storage = FileSystemStorage(data_dir=tmp_path)
        assert await storage.read_document("bidders") is None
        assert await storage.list_documents("archive/") == []
