"""Tests for the diff tracking service facade."""
import asyncio
import json

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from page_history.core.clock import MonotonicClock
from page_history.core.config import Settings
from page_history.core.locks import KeyedLock
from page_history.models.page import PageData
from page_history.schemas.diff_tracking import (
    ContentChange,
    DiffInsert,
    MetadataSnapshotPair,
    RevertScope,
)
from page_history.services.diff_store import DiffStore
from page_history.services.diff_tracking_service import DiffTrackingService
from page_history.services.exceptions import DiffNotFoundError
from page_history.services.metadata_differ import FieldDifference
from page_history.services.record_store import SqlRecordStore


def edit(before: str, after: str, record_id: str = "page-1") -> DiffInsert:
    """A DiffInsert whose metadata snapshots carry the page id and title."""
    return DiffInsert(
        content=ContentChange(before=before, after=after),
        metadata=MetadataSnapshotPair(
            before={"id": record_id, "title": before},
            after={"id": record_id, "title": after},
        ),
    )


@pytest.fixture
def service() -> DiffTrackingService:
    return DiffTrackingService(DiffStore(), MonotonicClock(), KeyedLock())


class TestInsert:
    """Tests for DiffTrackingService.insert."""

    @pytest.mark.asyncio
    async def test__insert__stores_patch_and_snapshots(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        record = await service.insert(
            db_session, "user-1", "page-1", edit("Hello", "Hello world"), max_diffs=5,
        )

        assert record.record_id == "page-1"
        assert record.actor_id == "user-1"
        assert "+Hello world" in record.patch
        assert record.content_snapshot_before == "Hello"
        assert record.metadata_snapshot.before == {"id": "page-1", "title": "Hello"}
        assert json.loads(record.metadata_snapshot_json)["after"]["title"] == "Hello world"
        assert record.timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test__insert__empty_input_records_header_only_patch(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        record = await service.insert(db_session, "user-1", "page-1", DiffInsert(), max_diffs=5)
        assert record.patch == "--- Content\n+++ Content\n"
        assert record.metadata_snapshot.before == {}

    @pytest.mark.asyncio
    async def test__insert__timestamps_strictly_increase(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        records = [
            await service.insert(db_session, "user-1", "page-1", edit("a", "b"), max_diffs=10)
            for _ in range(5)
        ]
        stamps = [r.timestamp for r in records]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 5

    @pytest.mark.asyncio
    async def test__insert__keeps_exactly_max_diffs(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        """After each insert the page holds min(total, max_diffs) diffs, newest kept."""
        inserted = []
        for i in range(6):
            inserted.append(
                await service.insert(
                    db_session, "user-1", "page-1", edit(f"v{i}", f"v{i + 1}"), max_diffs=3,
                ),
            )
            history = await service.get_by_record(db_session, "page-1")
            assert len(history) == min(i + 1, 3)

        history = await service.get_by_record(db_session, "page-1")
        assert [r.id for r in history] == [r.id for r in inserted[-3:]]

    @pytest.mark.asyncio
    async def test__insert__defaults_to_configured_limit(
        self,
        db_session: AsyncSession,
        service: DiffTrackingService,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            "page_history.services.diff_tracking_service.get_settings",
            lambda: Settings(_env_file=None, database_url="sqlite://", DIFFS_PER_PAGE=2),
        )
        for i in range(4):
            await service.insert(db_session, "user-1", "page-1", edit(f"v{i}", f"v{i + 1}"))
        assert len(await service.get_by_record(db_session, "page-1")) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_diffs", [0, -3])
    async def test__insert__rejects_limit_below_one(
        self, db_session: AsyncSession, service: DiffTrackingService, max_diffs: int,
    ) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            await service.insert(
                db_session, "user-1", "page-1", edit("a", "b"), max_diffs=max_diffs,
            )
        assert await service.get_by_record(db_session, "page-1") == []

    @pytest.mark.asyncio
    async def test__insert__holds_record_lock_while_pruning(
        self, db_session: AsyncSession,
    ) -> None:
        """Insert and retention run under the page's lock, released afterwards."""
        locks = KeyedLock()
        service = DiffTrackingService(DiffStore(), MonotonicClock(), locks)
        held_during_enforce = []
        original_enforce = service.retention.enforce

        async def spying_enforce(db: AsyncSession, record_id: str, max_diffs: int) -> int:
            held_during_enforce.append(locks.is_held(record_id))
            return await original_enforce(db, record_id, max_diffs)

        service.retention.enforce = spying_enforce  # type: ignore[method-assign]

        await service.insert(db_session, "user-1", "page-1", edit("a", "b"), max_diffs=2)

        assert held_during_enforce == [True]
        assert locks.is_held("page-1") is False


    @pytest.mark.asyncio
    async def test__insert__second_session_waits_for_first_commit(
        self, session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """A concurrent insert for the same page reads only committed history."""
        locks = KeyedLock()
        service = DiffTrackingService(DiffStore(), MonotonicClock(), locks)

        async def second_request() -> None:
            async with session_factory() as session, locks.until_released(session):
                await service.insert(session, "user-2", "page-1", edit("b", "c"), max_diffs=1)
                await session.commit()

        async with session_factory() as first, locks.until_released(first):
            await service.insert(first, "user-1", "page-1", edit("a", "b"), max_diffs=1)
            task = asyncio.create_task(second_request())
            await asyncio.sleep(0.01)
            assert not task.done()
            assert locks.is_held("page-1")
            await first.commit()
        await task

        async with session_factory() as session:
            history = await service.get_by_record(session, "page-1")
        assert [r.actor_id for r in history] == ["user-2"]


class TestRecordEdit:
    """Tests for the enable_diffs hook."""

    @pytest.mark.asyncio
    async def test__record_edit__disabled_writes_nothing(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        settings = Settings(_env_file=None, database_url="sqlite://", ENABLE_DIFFS=False)
        result = await service.record_edit(
            db_session, "user-1", "page-1", edit("a", "b"), settings=settings,
        )
        assert result is None
        assert await service.get_by_record(db_session, "page-1") == []

    @pytest.mark.asyncio
    async def test__record_edit__enabled_uses_configured_limit(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        settings = Settings(_env_file=None, database_url="sqlite://", DIFFS_PER_PAGE=1)
        for i in range(3):
            result = await service.record_edit(
                db_session, "user-1", "page-1", edit(f"v{i}", f"v{i + 1}"), settings=settings,
            )
            assert result is not None
        history = await service.get_by_record(db_session, "page-1")
        assert len(history) == 1
        assert history[0].content_snapshot_before == "v2"


class TestQueries:
    """Tests for listing, latest-N and single lookups."""

    @pytest.mark.asyncio
    async def test__get_latest_by_record__newest_n_oldest_first(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        inserted = [
            await service.insert(db_session, "user-1", "page-1", edit(f"v{i}", "x"), max_diffs=10)
            for i in range(4)
        ]
        result = await service.get_latest_by_record(db_session, "page-1", 2)
        assert [r.id for r in result] == [inserted[2].id, inserted[3].id]

    @pytest.mark.asyncio
    async def test__get_latest_by_record__non_positive_is_empty(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        await service.insert(db_session, "user-1", "page-1", edit("a", "b"), max_diffs=10)
        assert await service.get_latest_by_record(db_session, "page-1", 0) == []

    @pytest.mark.asyncio
    async def test__get_by_actor__spans_pages(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        a = await service.insert(db_session, "user-1", "page-1", edit("a", "b"), max_diffs=10)
        await service.insert(db_session, "user-2", "page-1", edit("b", "c"), max_diffs=10)
        b = await service.insert(db_session, "user-1", "page-2", edit("x", "y"), max_diffs=10)

        result = await service.get_by_actor(db_session, "user-1")
        assert [r.id for r in result] == [a.id, b.id]
        latest = await service.get_latest_by_actor(db_session, "user-1", 1)
        assert [r.id for r in latest] == [b.id]

    @pytest.mark.asyncio
    async def test__get_single__found_and_missing(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        record = await service.insert(db_session, "user-1", "page-1", edit("a", "b"), max_diffs=10)
        assert await service.get_single(db_session, record.id) == record
        assert await service.get_single(db_session, "missing") is None

    @pytest.mark.asyncio
    async def test__clear__removes_only_that_page(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        for i in range(3):
            await service.insert(db_session, "user-1", "page-1", edit(f"{i}", "x"), max_diffs=10)
        await service.insert(db_session, "user-1", "page-2", edit("a", "b"), max_diffs=10)

        assert await service.clear(db_session, "page-1") == 3
        assert await service.get_by_record(db_session, "page-1") == []
        assert len(await service.get_by_record(db_session, "page-2")) == 1


class TestRevertScenario:
    """End-to-end: record edits on a real page, then revert."""

    @pytest.mark.asyncio
    async def test__revert__restores_page_and_keeps_history_linear(
        self, db_session: AsyncSession, service: DiffTrackingService, page: PageData,
    ) -> None:
        records = SqlRecordStore(db_session)
        titles = ["Getting Started", "Intro", "Introduction", "Welcome", "Start Here"]
        contents = ["Hello", "Hello world", "Hello brave world", "Hi", "Hey"]

        diffs = []
        for i in range(4):
            data = DiffInsert(
                content=ContentChange(before=contents[i], after=contents[i + 1]),
                metadata=MetadataSnapshotPair(
                    before={"id": page.id, "title": titles[i]},
                    after={"id": page.id, "title": titles[i + 1]},
                ),
            )
            diffs.append(await service.insert(db_session, "user-1", page.id, data, max_diffs=10))
            await records.write_content(page.id, contents[i + 1])
            await records.write_metadata(page.id, {"title": titles[i + 1]})

        target = diffs[1]
        reverted = await service.revert(db_session, target.id, RevertScope.BOTH)

        assert reverted.id == target.id
        assert await records.read_content(page.id) == "Hello world"
        metadata = await records.read_metadata(page.id)
        assert metadata["title"] == "Intro"
        history = await service.get_by_record(db_session, page.id)
        assert [r.id for r in history] == [diffs[0].id, diffs[1].id]

        # Reverting again to the same diff changes nothing
        await service.revert(db_session, target.id, "both")
        assert [r.id for r in await service.get_by_record(db_session, page.id)] == [
            diffs[0].id,
            diffs[1].id,
        ]
        assert await records.read_content(page.id) == "Hello world"

    @pytest.mark.asyncio
    async def test__revert__missing_id_raises_not_found(
        self, db_session: AsyncSession, service: DiffTrackingService,
    ) -> None:
        with pytest.raises(DiffNotFoundError):
            await service.revert(db_session, "missing", "both")


class TestStaticHelpers:
    """Tests for the pure helpers exposed on the service."""

    def test__metadata_differences__delegates(self) -> None:
        result = DiffTrackingService.metadata_differences({"slug": "a"}, {"slug": "b"})
        assert result == [FieldDifference(label="Page Slug", previous="a", current="b")]

    def test__render_diff_html__delegates(self) -> None:
        assert DiffTrackingService.render_diff_html(None) == '<div class="d2h-wrapper"></div>'
