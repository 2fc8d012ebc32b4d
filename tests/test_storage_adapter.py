"""
tests/test_storage_adapter.py — Fallback store behaviour
=========================================================
MongoDB is simulated with ``MemoryBackend``; the JSON side is the real file
backend over a tmp directory.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.constants import StorageKind
from app.errors import BothBackendsFailed, StorageError
from app.schemas import PostRecord, SurveyRecord
from app.storage.adapter import FallbackCollection
from app.storage.flag import UsabilityFlag

from helpers import MemoryBackend, run


def _survey(**answers) -> SurveyRecord:
    return SurveyRecord(id="", language="ar", answers=answers or {"age": "18-28"})


class _BrokenBackend:
    kind = StorageKind.JSON

    async def create(self, record):
        raise StorageError("disk full")

    async def read_all(self):
        raise StorageError("disk gone")


# ===========================================================================
# Backend selection
# ===========================================================================
class TestBackendSelection:
    def test_flag_down_goes_straight_to_file(self, ctx, survey_primary):
        served = run(ctx.surveys.create(_survey()))
        assert served.storage == StorageKind.JSON
        assert survey_primary.calls == []
        assert run(ctx.surveys.fallback.count()) == 1

    def test_flag_up_writes_to_primary(self, live_ctx, survey_primary):
        served = run(live_ctx.surveys.create(_survey()))
        assert served.storage == StorageKind.MONGODB
        assert served.value.id in survey_primary.items
        assert run(live_ctx.surveys.fallback.count()) == 0

    def test_no_primary_configured(self, settings):
        from app.context import build_context

        ctx = build_context(settings)
        ctx.flag.set(True)
        assert ctx.surveys.primary is None
        assert ctx.surveys.active_storage == StorageKind.JSON
        assert run(ctx.surveys.create(_survey())).storage == StorageKind.JSON


# ===========================================================================
# Failover
# ===========================================================================
class TestFailover:
    def test_failed_write_replays_on_file_and_drops_flag(self, live_ctx, survey_primary):
        survey_primary.fail = True
        served = run(live_ctx.surveys.create(_survey()))

        assert served.storage == StorageKind.JSON
        assert served.value.id
        assert live_ctx.flag.usable is False
        assert run(live_ctx.surveys.fallback.count()) == 1

    def test_writes_after_failover_skip_primary(self, live_ctx, survey_primary):
        survey_primary.fail = True
        run(live_ctx.surveys.create(_survey()))
        survey_primary.calls.clear()

        run(live_ctx.surveys.create(_survey()))
        assert survey_primary.calls == []

    def test_failed_read_keeps_flag(self, live_ctx, survey_primary):
        run(live_ctx.surveys.fallback.create(_survey()))
        survey_primary.fail = True

        served = run(live_ctx.surveys.read_all())
        assert served.storage == StorageKind.JSON
        assert len(served.value) == 1
        assert live_ctx.flag.usable is True

    def test_both_backends_failing_raises(self):
        primary = MemoryBackend(SurveyRecord, "submittedAt")
        primary.fail = True
        store = FallbackCollection(
            "surveys", primary=primary, fallback=_BrokenBackend(), flag=UsabilityFlag(True)
        )
        with pytest.raises(BothBackendsFailed) as info:
            run(store.create(_survey()))
        assert isinstance(info.value.primary, ConnectionError)
        assert isinstance(info.value.fallback, StorageError)

    def test_writes_resume_on_primary_after_recovery(self, live_ctx, survey_primary):
        survey_primary.fail = True
        run(live_ctx.surveys.create(_survey()))
        survey_primary.fail = False
        live_ctx.flag.set(True)

        served = run(live_ctx.surveys.create(_survey()))
        assert served.storage == StorageKind.MONGODB
        # no reconciliation: the outage write stays in the file only
        assert run(live_ctx.surveys.fallback.count()) == 1
        assert len(survey_primary.items) == 1

    def test_lost_flag_notifies_listeners_once(self):
        flag = UsabilityFlag(True)
        reasons = []
        flag.on_lost(reasons.append)
        flag.mark_lost("first")
        flag.mark_lost("second")
        assert reasons == ["first"]


# ===========================================================================
# Mutation hooks and posts
# ===========================================================================
class TestMutationHooks:
    def test_hook_receives_serving_backend(self, live_ctx, survey_primary):
        seen = []

        async def hook(backend):
            seen.append(backend)

        live_ctx.surveys.on_mutation(hook)
        run(live_ctx.surveys.create(_survey()))
        survey_primary.fail = True
        run(live_ctx.surveys.create(_survey()))

        assert seen[-2] is survey_primary
        assert seen[-1] is live_ctx.surveys.fallback

    def test_failing_hook_does_not_fail_write(self, ctx):
        async def hook(backend):
            raise RuntimeError("boom")

        ctx.surveys.on_mutation(hook)
        assert run(ctx.surveys.create(_survey())).value.id

    def test_post_update_keeps_approved_in_sync(self, ctx):
        created = run(
            ctx.posts.create(PostRecord(id="", title="t", content="c", author="a"))
        ).value
        assert created.status == "pending" and created.approved is False

        updated = run(ctx.posts.update(created.id, {"status": "approved"})).value
        assert updated.status == "approved" and updated.approved is True

    def test_clear_everywhere_counts_both_backends(self, live_ctx, survey_primary):
        run(live_ctx.surveys.create(_survey()))
        run(live_ctx.surveys.fallback.create(_survey()))
        cleared, errors = run(live_ctx.surveys.clear_everywhere())
        assert cleared == 2
        assert errors == []

    def test_clear_reports_failed_backend(self, live_ctx, survey_primary):
        run(live_ctx.surveys.fallback.create(_survey()))
        survey_primary.fail = True
        cleared, errors = run(live_ctx.surveys.clear_everywhere())
        assert cleared == 1
        assert errors == [StorageKind.MONGODB.value]

    def test_count_since(self, ctx):
        old = SurveyRecord(
            id="", language="en", answers={"age": "-17"},
            submittedAt=datetime(2020, 1, 1, tzinfo=timezone.utc),
        )
        run(ctx.surveys.create(old))
        run(ctx.surveys.create(_survey()))
        since = datetime(2021, 1, 1, tzinfo=timezone.utc)
        assert run(ctx.surveys.count(since)).value == 1
