import asyncio
from datetime import timedelta

from dreamforge.core.types import Skill
from dreamforge.storage.backends import InMemoryUsageBackend
from dreamforge.storage.models import UsageDraft, UsageRecord, truncate_prompt, utcnow
from dreamforge.storage.usage_store import UsageStore

from fakes import ListBackend, RefusingBackend, UnreachableBackend


def _record(skill=Skill.CAPTION, success=True, minutes_ago=0, days_ago=0, prompt="describe this", **kwargs):
    return UsageRecord(
        prompt=prompt,
        skill=skill,
        success=success,
        timestamp=utcnow() - timedelta(days=days_ago, minutes=minutes_ago),
        **kwargs,
    )


def _save_all(store, records):
    async def go():
        return [await store.save(r) for r in records]

    return asyncio.run(go())


def test_memory_only_store_saves_to_fallback():
    store = UsageStore()
    assert not store.durable_enabled

    assert _save_all(store, [_record()]) == ["memory"]
    assert len(store.fallback) == 1


def test_memory_backend_keeps_record_ids():
    backend = InMemoryUsageBackend()
    record = _record()
    original_id = record.id
    asyncio.run(backend.save(record))
    assert asyncio.run(backend.fetch_recent(1))[0].id == original_id


def test_record_in_both_backends_is_counted_once():
    durable = ListBackend()
    store = UsageStore(durable=durable)
    record = _record()

    async def go():
        await durable.save(record)
        await store.fallback.save(record)
        return await store.summarize(7), await store.recent_history(10)

    summary, history = asyncio.run(go())
    assert summary.total_calls == 1
    assert len(history) == 1


def test_durable_backend_is_preferred():
    durable = ListBackend()
    store = UsageStore(durable=durable)

    assert _save_all(store, [_record()]) == ["sqlite"]
    assert len(durable.records) == 1
    assert len(store.fallback) == 0


def test_failing_durable_write_falls_back_to_memory():
    durable = UnreachableBackend()
    store = UsageStore(durable=durable)

    assert _save_all(store, [_record(), _record()]) == ["memory", "memory"]
    assert durable.save_attempts == 2
    assert len(store.fallback) == 2



def test_any_durable_exception_falls_back_to_memory():
    store = UsageStore(durable=RefusingBackend())

    assert _save_all(store, [_record(minutes_ago=1), _record()]) == ["memory", "memory"]
    assert asyncio.run(store.summarize(7)).total_calls == 2
    assert len(asyncio.run(store.recent_history(10))) == 2

def test_summary_reads_across_both_backends():
    durable = ListBackend(failing_saves=1)
    store = UsageStore(durable=durable)

    # first save lands in memory, the next two reach the durable backend
    backends = _save_all(
        store,
        [
            _record(Skill.DETECT, minutes_ago=3),
            _record(Skill.DETECT, minutes_ago=2),
            _record(Skill.CAPTION, success=False, minutes_ago=1),
        ],
    )
    assert backends == ["memory", "sqlite", "sqlite"]

    summary = asyncio.run(store.summarize(7))
    assert summary.total_calls == 3
    assert summary.successful_calls == 2
    assert summary.success_rate == 67
    assert summary.skill_breakdown[Skill.DETECT].count == 2
    assert summary.skill_breakdown[Skill.CAPTION].success_rate_pct == 0


def test_summary_survives_unreadable_durable_backend():
    store = UsageStore(durable=UnreachableBackend())
    _save_all(store, [_record()])

    summary = asyncio.run(store.summarize(7))
    assert summary.total_calls == 1


def test_empty_window_summary_is_zero():
    summary = asyncio.run(UsageStore().summarize(7))

    assert summary.total_calls == 0
    assert summary.success_rate == 0
    assert summary.skill_breakdown == {}
    assert summary.cost_usd == 0


def test_window_excludes_old_records():
    store = UsageStore()
    _save_all(store, [_record(days_ago=10), _record(days_ago=2), _record()])

    assert asyncio.run(store.summarize(7)).total_calls == 2
    assert asyncio.run(store.summarize(30)).total_calls == 3


def test_success_rate_rounds_half_up():
    store = UsageStore()
    _save_all(store, [_record(success=True)] + [_record(success=False) for _ in range(7)])

    # 1/8 = 12.5%
    assert asyncio.run(store.summarize(7)).success_rate == 13


def test_cost_uses_per_call_rate():
    store = UsageStore(cost_per_call=0.002)
    _save_all(store, [_record() for _ in range(3)])
    assert asyncio.run(store.summarize(7)).cost_usd == 0.006


def test_recent_history_is_newest_first_and_truncated():
    store = UsageStore(durable=ListBackend(failing_saves=1))
    _save_all(
        store,
        [
            _record(prompt="x" * 150, minutes_ago=5, response_time_ms=120),
            _record(prompt="second", minutes_ago=1, confidence=0.5),
        ],
    )

    history = asyncio.run(store.recent_history(10))
    assert [h["prompt"] for h in history] == ["second", "x" * 100 + "..."]
    assert history[0]["confidence"] == 0.5
    assert history[1]["responseTimeMs"] == 120
    assert set(history[0]) == {"id", "prompt", "skill", "timestamp", "responseTimeMs", "success", "confidence"}


def test_recent_history_respects_limit():
    store = UsageStore()
    _save_all(store, [_record(minutes_ago=i) for i in range(5)])
    assert len(asyncio.run(store.recent_history(3))) == 3


def test_truncate_prompt():
    assert truncate_prompt("") == "No prompt"
    assert truncate_prompt("a" * 100) == "a" * 100
    assert truncate_prompt("a" * 101) == "a" * 100 + "..."


def test_handle_writes_exactly_once():
    durable = ListBackend()
    store = UsageStore(durable=durable)
    handle = store.record(UsageDraft(prompt="find the dog", skill=Skill.DETECT, parameters={"threshold": 0.5}))
    assert durable.save_attempts == 0

    async def go():
        await handle.finalize(response_time_ms=250, result_size_bytes=64, confidence=0.9, success=True)
        await handle.mark_error("too late")

    asyncio.run(go())

    assert durable.save_attempts == 1
    saved = durable.records[0]
    assert saved.success is True
    assert saved.error_message is None
    assert saved.response_time_ms == 250
    assert saved.parameters == {"threshold": 0.5}


def test_mark_error_records_failure():
    store = UsageStore()
    handle = store.record(UsageDraft(prompt="find the dog", skill=Skill.DETECT))
    asyncio.run(handle.mark_error("Moondream API error: 503", response_time_ms=40))

    saved = asyncio.run(store.fallback.fetch_recent(1))[0]
    assert handle.persisted
    assert saved.success is False
    assert saved.error_message == "Moondream API error: 503"
    assert saved.response_time_ms == 40


def test_record_truncates_long_prompts():
    handle = UsageStore().record(UsageDraft(prompt="p" * 2500, skill=Skill.QUERY))
    assert len(handle.record.prompt) == 2000


def test_concurrent_fallback_writes_are_not_lost():
    store = UsageStore(durable=UnreachableBackend())
    handles = [store.record(UsageDraft(prompt=f"find object {i}", skill=Skill.DETECT)) for i in range(50)]

    async def go():
        await asyncio.gather(
            *(h.finalize(response_time_ms=10, result_size_bytes=8, confidence=0.5, success=True) for h in handles)
        )
        return await store.summarize(7), await store.recent_history(100)

    summary, history = asyncio.run(go())

    assert summary.total_calls == 50
    assert len({h["id"] for h in history}) == 50
    assert all(h.persisted for h in handles)
