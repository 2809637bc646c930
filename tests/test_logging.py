import asyncio
import json
import logging

from page_snapshot.logging import jlog, logging_context, set_global_context


def _records(caplog):
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == "snapshot"]


def test_jlog_merges_global_and_scoped_context(caplog):
    caplog.set_level(logging.INFO, logger="snapshot")
    set_global_context(app="page_snapshot")
    with logging_context(request_id="r1"):
        jlog("info", event="inside")
    jlog("info", event="outside")
    inside, outside = _records(caplog)
    assert inside["app"] == "page_snapshot"
    assert inside["request_id"] == "r1"
    assert "request_id" not in outside


def test_logging_context_is_isolated_between_tasks(caplog):
    caplog.set_level(logging.INFO, logger="snapshot")

    async def worker(name: str, delay: float) -> None:
        with logging_context(worker=name):
            await asyncio.sleep(delay)
            jlog("info", event="tick", expected=name)

    async def scenario():
        await asyncio.gather(worker("a", 0.02), worker("b", 0.01))

    asyncio.run(scenario())
    records = [r for r in _records(caplog) if r["event"] == "tick"]
    assert len(records) == 2
    assert all(r["worker"] == r["expected"] for r in records)
