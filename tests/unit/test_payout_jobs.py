import asyncio

from tikiti.payouts import jobs


def test_sweep_cycle_expires_then_pays(monkeypatch):
    calls = []
    monkeypatch.setattr(jobs.reconciler, "expire_stale_orders", lambda ttl, limit: calls.append("expire") or 2)
    monkeypatch.setattr(jobs.payouts_service, "run_payout_batch", lambda limit: calls.append("payouts") or {"orders": 1, "payouts": 3, "failed": 0})

    summary = asyncio.run(jobs.run_sweep_cycle(limit=10))
    assert calls == ["expire", "payouts"]
    assert summary == {"expired": 2, "orders": 1, "payouts": 3, "failed": 0}


def test_expiry_failure_does_not_block_payouts(monkeypatch):
    def boom(ttl, limit):
        raise RuntimeError("supabase down")

    monkeypatch.setattr(jobs.reconciler, "expire_stale_orders", boom)
    monkeypatch.setattr(jobs.payouts_service, "run_payout_batch", lambda limit: {"orders": 0, "payouts": 0, "failed": 0})
    assert asyncio.run(jobs.run_sweep_cycle())["expired"] == 0


def test_start_and_stop(monkeypatch):
    cycles = []

    async def fake_cycle(limit=100):
        cycles.append(1)
        return {}

    monkeypatch.setattr(jobs, "run_sweep_cycle", fake_cycle)

    async def scenario():
        task = jobs.start(interval=3600)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await jobs.stop()
        return task

    task = asyncio.run(scenario())
    assert task.cancelled()
    assert cycles == [1]
    assert jobs._task is None
