import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from echonet_local.coalescer import DEFAULT_DEBOUNCE, WriteCoalescer


def test_default_debounce_is_100ms():
    assert DEFAULT_DEBOUNCE == 0.1


class TestWriteCoalescer:
    @pytest.mark.asyncio
    async def test_burst_of_requests_gives_one_write_cycle(self):
        write_cycle = AsyncMock()
        coalescer = WriteCoalescer(write_cycle, delay=0.1)

        for _ in range(3):
            coalescer.request_write()
            await asyncio.sleep(0.01)

        # Still inside the quiet period of the last request
        await asyncio.sleep(0.05)
        write_cycle.assert_not_awaited()

        await asyncio.sleep(0.1)
        write_cycle.assert_awaited_once()
        assert coalescer.cycles == 1
        await coalescer.close()

    @pytest.mark.asyncio
    async def test_separate_windows_give_separate_cycles(self):
        write_cycle = AsyncMock()
        coalescer = WriteCoalescer(write_cycle, delay=0.01)

        coalescer.request_write()
        await asyncio.sleep(0.05)
        coalescer.request_write()
        await asyncio.sleep(0.05)

        assert write_cycle.await_count == 2
        await coalescer.close()

    @pytest.mark.asyncio
    async def test_busy_flag_covers_pending_and_running_write(self):
        release = asyncio.Event()
        started = asyncio.Event()

        async def write_cycle():
            started.set()
            await release.wait()

        on_busy = Mock()
        coalescer = WriteCoalescer(write_cycle, on_busy=on_busy, delay=0.01)

        coalescer.request_write()
        assert coalescer.busy is True
        on_busy.assert_called_once_with(True)

        await asyncio.wait_for(started.wait(), 1)
        assert coalescer.busy is True

        release.set()
        await asyncio.sleep(0.01)
        assert coalescer.busy is False
        assert [c.args[0] for c in on_busy.call_args_list] == [True, False]
        await coalescer.close()

    @pytest.mark.asyncio
    async def test_write_cycles_never_overlap(self):
        active = 0
        peak = 0

        async def write_cycle():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.03)
            active -= 1

        coalescer = WriteCoalescer(write_cycle, delay=0.005)
        coalescer.request_write()
        await asyncio.sleep(0.015)
        # The first cycle is running; this one must wait for it
        coalescer.request_write()
        await asyncio.sleep(0.1)

        assert coalescer.cycles == 2
        assert peak == 1
        await coalescer.close()

    @pytest.mark.asyncio
    async def test_failing_write_cycle_is_logged_and_clears_busy(self, caplog):
        write_cycle = AsyncMock(side_effect=RuntimeError("boom"))
        coalescer = WriteCoalescer(write_cycle, delay=0.005, name="Living(192.168.1.10)")

        coalescer.request_write()
        await asyncio.sleep(0.03)

        assert coalescer.busy is False
        assert "Write cycle failed: boom" in caplog.text
        await coalescer.close()

    @pytest.mark.asyncio
    async def test_close_drops_pending_write(self):
        write_cycle = AsyncMock()
        coalescer = WriteCoalescer(write_cycle, delay=0.05)

        coalescer.request_write()
        await coalescer.close()
        await asyncio.sleep(0.08)

        write_cycle.assert_not_awaited()
        assert coalescer.busy is False
