import anyio
import pytest

from tgdispatch.telegram.forwards import ForwardAggregator


class _Recorder:
    def __init__(self) -> None:
        self.batches: list[tuple[str, list[dict]]] = []
        self.flushed = anyio.Event()

    async def __call__(self, chat_id: str, messages: list[dict]) -> None:
        self.batches.append((chat_id, messages))
        self.flushed.set()

    def reset(self) -> None:
        self.flushed = anyio.Event()


@pytest.mark.anyio
async def test_back_to_back_forwards_flush_once() -> None:
    recorder = _Recorder()
    with anyio.fail_after(2):
        async with anyio.create_task_group() as tg:
            aggregator = ForwardAggregator(task_group=tg, flush=recorder, quiet_s=0.05)
            aggregator.add("5", {"message_id": 1})
            aggregator.add("5", {"message_id": 2})
            assert aggregator.pending_messages("5") == [
                {"message_id": 1},
                {"message_id": 2},
            ]

    assert recorder.batches == [("5", [{"message_id": 1}, {"message_id": 2}])]
    assert aggregator.pending_chat_ids() == []


@pytest.mark.anyio
async def test_new_forward_resets_quiet_period() -> None:
    recorder = _Recorder()
    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            aggregator = ForwardAggregator(task_group=tg, flush=recorder, quiet_s=0.6)
            aggregator.add("5", {"message_id": 1})
            await anyio.sleep(0.3)
            aggregator.add("5", {"message_id": 2})
            await anyio.sleep(0.45)
            assert recorder.batches == []
            await recorder.flushed.wait()

    assert recorder.batches == [("5", [{"message_id": 1}, {"message_id": 2}])]


@pytest.mark.anyio
async def test_forward_after_flush_opens_new_batch() -> None:
    recorder = _Recorder()
    with anyio.fail_after(2):
        async with anyio.create_task_group() as tg:
            aggregator = ForwardAggregator(task_group=tg, flush=recorder, quiet_s=0.05)
            aggregator.add("5", {"message_id": 1})
            await recorder.flushed.wait()
            recorder.reset()
            aggregator.add("5", {"message_id": 2})
            await recorder.flushed.wait()

    assert recorder.batches == [
        ("5", [{"message_id": 1}]),
        ("5", [{"message_id": 2}]),
    ]


@pytest.mark.anyio
async def test_chats_are_batched_separately() -> None:
    recorder = _Recorder()
    with anyio.fail_after(2):
        async with anyio.create_task_group() as tg:
            aggregator = ForwardAggregator(task_group=tg, flush=recorder, quiet_s=0.05)
            aggregator.add("1", {"message_id": 10})
            aggregator.add("2", {"message_id": 20})
            aggregator.add("1", {"message_id": 11})

    assert sorted(recorder.batches) == [
        ("1", [{"message_id": 10}, {"message_id": 11}]),
        ("2", [{"message_id": 20}]),
    ]


@pytest.mark.anyio
async def test_flush_failure_does_not_escape() -> None:
    calls: list[str] = []

    async def flush(chat_id: str, messages: list[dict]) -> None:
        _ = messages
        calls.append(chat_id)
        raise RuntimeError("handler exploded")

    with anyio.fail_after(2):
        async with anyio.create_task_group() as tg:
            aggregator = ForwardAggregator(task_group=tg, flush=flush, quiet_s=0.01)
            aggregator.add("9", {"message_id": 1})

    assert calls == ["9"]


@pytest.mark.anyio
async def test_injected_sleep_receives_quiet_period() -> None:
    delays: list[float] = []
    recorder = _Recorder()

    async def sleep(delay: float) -> None:
        delays.append(delay)

    with anyio.fail_after(2):
        async with anyio.create_task_group() as tg:
            aggregator = ForwardAggregator(
                task_group=tg, flush=recorder, quiet_s=1.0, sleep=sleep
            )
            aggregator.add("5", {"message_id": 1})

    assert delays == [1.0]
    assert recorder.batches == [("5", [{"message_id": 1}])]
