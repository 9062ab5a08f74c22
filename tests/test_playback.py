import pytest

from remember_game.playback import PlaybackScheduler, decode_pcm16

from tests.fakes import FakeOutput, pcm16

RATE = 24000


def _chunk(seconds):
    return pcm16([1000] * int(RATE * seconds))


def test_decode_pcm16_scales_to_float() -> None:
    chunk = decode_pcm16(pcm16([0, 16384, -32768]), RATE)

    assert chunk.samples.tolist() == [0.0, 0.5, -1.0]
    assert chunk.duration == pytest.approx(3 / RATE)


@pytest.mark.parametrize("payload", [b"", b"\x01\x02\x03"])
def test_decode_pcm16_rejects_bad_payloads(payload) -> None:
    with pytest.raises(ValueError):
        decode_pcm16(payload, RATE)


def test_chunks_are_scheduled_back_to_back() -> None:
    output = FakeOutput(now=1.0)
    scheduler = PlaybackScheduler(output, RATE)

    scheduler.enqueue(_chunk(0.5))
    scheduler.enqueue(_chunk(0.25))
    scheduler.enqueue(_chunk(0.25))

    starts = [h.start_at for h in output.played]
    assert starts == pytest.approx([1.0, 1.5, 1.75])
    assert scheduler.next_start_time == pytest.approx(2.0)


def test_late_chunk_starts_at_current_time() -> None:
    output = FakeOutput(now=0.0)
    scheduler = PlaybackScheduler(output, RATE)

    scheduler.enqueue(_chunk(0.5))
    output.now = 3.0
    scheduler.enqueue(_chunk(0.5))

    assert output.played[1].start_at == pytest.approx(3.0)
    assert scheduler.next_start_time == pytest.approx(3.5)


def test_interrupt_stops_all_handles_and_resets_cursor() -> None:
    output = FakeOutput(now=2.0)
    scheduler = PlaybackScheduler(output, RATE)
    first = scheduler.enqueue(_chunk(0.5))
    second = scheduler.enqueue(_chunk(0.5))

    scheduler.interrupt()

    assert first.stopped and second.stopped
    assert scheduler.active == set()
    assert scheduler.next_start_time == 0.0

    # next chunk after barge-in starts immediately
    output.now = 2.2
    third = scheduler.enqueue(_chunk(0.1))
    assert third.start_at == pytest.approx(2.2)


def test_undecodable_chunk_is_dropped_without_moving_cursor() -> None:
    output = FakeOutput(now=0.0)
    scheduler = PlaybackScheduler(output, RATE)

    assert scheduler.enqueue(b"\x00") is None
    assert scheduler.enqueue(b"") is None

    assert output.played == []
    assert scheduler.next_start_time == 0.0


def test_finished_handles_leave_active_set() -> None:
    output = FakeOutput()
    scheduler = PlaybackScheduler(output, RATE)
    handle = scheduler.enqueue(_chunk(0.1))
    assert handle in scheduler.active

    output.finish(handle)

    assert handle not in scheduler.active


def test_close_is_idempotent_and_stops_scheduling() -> None:
    output = FakeOutput()
    scheduler = PlaybackScheduler(output, RATE)
    handle = scheduler.enqueue(_chunk(0.1))

    scheduler.close()
    scheduler.close()

    assert handle.stopped
    assert output.close_calls == 1
    assert scheduler.enqueue(_chunk(0.1)) is None
