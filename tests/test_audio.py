import asyncio

import numpy as np
import pytest

from remember_game.audio import AudioFrameCapture, PyAudioOutput
from remember_game.models import MediaKind


def test_output_mixes_voice_at_its_start_frame() -> None:
    output = PyAudioOutput(sample_rate=10, buffer_frames=4)
    ended = []
    voice = output.play(np.ones(6, dtype=np.float32), start_at=0.2, on_ended=ended.append)

    first, finished = output._mix(4)
    assert first.tolist() == [0.0, 0.0, 1.0, 1.0]
    assert finished == []

    second, finished = output._mix(4)
    assert second.tolist() == [1.0, 1.0, 1.0, 1.0]
    assert finished == [voice]
    assert output.current_time() == pytest.approx(0.8)


def test_stopped_voice_is_silent() -> None:
    output = PyAudioOutput(sample_rate=10, buffer_frames=4)
    voice = output.play(np.ones(4, dtype=np.float32), start_at=0.0, on_ended=lambda v: None)

    voice.stop()
    out, finished = output._mix(4)

    assert voice.stopped is True
    assert out.tolist() == [0.0] * 4
    assert finished == []


class _FakeStream:
    def __init__(self, reads):
        self.reads = list(reads)
        self.closed = False

    def get_read_available(self):
        return 4 if self.reads else 0

    def read(self, frames, exception_on_overflow=True):
        return self.reads.pop(0)

    def stop_stream(self):
        pass

    def close(self):
        self.closed = True


class _FakeInterface:
    def __init__(self, stream=None):
        self.stream = stream
        self.kwargs = None

    def open(self, **kwargs):
        self.kwargs = kwargs
        if self.stream is None:
            raise OSError("Invalid input device")
        return self.stream


def test_capture_yields_only_full_frames() -> None:
    pytest.importorskip("pyaudio")

    async def _exercise() -> None:
        stream = _FakeStream([b"\x01" * 8, b"\x02" * 6, b"\x03" * 8])
        capture = AudioFrameCapture(sample_rate=16000, frame_size=4, audio_interface=_FakeInterface(stream))
        capture.open()

        frames = []
        async for frame in capture.frames():
            frames.append(frame)
            if len(frames) == 2:
                break
        capture.close()

        assert frames == [b"\x01" * 8, b"\x03" * 8]
        assert stream.closed is True

    asyncio.run(_exercise())


def test_capture_denied_raises_permission_error() -> None:
    pytest.importorskip("pyaudio")
    capture = AudioFrameCapture(audio_interface=_FakeInterface(None))

    with pytest.raises(PermissionError):
        capture.open()


def test_frames_cannot_restart() -> None:
    pytest.importorskip("pyaudio")

    async def _exercise() -> None:
        capture = AudioFrameCapture(frame_size=4, audio_interface=_FakeInterface(_FakeStream([b"\x01" * 8])))
        capture.open()
        async for _ in capture.frames():
            break
        with pytest.raises(RuntimeError):
            async for _ in capture.frames():
                pass
        capture.close()

    asyncio.run(_exercise())


def test_frames_before_open_raises() -> None:
    async def _exercise() -> None:
        capture = AudioFrameCapture()
        with pytest.raises(RuntimeError):
            async for _ in capture.frames():
                pass

    asyncio.run(_exercise())


def test_encode_frame_labels_pcm_mime_type() -> None:
    capture = AudioFrameCapture(sample_rate=16000)
    chunk = capture.encode_frame(b"\x00\x01")

    assert chunk.kind is MediaKind.AUDIO
    assert chunk.mime_type == "audio/pcm;rate=16000"
    assert chunk.payload == b"\x00\x01"
