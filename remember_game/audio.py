"""
オーディオ入出力

PyAudioを使用したマイク入力（AudioFrameCapture）と、
サンプル精度のクロックを持つ出力（PyAudioOutput）を提供します。

並行処理の責務:
入力は**asyncioスレッド**でポーリングし、出力は**PyAudioコールバックスレッド**で
ミキシングします。PyAudioはオーディオデバイスからの割り込みを専用スレッドで
処理するため、出力側の共有データはthreading.Lockで保護します。

スレッドモデル:
1. **asyncioスレッド** (AudioFrameCapture.frames, PyAudioOutput.play):
   - 入力ストリームから固定長フレームを読み取りLive APIへ送信
   - 受信したAI音声を指定時刻に再生予約
2. **PyAudioコールバックスレッド** (PyAudioOutput._callback):
   - 予約済みの音声をミキシングして出力
   - 再生完了通知は call_soon_threadsafe でasyncioスレッドへ戻す

重要な制約:
- コールバック内では重い処理やブロッキング処理を避けること
- コールバックからゲーム状態に直接触れないこと
"""

import asyncio
import logging
import threading

import numpy as np

from .models import MediaKind, OutboundMediaChunk

logger = logging.getLogger(__name__)


def list_audio_devices(p):
    """
    利用可能なオーディオデバイスを列挙（デバイス診断用）

    PyAudioが認識している全てのオーディオデバイスをログに出力します。
    デバイス初期化エラー時の診断に使用されます。
    """
    try:
        info = p.get_host_api_info_by_index(0)
        num_devices = info.get('deviceCount')

        logger.info("Available audio devices:")
        for i in range(num_devices):
            try:
                device_info = p.get_device_info_by_host_api_device_index(0, i)
                device_type = []
                if device_info.get('maxInputChannels') > 0:
                    device_type.append(f"Input({device_info.get('maxInputChannels')}ch)")
                if device_info.get('maxOutputChannels') > 0:
                    device_type.append(f"Output({device_info.get('maxOutputChannels')}ch)")

                logger.info(
                    f"  [{i}] {device_info.get('name')} - {'/'.join(device_type)} "
                    f"@ {device_info.get('defaultSampleRate')}Hz"
                )
            except Exception as e:
                logger.warning(f"  [{i}] Error reading device info: {e}")
    except Exception as e:
        logger.error(f"Failed to enumerate audio devices: {e}")


class AudioFrameCapture:
    """
    マイク入力キャプチャ

    16kHzモノラルPCM16を固定長フレーム（デフォルト4096サンプル ≒ 256ms）単位で
    読み取り、OutboundMediaChunk(kind=AUDIO)としてLive APIへ転送します。

    Attributes:
        sample_rate (int): 入力サンプルレート
        frame_size (int): 1フレームのサンプル数
        device_index (int): 入力デバイスインデックス（Noneでデフォルト）
        p: PyAudioインスタンス
        input_stream: 入力ストリーム
    """

    def __init__(self, sample_rate=16000, frame_size=4096, device_index=None, audio_interface=None):
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.device_index = device_index
        self.p = audio_interface
        self._owns_interface = audio_interface is None
        self.input_stream = None
        self._frames_started = False
        self._closed = False

    @property
    def mime_type(self):
        return f"audio/pcm;rate={self.sample_rate}"

    @property
    def frame_bytes(self):
        # PCM16モノラル: 1サンプル2バイト
        return self.frame_size * 2

    def open(self):
        """
        入力ストリームを開く

        Raises:
            PermissionError: マイクが利用できない（拒否・未接続・使用中）場合
        """
        import pyaudio

        if self.p is None:
            self.p = pyaudio.PyAudio()

        try:
            self.input_stream = self.p.open(
                format=pyaudio.paInt16,
                channels=1,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.frame_size,
                input_device_index=self.device_index
            )
            logger.info(
                f"Input stream opened (device={self.device_index}, rate={self.sample_rate}Hz, "
                f"frame={self.frame_size})"
            )
        except OSError as e:
            logger.error(f"Failed to open input stream (device={self.device_index}): {e}")
            list_audio_devices(self.p)
            raise PermissionError(f"Microphone not available (device={self.device_index})") from e

    def encode_frame(self, frame):
        return OutboundMediaChunk(payload=bytes(frame), kind=MediaKind.AUDIO, mime_type=self.mime_type)

    async def frames(self):
        """
        固定長PCMフレームを順に返す非同期ジェネレーター

        無限・遅延評価・再開不可。1回目の呼び出しのみ有効です。
        読み取り可能なサンプルが1フレーム分たまるまではイベントループに制御を返します。

        Raises:
            RuntimeError: open()前、または2回目以降に呼び出した場合
        """
        if self.input_stream is None:
            raise RuntimeError("Input stream is not open")
        if self._frames_started:
            raise RuntimeError("Frame sequence cannot be restarted")
        self._frames_started = True

        while not self._closed:
            if self.input_stream.get_read_available() >= self.frame_size:
                data = self.input_stream.read(self.frame_size, exception_on_overflow=False)
                # 不完全なフレームは転送しない
                if len(data) == self.frame_bytes:
                    yield data
            else:
                await asyncio.sleep(0.01)

    async def pump(self, session):
        """全フレームをLiveセッションへ転送（キャンセルされるまで継続）"""
        logger.info("Starting microphone pump")
        try:
            async for frame in self.frames():
                session.send_media(self.encode_frame(frame))
        except OSError as e:
            logger.error(f"Microphone read failed: {e}")

    def close(self):
        """入力ストリームを停止（複数回呼び出しても安全）"""
        self._closed = True
        if self.input_stream is not None:
            try:
                self.input_stream.stop_stream()
                self.input_stream.close()
            except Exception as e:
                logger.warning(f"Error closing input stream: {e}")
            self.input_stream = None
        if self._owns_interface and self.p is not None:
            try:
                self.p.terminate()
            except Exception as e:
                logger.warning(f"Error terminating PyAudio: {e}")
            self.p = None


class _ScheduledVoice:
    """出力ストリーム上に予約された1つの音声バッファ（停止可能なハンドル）"""

    def __init__(self, output, samples, start_frame, on_ended):
        self._output = output
        self.samples = samples
        self.start_frame = start_frame
        self.on_ended = on_ended
        self.stopped = False

    @property
    def end_frame(self):
        return self.start_frame + len(self.samples)

    def stop(self):
        self._output._remove(self)


class PyAudioOutput:
    """
    コールバック駆動の出力ストリーム

    出力クロックは「コールバックで描画済みのフレーム数 / サンプルレート」です。
    play()で予約された音声はコールバック内でミキシングされ、
    予約した開始時刻ちょうどから再生されます。

    Attributes:
        sample_rate (int): 出力サンプルレート（24kHz）
        buffer_frames (int): コールバック1回あたりのフレーム数
        device_index (int): 出力デバイスインデックス
    """

    def __init__(self, sample_rate=24000, buffer_frames=1024, device_index=None, audio_interface=None):
        self.sample_rate = sample_rate
        self.buffer_frames = buffer_frames
        self.device_index = device_index
        self.p = audio_interface
        self._owns_interface = audio_interface is None
        self.output_stream = None
        self._lock = threading.Lock()
        self._voices = []
        self._frames_rendered = 0
        self._loop = None
        self._continue_flag = None
        self._closed = False

    def open(self):
        """
        出力ストリームを開始

        Raises:
            RuntimeError: 出力デバイスが利用できない場合
        """
        import pyaudio

        if self.p is None:
            self.p = pyaudio.PyAudio()
        self._loop = asyncio.get_running_loop()
        self._continue_flag = pyaudio.paContinue

        try:
            self.output_stream = self.p.open(
                format=pyaudio.paInt16,
                channels=1,
                rate=self.sample_rate,
                output=True,
                output_device_index=self.device_index,
                frames_per_buffer=self.buffer_frames,
                stream_callback=self._callback
            )
            self.output_stream.start_stream()
            logger.info(f"Output stream opened successfully (device={self.device_index})")
        except OSError as e:
            logger.error(f"Failed to open output stream (device={self.device_index}): {e}")
            list_audio_devices(self.p)
            raise RuntimeError(f"Audio output device not available (device={self.device_index})") from e

    def current_time(self):
        with self._lock:
            return self._frames_rendered / self.sample_rate

    def play(self, samples, start_at, on_ended):
        """
        float32サンプルを指定時刻から再生予約

        Args:
            samples (np.ndarray): float32モノラルサンプル（-1.0〜1.0）
            start_at (float): 出力クロック上の開始時刻（秒）
            on_ended (callable): 再生完了時にハンドルを引数に呼ばれるコールバック

        Returns:
            停止可能なハンドル
        """
        voice = _ScheduledVoice(self, samples, int(round(start_at * self.sample_rate)), on_ended)
        with self._lock:
            self._voices.append(voice)
        return voice

    def _remove(self, voice):
        with self._lock:
            voice.stopped = True
            if voice in self._voices:
                self._voices.remove(voice)

    def _mix(self, frame_count):
        """
        次のブロックをミキシング（コールバックスレッドで実行）

        Returns:
            (float32サンプル配列, 再生完了したハンドルのリスト)
        """
        out = np.zeros(frame_count, dtype=np.float32)
        finished = []
        with self._lock:
            block_start = self._frames_rendered
            block_end = block_start + frame_count
            for voice in list(self._voices):
                if voice.start_frame >= block_end:
                    continue
                lo = max(block_start, voice.start_frame)
                hi = min(block_end, voice.end_frame)
                if hi > lo:
                    out[lo - block_start:hi - block_start] += \
                        voice.samples[lo - voice.start_frame:hi - voice.start_frame]
                if voice.end_frame <= block_end:
                    self._voices.remove(voice)
                    finished.append(voice)
            self._frames_rendered = block_end
        return out, finished

    def _callback(self, in_data, frame_count, time_info, status):
        out, finished = self._mix(frame_count)
        pcm = (np.clip(out, -1.0, 1.0) * 32767).astype('<i2').tobytes()
        for voice in finished:
            try:
                self._loop.call_soon_threadsafe(voice.on_ended, voice)
            except RuntimeError:
                pass  # イベントループ終了後は通知不要
        return pcm, self._continue_flag

    def close(self):
        """出力ストリームを停止（複数回呼び出しても安全）"""
        if self._closed:
            return
        self._closed = True
        with self._lock:
            self._voices.clear()
        if self.output_stream is not None:
            try:
                self.output_stream.stop_stream()
                self.output_stream.close()
            except Exception as e:
                logger.warning(f"Error closing output stream: {e}")
            self.output_stream = None
        if self._owns_interface and self.p is not None:
            try:
                self.p.terminate()
            except Exception as e:
                logger.warning(f"Error terminating PyAudio: {e}")
            self.p = None
