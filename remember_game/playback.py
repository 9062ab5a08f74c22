"""
再生スケジューラ

受信したAI応答音声チャンクをデコードし、出力クロック上で
隙間なく・重ならずに連続再生されるよう予約します。

単一の「次の開始時刻」カーソルを単調に進めることで、
チャンクの再生順は到着順と一致します。割り込み（バージイン）時は
再生中・予約済みのハンドルを全て停止し、カーソルを0に戻します。

出力オブジェクトは以下のインターフェースを持つ必要があります（PyAudioOutput参照）:
    current_time() -> float
    play(samples, start_at, on_ended) -> handle（handle.stop()で停止）
    close()
"""

import logging

import numpy as np

from .models import PendingAudioChunk

logger = logging.getLogger(__name__)


def decode_pcm16(payload, sample_rate):
    """
    リトルエンディアンPCM16モノラルをfloat32にデコード

    Raises:
        ValueError: 空のペイロード、またはバイト数が奇数の場合
    """
    if not payload:
        raise ValueError("Empty audio payload")
    if len(payload) % 2:
        raise ValueError(f"PCM16 payload has odd length: {len(payload)} bytes")
    samples = np.frombuffer(payload, dtype='<i2').astype(np.float32) / 32768.0
    return PendingAudioChunk(payload=payload, samples=samples, duration=len(samples) / sample_rate)


class PlaybackScheduler:
    """
    AI応答音声のギャップレス再生スケジューラ

    Attributes:
        output: 出力クロックと再生予約を提供するオブジェクト
        sample_rate (int): 応答音声のサンプルレート
        next_start_time (float): 次のチャンクの開始時刻カーソル
        active (set): 再生中・予約済みのハンドル
    """

    def __init__(self, output, sample_rate=24000):
        self.output = output
        self.sample_rate = sample_rate
        self.next_start_time = output.current_time()
        self.active = set()
        self._closed = False

    def enqueue(self, payload):
        """
        チャンクをデコードして再生予約

        開始時刻は max(カーソル, 現在時刻) とし、カーソルをチャンク長だけ進めます。
        デコード失敗は1チャンクの欠落として扱い、セッションは継続します。

        Returns:
            再生ハンドル（失敗時はNone）
        """
        if self._closed:
            return None
        try:
            chunk = decode_pcm16(payload, self.sample_rate)
        except ValueError as e:
            logger.warning(f"Dropping undecodable audio chunk: {e}")
            return None

        start_at = max(self.next_start_time, self.output.current_time())
        try:
            handle = self.output.play(chunk.samples, start_at, self._on_ended)
        except (OSError, RuntimeError) as e:
            logger.warning(f"Failed to schedule audio chunk: {e}")
            return None

        self.next_start_time = start_at + chunk.duration
        self.active.add(handle)
        logger.debug(f"Scheduled {chunk.duration:.3f}s chunk at {start_at:.3f}s")
        return handle

    def _on_ended(self, handle):
        self.active.discard(handle)

    def interrupt(self):
        """再生中・予約済みの全ハンドルを停止し、カーソルをリセット（割り込み処理）"""
        if self.active:
            logger.info(f"Interrupting playback ({len(self.active)} chunks)")
        for handle in list(self.active):
            try:
                handle.stop()
            except Exception as e:
                logger.debug(f"Error stopping playback handle: {e}")
        self.active.clear()
        self.next_start_time = 0.0

    def close(self):
        """再生を停止して出力を解放（複数回呼び出しても安全）"""
        if self._closed:
            return
        self.interrupt()
        self._closed = True
        try:
            self.output.close()
        except Exception as e:
            logger.warning(f"Error closing audio output: {e}")
