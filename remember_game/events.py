"""
エンジンイベント定義

Live APIの受信ループ、カウントダウンタイマー、シャッフル演出などの
各イベント源は、これらの型付きイベントをGameSessionのasyncio.Queueへ
投入します。GameSessionはキューを到着順に1件ずつ処理するため、
コールバック間の順序が入れ替わることはありません。
"""

from dataclasses import dataclass
from enum import Enum


class TranscriptionSide(Enum):
    """INPUT: ユーザー発話の文字起こし / OUTPUT: AI発話の文字起こし"""
    INPUT = "input"
    OUTPUT = "output"


@dataclass(frozen=True)
class SessionOpened:
    """Live APIのセットアップ完了"""


@dataclass(frozen=True)
class AudioChunk:
    """AI応答音声（PCM16, 24kHz, モノラル）"""
    data: bytes


@dataclass(frozen=True)
class Transcription:
    side: TranscriptionSide
    text: str


@dataclass(frozen=True)
class Interrupted:
    """AI発話中にユーザー発話を検知（割り込み）"""


@dataclass(frozen=True)
class SessionError:
    reason: str


@dataclass(frozen=True)
class SessionClosed:
    reason: str = ""


@dataclass(frozen=True)
class TimerTick:
    """カウントダウンの1秒経過"""


@dataclass(frozen=True)
class ShuffleDue:
    """シャッフル演出の終了（新しい文字を割り当てる）"""


@dataclass(frozen=True)
class SpeakingIndicatorExpired:
    generation: int
