"""
remember_game - Gemini Live APIを使ったリアルタイム音声しりとりゲーム

人間とリモートの会話AIが、音声（とカメラ映像）の双方向ストリーミングで
英単語のしりとりを行います。このパッケージはセッション・ターン管理のエンジンを提供します。

主要モジュール:
- game_session: ゲーム全体の状態機械とイベントループ
- live_client: Gemini Live API WebSocketクライアント
- audio: PyAudioベースのマイク入力と出力ストリーム
- playback: 応答音声のギャップレス再生スケジューラ
- video: OpenCVカメラと1秒間隔のフレーム送信
- turn_engine / timer / shuffle: ゲームルール
- high_score: ハイスコアの永続化

システムアーキテクチャ:
1. game_app.py: 設定・ロギングを初期化し、端末からコマンドを受け付ける
2. GameSession: 全イベントを単一のasyncio.Queueで到着順に処理
"""

from .game_session import GameSession
from .high_score import HighScoreStore
from .live_client import GeminiLiveClient, LiveSession
from .models import GameSnapshot, GameState, GameTurn, Player
from .state_machine import GameStatus

__all__ = [
    'GameSession',
    'HighScoreStore',
    'GeminiLiveClient',
    'LiveSession',
    'GameSnapshot',
    'GameState',
    'GameTurn',
    'Player',
    'GameStatus',
]

__version__ = '1.0.0'
