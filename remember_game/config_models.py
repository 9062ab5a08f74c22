"""
設定モデル - Pydanticベースの型安全な設定管理

このモジュールは、ゲーム全体の設定を型安全に管理します。
環境変数（.envファイル）から自動的に読み込まれ、デフォルト値とバリデーションを提供します。
ネストされた設定は "GAME__TURN_DEADLINE=7" のように "__" 区切りで上書きできます。
"""

import logging
import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class AudioConfig(BaseModel):
    """
    音声設定

    Attributes:
        input_sample_rate: マイク入力のサンプルレート（Live API入力: 16kHz）
        output_sample_rate: AI応答音声のサンプルレート（Live API出力: 24kHz）
        capture_frame_size: 1フレームのサンプル数（4096サンプル ≒ 256ms @16kHz）
        output_buffer_frames: 出力ストリームのバッファサイズ（フレーム数）
        input_device_index: 入力デバイスインデックス
        output_device_index: 出力デバイスインデックス
    """
    input_sample_rate: int = Field(default=16000, description="マイク入力サンプルレート")
    output_sample_rate: int = Field(default=24000, description="応答音声サンプルレート")
    capture_frame_size: int = Field(default=4096, gt=0, description="キャプチャフレームサイズ")
    output_buffer_frames: int = Field(default=1024, gt=0, description="出力バッファサイズ")
    input_device_index: Optional[int] = Field(default=None, description="入力デバイスインデックス")
    output_device_index: Optional[int] = Field(default=None, description="出力デバイスインデックス")


class VideoConfig(BaseModel):
    """
    カメラ設定

    Attributes:
        enabled: カメラフレーム送信の有効/無効
        camera_index: OpenCVのカメラインデックス
        frame_width: 送信フレーム幅（縮小後）
        frame_height: 送信フレーム高さ（縮小後）
        jpeg_quality: JPEG品質（1-100）
        sample_interval: フレーム送信間隔（秒）
    """
    enabled: bool = Field(default=True, description="カメラ送信の有効化")
    camera_index: int = Field(default=0, description="カメラインデックス")
    frame_width: int = Field(default=320, gt=0, description="送信フレーム幅")
    frame_height: int = Field(default=240, gt=0, description="送信フレーム高さ")
    jpeg_quality: int = Field(default=50, ge=1, le=100, description="JPEG品質")
    sample_interval: float = Field(default=1.0, gt=0, description="送信間隔（秒）")


class LiveAPIConfig(BaseModel):
    """
    Gemini Live API設定

    Attributes:
        url: WebSocket接続URL（BidiGenerateContent）
        model: 使用するモデル名
        voice: 応答音声のプリセット名
        setup_timeout: setupComplete待ちのタイムアウト（秒）
        connect_attempts: 初回接続の試行回数（開始後の再接続は行わない）
        retry_delay: 試行間隔（秒）
    """
    url: str = Field(
        default="wss://generativelanguage.googleapis.com/ws/"
                "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent",
        description="WebSocket URL",
    )
    model: str = Field(default="models/gemini-2.5-flash-native-audio-preview-12-2025", description="Live APIモデル")
    voice: str = Field(default="Puck", description="応答音声")
    setup_timeout: float = Field(default=10.0, gt=0, description="セットアップ待ちタイムアウト（秒）")
    connect_attempts: int = Field(default=1, ge=1, description="接続試行回数")
    retry_delay: float = Field(default=2.0, ge=0, description="試行間隔（秒）")


class GameConfig(BaseModel):
    """
    ゲームルール設定

    Attributes:
        turn_deadline: 1ターンの制限時間（秒）
        turn_reward: 人間のターン受理時の加算点
        shuffle_delay: シャッフル演出の長さ（秒）
        tick_interval: カウントダウンの刻み（秒）
        speaking_indicator_seconds: 発話インジケーターの保持時間（秒）
    """
    turn_deadline: int = Field(default=5, ge=1, description="ターン制限時間（秒）")
    turn_reward: int = Field(default=10, ge=0, description="ターン加算点")
    shuffle_delay: float = Field(default=0.4, ge=0, description="シャッフル演出時間（秒）")
    tick_interval: float = Field(default=1.0, gt=0, description="カウントダウン間隔（秒）")
    speaking_indicator_seconds: float = Field(default=1.0, ge=0, description="発話表示の保持時間（秒）")


class PathsConfig(BaseModel):
    """
    ファイルパス設定

    Attributes:
        base_dir: ユーザーデータディレクトリ
        log_dir: ログ出力ディレクトリ
        high_score_file: ハイスコア保存ファイル
    """
    base_dir: Path = Field(default_factory=lambda: Path.home() / ".remember_game", description="データディレクトリ")
    log_dir: Optional[Path] = Field(default=None, description="ログディレクトリ")
    high_score_file: Optional[Path] = Field(default=None, description="ハイスコアファイル")

    def __init__(self, **data):
        super().__init__(**data)
        # デフォルトパスを設定
        if self.log_dir is None:
            self.log_dir = self.base_dir / "logs"
        if self.high_score_file is None:
            self.high_score_file = self.base_dir / "high_score.json"


class AppConfig(BaseSettings):
    """
    アプリケーション全体設定

    環境変数から自動的に読み込まれる、ゲーム全体の設定を管理します。
    .env ファイルからの読み込みに対応しています。

    Attributes:
        gemini_api_key: Gemini APIキー
        log_level: ログレベル名
        audio: 音声設定
        video: カメラ設定
        live: Live API設定
        game: ゲームルール設定
        paths: ファイルパス設定

    Examples:
        >>> from remember_game.config_models import AppConfig
        >>> config = AppConfig(gemini_api_key="dummy")
        >>> print(config.game.turn_deadline)
        5
        >>> print(config.audio.input_sample_rate)
        16000
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    # APIキー
    gemini_api_key: str = Field(..., description="Gemini APIキー")
    log_level: str = Field(default="INFO", description="ログレベル")

    # ネストされた設定
    audio: AudioConfig = Field(default_factory=AudioConfig, description="音声設定")
    video: VideoConfig = Field(default_factory=VideoConfig, description="カメラ設定")
    live: LiveAPIConfig = Field(default_factory=LiveAPIConfig, description="Live API設定")
    game: GameConfig = Field(default_factory=GameConfig, description="ゲーム設定")
    paths: PathsConfig = Field(default_factory=PathsConfig, description="パス設定")

    def __init__(self, **data):
        super().__init__(**data)
        # 環境変数から個別設定を読み込み
        self._load_device_config_from_env()

    def _load_device_config_from_env(self):
        """環境変数からデバイス設定を読み込み（短縮名の環境変数に対応）"""
        for env_name, section, attr in (
            ("INPUT_DEVICE_INDEX", self.audio, "input_device_index"),
            ("OUTPUT_DEVICE_INDEX", self.audio, "output_device_index"),
            ("CAMERA_INDEX", self.video, "camera_index"),
        ):
            value = os.getenv(env_name)
            if not value:
                continue
            try:
                setattr(section, attr, int(value))
            except ValueError:
                logger.warning(f"Ignoring non-integer {env_name}={value!r}")

        if os.getenv("HIGH_SCORE_FILE"):
            self.paths.high_score_file = Path(os.getenv("HIGH_SCORE_FILE"))
