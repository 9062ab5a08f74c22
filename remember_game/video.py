"""
カメラフレームサンプラー

1秒間隔で最新のカメラフレームを取得し、320x240に縮小してJPEG圧縮した上で
補助コンテキストとしてLive APIへ送信します。
カメラの準備ができていない場合、そのティックは何もせずにスキップします。
"""

import asyncio
import contextlib
import logging
import threading

import cv2

from .models import MediaKind, OutboundMediaChunk

logger = logging.getLogger(__name__)


def encode_frame(frame, width=320, height=240, quality=50):
    """
    BGRフレームを縮小・JPEG圧縮

    Returns:
        OutboundMediaChunk(kind=IMAGE)、エンコード失敗時はNone
    """
    resized = cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)
    ok, encoded = cv2.imencode(".jpg", resized, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        return None
    return OutboundMediaChunk(payload=encoded.tobytes(), kind=MediaKind.IMAGE, mime_type="image/jpeg")


class OpenCVCamera:
    """
    OpenCV VideoCaptureのラッパー

    read_latest()はスレッドプールから呼ばれるため、読み取りと解放は
    _capture_lockで排他します（release()は実行中の読み取りの完了を待つ）。
    """

    def __init__(self, index=0):
        self.index = index
        self._capture = None
        self._capture_lock = threading.Lock()

    def open(self):
        """
        カメラを開く

        Raises:
            PermissionError: カメラが利用できない（拒否・未接続・使用中）場合
        """
        capture = cv2.VideoCapture(self.index)
        if not capture.isOpened():
            capture.release()
            raise PermissionError(f"Camera not available (index={self.index})")
        # 常に最新フレームを取得するためバッファを最小化
        with contextlib.suppress(Exception):
            capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        with self._capture_lock:
            self._capture = capture
        logger.info(f"Camera opened (index={self.index})")

    def read_latest(self):
        """最新フレームを返す（未準備・読み取り失敗時はNone）"""
        with self._capture_lock:
            if self._capture is None:
                return None
            ok, frame = self._capture.read()
        return frame if ok else None

    def release(self):
        with self._capture_lock:
            capture, self._capture = self._capture, None
            if capture is None:
                return
            try:
                capture.release()
            except Exception as e:
                logger.warning(f"Error releasing camera: {e}")


class VideoFrameSampler:
    """
    一定間隔でカメラフレームを送信

    Attributes:
        camera: read_latest()を持つカメラ
        session: send_media()を持つLiveセッション
        interval (float): 送信間隔（秒）
    """

    def __init__(self, camera, session, interval=1.0, width=320, height=240, quality=50):
        self.camera = camera
        self.session = session
        self.interval = interval
        self.width = width
        self.height = height
        self.quality = quality

    async def sample_once(self):
        """
        1ティック分の処理（取得 → 縮小 → 圧縮 → 送信）

        Returns:
            True: フレームを送信した, False: スキップした
        """
        # VideoCapture.read()はブロッキングのためスレッドプールで実行
        try:
            frame = await asyncio.get_running_loop().run_in_executor(None, self.camera.read_latest)
            if frame is None:
                logger.debug("Camera frame not ready, skipping tick")
                return False
            chunk = encode_frame(frame, self.width, self.height, self.quality)
        except (cv2.error, OSError) as e:
            logger.debug(f"Camera tick failed, skipping: {e}")
            return False
        if chunk is None:
            logger.debug("JPEG encoding failed, skipping tick")
            return False
        self.session.send_media(chunk)
        return True

    async def run(self):
        logger.info(f"Starting camera sampler (interval={self.interval}s)")
        while True:
            await asyncio.sleep(self.interval)
            await self.sample_once()
