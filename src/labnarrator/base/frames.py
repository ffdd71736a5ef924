"""Key frame extraction with scene-change detection and quadrant tiling.

Frames are pulled from recorded media and each one is captured twice over: as
a full-resolution JPEG and as four native-resolution quadrant tiles. Tiles keep
small on-screen text (IP addresses, CLI output) legible for vision models that
downscale large images.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path

import cv2
import numpy as np
import requests
from PIL import Image

from labnarrator.base.exceptions import MediaLoadError
from labnarrator.base.lab import MediaKind

__all__ = [
    "ExtractedFrame",
    "FrameExtractor",
    "extract_frames",
    "mean_absolute_difference",
    "split_quadrants",
    "encode_data_url",
    "decode_data_url",
]

logger = logging.getLogger(__name__)

MAX_KEY_FRAMES = 8
SCENE_CHANGE_THRESHOLD = 0.08
SAMPLE_INTERVAL_SECONDS = 1.0
PIXEL_STRIDE = 4
FULL_FRAME_JPEG_QUALITY = 85
TILE_JPEG_QUALITY = 90
MEDIA_FETCH_TIMEOUT = 30.0

_DATA_URL_PREFIX = "data:image/jpeg;base64,"


@dataclass
class ExtractedFrame:
    """A key frame captured from a media asset.

    Attributes:
        full_image: JPEG data URL of the full frame
        quadrant_tiles: JPEG data URLs of the quadrants, in order
            top-left, top-right, bottom-left, bottom-right
        timestamp_seconds: Position of the frame in the media (0 for images)
        width: Width of the full frame in pixels
        height: Height of the full frame in pixels
    """

    full_image: str
    quadrant_tiles: list[str] = field(default_factory=list)
    timestamp_seconds: float = 0.0
    width: int = 0
    height: int = 0

    def to_dict(self) -> dict[str, object]:
        return {"full": self.full_image, "tiles": list(self.quadrant_tiles), "timestamp": self.timestamp_seconds}

    @classmethod
    def from_dict(cls, data: dict) -> ExtractedFrame:
        return cls(
            full_image=data["full"],
            quadrant_tiles=list(data.get("tiles") or []),
            timestamp_seconds=float(data.get("timestamp") or 0.0),
        )


def mean_absolute_difference(frame1: np.ndarray, frame2: np.ndarray, stride: int = PIXEL_STRIDE) -> float:
    """Mean absolute per-channel difference between two frames.

    Only every ``stride``-th pixel is compared, which is plenty for scene-change
    purposes.

    Args:
        frame1: First frame (H, W, 3)
        frame2: Second frame (H, W, 3)
        stride: Pixel sampling step

    Returns:
        Difference between 0.0 (identical) and 1.0 (inverted)
    """
    if stride < 1:
        raise ValueError("stride must be >= 1")

    pixels1 = frame1.reshape(-1, frame1.shape[-1])[::stride, :3]
    pixels2 = frame2.reshape(-1, frame2.shape[-1])[::stride, :3]
    length = min(len(pixels1), len(pixels2))
    if length == 0:
        return 0.0

    diff = np.abs(pixels1[:length].astype(np.int16) - pixels2[:length].astype(np.int16))
    return float(diff.mean() / 255.0)


def split_quadrants(image: np.ndarray) -> list[np.ndarray]:
    """Split an image into four non-overlapping quadrants.

    Quadrants are cut at the floored midpoints, so on odd dimensions the last
    row and/or column is dropped.

    Returns:
        ``[top_left, top_right, bottom_left, bottom_right]``
    """
    height, width = image.shape[:2]
    half_w = width // 2
    half_h = height // 2
    if half_w == 0 or half_h == 0:
        # Degenerate 1px-wide or 1px-high images cannot be split.
        return [image.copy() for _ in range(4)]

    return [
        image[0:half_h, 0:half_w],
        image[0:half_h, half_w : 2 * half_w],
        image[half_h : 2 * half_h, 0:half_w],
        image[half_h : 2 * half_h, half_w : 2 * half_w],
    ]


def encode_data_url(image: np.ndarray, quality: int) -> str:
    """Encode an RGB array as a JPEG data URL."""
    buffer = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(image)).convert("RGB").save(buffer, format="JPEG", quality=quality)
    return _DATA_URL_PREFIX + base64.b64encode(buffer.getvalue()).decode("ascii")


def decode_data_url(data_url: str) -> Image.Image:
    """Decode an image data URL back into a PIL image."""
    _, _, payload = data_url.partition(",")
    return Image.open(io.BytesIO(base64.b64decode(payload)))


class FrameExtractor:
    """Extracts representative frames from videos, GIFs and still images.

    Videos are sampled once per ``sample_interval`` seconds of video time. A
    sample becomes a key frame when it is the first sample or when its mean
    absolute difference against the previous sample exceeds ``threshold``.
    Sampling stops after ``max_key_frames`` key frames or at the end of the
    video. Animated GIFs are treated like still images: only the first
    rendered frame is used.

    Example:
        >>> extractor = FrameExtractor()
        >>> frames = extractor.extract("recording.webm", MediaKind.VIDEO)
        >>> len(frames[0].quadrant_tiles)
        4
    """

    def __init__(
        self,
        max_key_frames: int = MAX_KEY_FRAMES,
        threshold: float = SCENE_CHANGE_THRESHOLD,
        sample_interval: float = SAMPLE_INTERVAL_SECONDS,
        max_duration_seconds: float | None = None,
        fetch_timeout: float = MEDIA_FETCH_TIMEOUT,
    ):
        """Initialize the frame extractor.

        Args:
            max_key_frames: Maximum number of key frames captured per video
            threshold: Mean normalized pixel difference above which a sample is a scene change
            sample_interval: Seconds of video time between samples
            max_duration_seconds: Stop sampling after this much video time (None samples everything)
            fetch_timeout: Timeout in seconds for downloading remote images
        """
        if max_key_frames < 1:
            raise ValueError("max_key_frames must be >= 1")
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be between 0.0 and 1.0")
        if sample_interval <= 0:
            raise ValueError("sample_interval must be positive")
        if max_duration_seconds is not None and max_duration_seconds <= 0:
            raise ValueError("max_duration_seconds must be positive or None")

        self.max_key_frames = max_key_frames
        self.threshold = threshold
        self.sample_interval = sample_interval
        self.max_duration_seconds = max_duration_seconds
        self.fetch_timeout = fetch_timeout

    def extract(self, media_url: str, kind: MediaKind | str) -> list[ExtractedFrame]:
        """Extract key frames from a media asset.

        Args:
            media_url: http(s) URL, data URL or local path of the media
            kind: Media kind; unknown kinds are treated as images

        Returns:
            Non-empty, time-ordered list of extracted frames

        Raises:
            MediaLoadError: If the media cannot be loaded or decoded
        """
        try:
            kind = MediaKind(kind)
        except ValueError:
            logger.warning("Unknown media kind %r for %s, treating as image", kind, media_url)
            kind = MediaKind.IMAGE

        if kind == MediaKind.VIDEO:
            frames = self.extract_video(media_url)
        else:
            frames = self.extract_image(media_url)

        logger.info("Extracted %d key frame(s) from %s %s", len(frames), kind.value, media_url)
        return frames

    def extract_image(self, media_url: str) -> list[ExtractedFrame]:
        """Extract the single frame of a still (or animated) image."""
        return [self.capture(self._load_image(media_url), timestamp=0.0)]

    def extract_video(self, media_url: str) -> list[ExtractedFrame]:
        """Extract key frames from a video using scene-change detection."""
        capture = cv2.VideoCapture(media_url)
        if not capture.isOpened():
            capture.release()
            raise MediaLoadError(media_url, "video could not be opened")

        key_frames: list[ExtractedFrame] = []
        previous_sample: np.ndarray | None = None
        last_frame: np.ndarray | None = None
        last_index = -1
        last_sampled_index = -1

        try:
            fps = capture.get(cv2.CAP_PROP_FPS)
            if not fps or math.isnan(fps) or fps <= 0:
                raise MediaLoadError(media_url, "video reports no frame rate")
            step = max(1, round(fps * self.sample_interval))

            frame_index = 0
            while len(key_frames) < self.max_key_frames:
                ok, frame = capture.read()
                if not ok:
                    break
                if self.max_duration_seconds is not None and frame_index / fps > self.max_duration_seconds:
                    break

                last_frame, last_index = frame, frame_index
                if frame_index % step == 0:
                    if previous_sample is None or self._is_scene_change(previous_sample, frame):
                        key_frames.append(self._capture_bgr(frame, frame_index / fps))
                        logger.debug("Key frame at %.2fs", frame_index / fps)
                    previous_sample = frame
                    last_sampled_index = frame_index
                frame_index += 1
        finally:
            capture.release()

        if last_frame is None:
            raise MediaLoadError(media_url, "no decodable frames")

        # The tail of the video between the last sample and the end can hold the final result screen.
        if (
            len(key_frames) < self.max_key_frames
            and last_index != last_sampled_index
            and previous_sample is not None
            and self._is_scene_change(previous_sample, last_frame)
        ):
            key_frames.append(self._capture_bgr(last_frame, last_index / fps))

        if not key_frames:
            key_frames.append(self._capture_bgr(last_frame, last_index / fps))

        return key_frames

    def capture(self, image: np.ndarray, timestamp: float) -> ExtractedFrame:
        """Capture an RGB image as a full frame plus its four quadrant tiles."""
        height, width = image.shape[:2]
        return ExtractedFrame(
            full_image=encode_data_url(image, FULL_FRAME_JPEG_QUALITY),
            quadrant_tiles=[encode_data_url(tile, TILE_JPEG_QUALITY) for tile in split_quadrants(image)],
            timestamp_seconds=timestamp,
            width=width,
            height=height,
        )

    def _capture_bgr(self, frame: np.ndarray, timestamp: float) -> ExtractedFrame:
        return self.capture(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB), timestamp)

    def _is_scene_change(self, previous: np.ndarray, current: np.ndarray) -> bool:
        return mean_absolute_difference(previous, current) > self.threshold

    def _read_bytes(self, media_url: str) -> bytes:
        if media_url.startswith(("http://", "https://")):
            try:
                response = requests.get(media_url, timeout=self.fetch_timeout)
                response.raise_for_status()
            except requests.RequestException as e:
                raise MediaLoadError(media_url, str(e)) from e
            return response.content

        if media_url.startswith("data:"):
            try:
                return base64.b64decode(media_url.partition(",")[2], validate=True)
            except (binascii.Error, ValueError) as e:
                raise MediaLoadError(media_url[:32], "invalid data URL") from e

        path = Path(media_url)
        if not path.is_file():
            raise MediaLoadError(media_url, "file not found")
        return path.read_bytes()

    def _load_image(self, media_url: str) -> np.ndarray:
        data = self._read_bytes(media_url)
        try:
            with Image.open(io.BytesIO(data)) as image:
                return np.asarray(image.convert("RGB"))
        except (OSError, ValueError) as e:
            raise MediaLoadError(media_url, f"image could not be decoded: {e}") from e


def extract_frames(media_url: str, kind: MediaKind | str) -> list[ExtractedFrame]:
    """Extract key frames from a media asset with default settings."""
    return FrameExtractor().extract(media_url, kind)
