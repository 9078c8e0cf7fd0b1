"""Inline image attachments, re-encoded as JPEG data URLs."""
from __future__ import annotations

import base64
import binascii
import io
import logging
import math
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError
from starlette.concurrency import run_in_threadpool

from chatcore.core.settings import settings
from chatcore.errors import UnsupportedAttachment

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/jpeg;base64,"


@dataclass(frozen=True)
class EncodedAttachment:
    data_url: str
    width: int
    height: int
    original_width: int
    original_height: int
    original_size: int

    @property
    def encoded_size(self) -> int:
        return len(self.data_url) - len(DATA_URL_PREFIX)

    @property
    def resized(self) -> bool:
        return (self.width, self.height) != (self.original_width, self.original_height)


def scale_factor(size: int, budget: int | None = None, damping: float | None = None) -> float:
    """1.0 under budget, otherwise ``sqrt(budget / size) * damping``."""
    budget = budget or settings.attachment_max_bytes
    damping = settings.attachment_scale_damping if damping is None else damping
    if size <= budget:
        return 1.0
    return math.sqrt(budget / size) * damping


def encode_attachment(data: bytes, budget: int | None = None, quality: int | None = None) -> EncodedAttachment:
    budget = budget or settings.attachment_max_bytes
    quality = quality or settings.attachment_quality
    if not data:
        raise UnsupportedAttachment("attachment is empty")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            original = img.size
            factor = scale_factor(len(data), budget)
            if factor < 1.0:
                target = (max(1, int(original[0] * factor)), max(1, int(original[1] * factor)))
                img = img.resize(target, Image.Resampling.LANCZOS)
            if img.mode != "RGB":
                # JPEG has no alpha; flatten onto white like a canvas export
                background = Image.new("RGB", img.size, (255, 255, 255))
                rgba = img.convert("RGBA")
                background.paste(rgba, mask=rgba.getchannel("A"))
                img = background
            out = io.BytesIO()
            img.save(out, format="JPEG", quality=quality)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise UnsupportedAttachment(f"cannot read image: {exc}") from exc

    encoded = base64.b64encode(out.getvalue()).decode("ascii")
    result = EncodedAttachment(
        data_url=DATA_URL_PREFIX + encoded,
        width=img.size[0],
        height=img.size[1],
        original_width=original[0],
        original_height=original[1],
        original_size=len(data),
    )
    logger.debug("attachment %dx%d (%d bytes) -> %dx%d (%d bytes)", original[0], original[1], len(data), result.width, result.height, result.encoded_size)
    return result


async def attachment_for_send(
    payload_b64: str | None, text: str | None, budget: int | None = None, quality: int | None = None
) -> tuple[str | None, bool]:
    """Encode an upload for a send. Returns ``(data_url, dropped)``.

    An unreadable image is dropped when there is text to send on its own;
    with no text the send is aborted with ``UnsupportedAttachment``.
    """
    if not payload_b64:
        return None, False
    try:
        encoded = await run_in_threadpool(encode_attachment, decode_upload(payload_b64), budget, quality)
    except UnsupportedAttachment as exc:
        if text and text.strip():
            logger.warning("attachment dropped, sending text only: %s", exc.detail)
            return None, True
        raise
    return encoded.data_url, False


def decode_upload(payload_b64: str) -> bytes:
    """Decode a base64 upload; accepts a bare payload or a ``data:`` URL."""
    if payload_b64.startswith("data:"):
        _, _, payload_b64 = payload_b64.partition(",")
    try:
        return base64.b64decode(payload_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise UnsupportedAttachment("attachment is not valid base64") from exc
