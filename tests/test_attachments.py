import asyncio
import base64
import io
import random

import pytest
from PIL import Image

from chatcore.errors import UnsupportedAttachment
from chatcore.services.attachments import (
    DATA_URL_PREFIX,
    attachment_for_send,
    decode_upload,
    encode_attachment,
    scale_factor,
)


def image_bytes(size=(100, 80), mode="RGB", fmt="PNG", color=(200, 30, 30)):
    if mode == "RGBA":
        color = (*color, 128)
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def decode_data_url(data_url):
    assert data_url.startswith(DATA_URL_PREFIX)
    return Image.open(io.BytesIO(base64.b64decode(data_url[len(DATA_URL_PREFIX):])))


class TestScaleFactor:
    def test_under_budget_keeps_size(self):
        assert scale_factor(100, budget=100) == 1.0
        assert scale_factor(1, budget=100) == 1.0

    def test_over_budget_shrinks_by_square_root(self):
        assert scale_factor(400, budget=100, damping=1.0) == pytest.approx(0.5)
        assert scale_factor(400, budget=100, damping=0.7) == pytest.approx(0.35)

    def test_default_budget_is_one_mebibyte(self):
        assert scale_factor(1024 * 1024) == 1.0
        assert scale_factor(1024 * 1024 + 1) < 0.71


class TestEncode:
    def test_small_image_keeps_dimensions(self):
        encoded = encode_attachment(image_bytes((40, 30)))
        assert (encoded.width, encoded.height) == (40, 30)
        assert not encoded.resized
        with decode_data_url(encoded.data_url) as img:
            assert img.format == "JPEG"
            assert img.size == (40, 30)

    def test_oversized_image_is_scaled_down(self):
        data = image_bytes((100, 80))
        budget = len(data) // 4
        encoded = encode_attachment(data, budget=budget)
        factor = scale_factor(len(data), budget)
        assert encoded.resized
        assert encoded.width == int(100 * factor)
        assert encoded.height == int(80 * factor)
        assert encoded.original_size == len(data)

    def test_transparent_image_becomes_jpeg(self):
        encoded = encode_attachment(image_bytes((20, 20), mode="RGBA"))
        with decode_data_url(encoded.data_url) as img:
            assert img.mode == "RGB"

    def test_palette_image_is_accepted(self):
        buf = io.BytesIO()
        Image.new("P", (16, 16)).save(buf, format="GIF")
        assert encode_attachment(buf.getvalue()).width == 16

    def test_image_over_one_mebibyte_fits_the_default_budget(self):
        size = (2200, 2200)
        buf = io.BytesIO()
        noise = random.Random(7).randbytes(size[0] * size[1] * 3)
        Image.frombytes("RGB", size, noise).save(buf, format="JPEG", quality=90)
        data = buf.getvalue()
        assert len(data) > 1024 * 1024

        encoded = encode_attachment(data)
        factor = scale_factor(len(data))
        assert (encoded.width, encoded.height) == (int(2200 * factor), int(2200 * factor))
        assert len(base64.b64decode(encoded.data_url[len(DATA_URL_PREFIX):])) <= 1024 * 1024

    def test_pixel_count_over_the_safety_limit(self, monkeypatch):
        """Small files that decode to huge images are refused, not raised raw."""
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
        with pytest.raises(UnsupportedAttachment):
            encode_attachment(image_bytes((30, 30)))

    def test_not_an_image(self):
        with pytest.raises(UnsupportedAttachment):
            encode_attachment(b"definitely not an image")

    def test_empty_payload(self):
        with pytest.raises(UnsupportedAttachment):
            encode_attachment(b"")


class TestUpload:
    def test_bare_base64(self):
        data = image_bytes()
        assert decode_upload(base64.b64encode(data).decode()) == data

    def test_data_url(self):
        data = image_bytes()
        assert decode_upload("data:image/png;base64," + base64.b64encode(data).decode()) == data

    def test_invalid_base64(self):
        with pytest.raises(UnsupportedAttachment):
            decode_upload("not base64 !!!")


class TestAttachmentForSend:
    def test_no_attachment(self):
        assert asyncio.run(attachment_for_send(None, "hi")) == (None, False)

    def test_valid_image(self):
        payload = base64.b64encode(image_bytes((10, 10))).decode()
        data_url, dropped = asyncio.run(attachment_for_send(payload, ""))
        assert data_url.startswith(DATA_URL_PREFIX)
        assert dropped is False

    def test_unreadable_image_falls_back_to_text(self):
        payload = base64.b64encode(b"garbage").decode()
        assert asyncio.run(attachment_for_send(payload, "caption")) == (None, True)

    def test_oversized_pixel_count_falls_back_to_text(self, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
        payload = base64.b64encode(image_bytes((30, 30))).decode()
        assert asyncio.run(attachment_for_send(payload, "caption")) == (None, True)

    def test_budget_argument_overrides_default(self):
        data = image_bytes((100, 80))
        payload = base64.b64encode(data).decode()
        data_url, _ = asyncio.run(attachment_for_send(payload, "", budget=len(data) // 4))
        with decode_data_url(data_url) as img:
            assert img.size[0] < 100

    def test_unreadable_image_without_text_aborts(self):
        payload = base64.b64encode(b"garbage").decode()
        with pytest.raises(UnsupportedAttachment):
            asyncio.run(attachment_for_send(payload, "  "))
