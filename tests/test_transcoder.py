import io
import pytest
from PIL import Image

from app.image_service.transcoder import transcode
from app.exceptions import InvalidImageException
from conftest import make_image_bytes


def decode(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def test_shrinks_longer_edge_preserving_aspect():
    out = transcode(make_image_bytes(size=(1200, 1600), fmt="PNG"))
    assert (out.width, out.height) == (600, 800)
    assert decode(out.data).size == (600, 800)


def test_does_not_upscale_small_images():
    out = transcode(make_image_bytes(size=(120, 80), fmt="JPEG"))
    assert (out.width, out.height) == (120, 80)


def test_output_is_jpeg_and_size_matches_bytes():
    out = transcode(make_image_bytes(size=(900, 900), fmt="PNG"))
    assert decode(out.data).format == "JPEG"
    assert out.size == len(out.data)


def test_transparent_png_is_flattened_to_rgb():
    data = make_image_bytes(size=(50, 50), fmt="PNG", mode="RGBA", color=(0, 0, 255, 128))
    out = transcode(data)
    assert decode(out.data).mode == "RGB"


def test_undecodable_bytes_are_rejected():
    with pytest.raises(InvalidImageException):
        transcode(b"definitely not an image")
