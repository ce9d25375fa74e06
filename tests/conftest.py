"""Pytest configuration and fixtures."""

import pytest
from pathlib import Path
from PIL import Image

from qoiframe import qoi
from qoiframe.app import app as qoi_app

@pytest.fixture
def sample_pixels() -> bytes:
    """Five RGB pixels, the fourth repeating the first."""
    return bytes([255, 0, 0,
                  15, 1, 255,
                  255, 255, 191,
                  255, 0, 0,
                  15, 1, 74])

@pytest.fixture
def sample_desc() -> qoi.Descriptor:
    return qoi.Descriptor(5, 1, qoi.Channels.RGB, qoi.Colorspace.LINEAR)

@pytest.fixture
def gradient_image() -> Image.Image:
    """A small RGBA image with smooth gradients and a transparent stripe."""
    image = Image.new('RGBA', (40, 30))
    for y in range(image.height):
        for x in range(image.width):
            alpha = 0 if x == 7 else 255
            image.putpixel((x, y), (x * 6, y * 8, (x + y) * 3, alpha))
    return image

@pytest.fixture
def image_dir(tmp_path: Path, gradient_image: Image.Image) -> Path:
    gradient_image.save(tmp_path / "gradient.png")
    (tmp_path / "gradient.qoi").write_bytes(qoi.encode_image(gradient_image))
    (tmp_path / "broken.qoi").write_bytes(b"qoif\x00\x00\x00\x02")
    (tmp_path / "notes.txt").write_text("not an image")
    (tmp_path / "data.bin").write_bytes(b"\x00")
    return tmp_path

@pytest.fixture
def client(image_dir: Path):
    qoi_app.config['IMAGE_DIRECTORY'] = str(image_dir)
    qoi_app.config['TESTING'] = True
    with qoi_app.test_client() as client:
        yield client
