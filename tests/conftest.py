import io

import numpy as np
import pytest
from PIL import Image

from config import ConfigurationManager


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def noise_image(width: int, height: int, low: int = 0, high: int = 256, seed: int = 7) -> Image.Image:
    rng = np.random.default_rng(seed)
    arr = rng.integers(low, high, size=(height, width, 3), dtype=np.uint8)
    return Image.fromarray(arr, "RGB")


@pytest.fixture(autouse=True)
def fresh_config():
    ConfigurationManager.reset()
    yield
    ConfigurationManager.reset()


@pytest.fixture
def sharp_png() -> bytes:
    """1000x700 noise: large, sharp, mid brightness, no warnings."""
    return encode_png(noise_image(1000, 700))


@pytest.fixture
def small_png() -> bytes:
    return encode_png(noise_image(300, 200))


@pytest.fixture
def blurry_png() -> bytes:
    # Coarse noise upscaled with bilinear interpolation has almost no edges
    coarse = noise_image(20, 15)
    return encode_png(coarse.resize((800, 600), Image.BILINEAR))


@pytest.fixture
def dark_png() -> bytes:
    return encode_png(noise_image(1000, 700, low=0, high=60))


@pytest.fixture
def rgba_png() -> bytes:
    arr = np.zeros((120, 160, 4), dtype=np.uint8)
    arr[..., :3] = 20
    arr[40:80, 40:120, 3] = 255
    return encode_png(Image.fromarray(arr, "RGBA"))


@pytest.fixture
def make_png():
    """Factory for noise PNGs of a given size and value range."""
    def _make(width: int, height: int, low: int = 0, high: int = 256) -> bytes:
        return encode_png(noise_image(width, height, low=low, high=high))
    return _make
