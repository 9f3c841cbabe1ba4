"""
Shared synthetic images for the test suite
"""

import numpy as np
import pytest


@pytest.fixture
def document_image():
    """White 600x600 sheet on a black 1000x1000 background"""
    image = np.zeros((1000, 1000, 3), dtype=np.uint8)
    image[200:800, 200:800] = 255
    return image


@pytest.fixture
def uniform_image():
    """Flat gray frame with nothing to detect"""
    return np.full((300, 400, 3), 128, dtype=np.uint8)


@pytest.fixture
def square_ring_mask():
    """Single-pixel outline of a 30x30 square inside a 50x50 mask"""
    mask = np.zeros((50, 50), dtype=bool)
    mask[10, 10:40] = True
    mask[39, 10:40] = True
    mask[10:40, 10] = True
    mask[10:40, 39] = True
    return mask
