"""
Synthetic 28x28 digit bitmaps.

Digits are drawn from two primitives, rings and Bresenham line segments,
then optionally roughened with a little "handwriting" jitter. They stand in
for MNIST on the VAE page; no real dataset is downloaded.
"""

from typing import Dict, List, Tuple

import numpy as np

from .generators import RngLike, ensure_rng

IMAGE_SIZE = 28

# (kind, *args) with rows/cols in pixel coordinates
#   ("ring", center_row, center_col, radius)
#   ("line", row0, col0, row1, col1)
DIGIT_STROKES: Dict[int, List[Tuple]] = {
    0: [("ring", 14, 14, 8)],
    1: [("line", 6, 13, 21, 13), ("line", 6, 14, 21, 14), ("line", 6, 10, 9, 13)],
    2: [("line", 8, 8, 8, 19), ("line", 8, 20, 14, 14), ("line", 14, 14, 20, 8), ("line", 20, 8, 20, 19)],
    3: [("line", 8, 8, 8, 17), ("line", 14, 10, 14, 15), ("line", 20, 8, 20, 17), ("line", 8, 18, 20, 18)],
    4: [("line", 6, 8, 14, 8), ("line", 14, 8, 14, 19), ("line", 6, 18, 21, 18)],
    5: [
        ("line", 8, 8, 8, 17),
        ("line", 8, 8, 13, 8),
        ("line", 14, 8, 14, 15),
        ("line", 14, 16, 19, 16),
        ("line", 20, 8, 20, 15),
    ],
    6: [("ring", 16, 14, 6), ("line", 8, 8, 15, 8)],
    7: [("line", 8, 8, 8, 19), ("line", 8, 20, 21, 13)],
    8: [("ring", 10, 14, 5), ("ring", 18, 14, 5)],
    9: [("ring", 12, 14, 6), ("line", 12, 20, 21, 20)],
}


def blank_image() -> np.ndarray:
    return np.zeros((IMAGE_SIZE, IMAGE_SIZE))


def draw_ring(image: np.ndarray, center_row: float, center_col: float, radius: float) -> None:
    """Set every pixel within 1.5px of the circle outline."""
    rows, cols = np.indices(image.shape)
    distance = np.sqrt((rows - center_row) ** 2 + (cols - center_col) ** 2)
    image[np.abs(distance - radius) < 1.5] = 1.0


def draw_line(image: np.ndarray, row0: int, col0: int, row1: int, col1: int) -> None:
    """Bresenham segment between two pixels (inclusive), clipped to the image."""
    d_col = abs(col1 - col0)
    d_row = abs(row1 - row0)
    step_col = 1 if col0 < col1 else -1
    step_row = 1 if row0 < row1 else -1
    err = d_col - d_row

    row, col = row0, col0
    height, width = image.shape
    while True:
        if 0 <= row < height and 0 <= col < width:
            image[row, col] = 1.0
        if row == row1 and col == col1:
            break
        e2 = 2 * err
        if e2 > -d_row:
            err -= d_row
            col += step_col
        if e2 < d_col:
            err += d_col
            row += step_row


def add_handwriting_noise(image: np.ndarray, rng: RngLike = None, probability: float = 0.1) -> np.ndarray:
    """Jitter a fraction of the ink pixels by up to ±0.15."""
    rng = ensure_rng(rng)
    ink = image > 0
    jitter = (rng.random(image.shape) < probability) & ink
    noisy = image + np.where(jitter, (rng.random(image.shape) - 0.5) * 0.3, 0.0)
    return np.clip(noisy, 0.0, 1.0)


def draw_digit(digit: int, rng: RngLike = None, handwriting: bool = True) -> np.ndarray:
    """Render one digit (0-9) as a 28x28 float image in [0, 1]."""
    if digit not in DIGIT_STROKES:
        raise ValueError(f"digit must be in 0..9, got {digit}")

    image = blank_image()
    for stroke in DIGIT_STROKES[digit]:
        kind, args = stroke[0], stroke[1:]
        if kind == "ring":
            draw_ring(image, *args)
        else:
            draw_line(image, *args)

    if handwriting:
        image = add_handwriting_noise(image, rng)
    return image


def generate_synthetic_mnist(batch_size: int = 8, rng: RngLike = None) -> Tuple[np.ndarray, np.ndarray]:
    """Batch of digits cycling through 0..9.

    Returns:
        (images, labels) with images shaped (batch_size, 28, 28).
    """
    rng = ensure_rng(rng)
    labels = np.arange(batch_size) % 10
    images = np.stack([draw_digit(int(d), rng) for d in labels]) if batch_size else np.empty((0, IMAGE_SIZE, IMAGE_SIZE))
    return images, labels
