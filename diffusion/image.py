# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Pixel and mask preparation around the latent codec.

Reading and writing image files is left to the caller; these helpers
only convert between the arrays a codec library yields (uint8 HWC) and
the float NCHW tensors the pipeline consumes.
"""
from __future__ import annotations

import os
import numpy as np
from typing import Tuple

from easel.errors import ConfigurationError, ShapeMismatchError


def _to_nchw(image: np.ndarray) -> np.ndarray:
    """uint8 HWC / NHWC → float NCHW in [0, 1]; float NCHW passes through."""
    image = np.asarray(image)
    if image.dtype == np.uint8:
        if image.ndim == 2:
            image = image[:, :, None]
        if image.ndim == 3:
            image = image[None]
        if image.ndim != 4:
            raise ShapeMismatchError(
                f"expected HWC or NHWC uint8 image, got {image.shape}")
        return image.transpose(0, 3, 1, 2).astype(np.float32) / 255.0
    if image.ndim == 3:
        image = image[None]
    if image.ndim != 4:
        raise ShapeMismatchError(
            f"expected CHW or NCHW float image, got {image.shape}")
    return image.astype(np.float32)


def preprocess_image(image: np.ndarray) -> np.ndarray:
    """Image → float32 (N, 3, H, W) in [-1, 1]."""
    x = _to_nchw(image)
    if x.shape[1] != 3:
        raise ShapeMismatchError(f"expected 3 channels, got {x.shape[1]}")
    return x * 2.0 - 1.0


def preprocess_control(image: np.ndarray) -> np.ndarray:
    """Structural conditioning map → float32 (N, C, H, W) in [0, 1]."""
    return _to_nchw(image)


# channel mean of 122.5 on a 0..255 scale
MASK_THRESHOLD = 122.5 / 255.0


def preprocess_mask(mask: np.ndarray, threshold: float = MASK_THRESHOLD) -> np.ndarray:
    """Mask image → binary float32 (N, 1, H, W); 1 marks pixels to repaint.

    Channels are averaged before thresholding, so grey anti-aliased edges
    go to whichever side of *threshold* they fall.
    """
    m = _to_nchw(mask).mean(axis=1, keepdims=True)
    return (m >= threshold).astype(np.float32)


def prepare_mask_and_masked_image(
    image: np.ndarray, mask: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(mask, masked_image)`` with the repaint region blanked out."""
    pixels = preprocess_image(image)
    m = preprocess_mask(mask)
    if m.shape[2:] != pixels.shape[2:]:
        raise ShapeMismatchError(
            f"mask {m.shape[2:]} and image {pixels.shape[2:]} sizes differ")
    return m, pixels * (1.0 - m)


def downsample_mask(mask: np.ndarray, factor: int = 8) -> np.ndarray:
    """Nearest-neighbour resize of an (N, 1, H, W) mask to latent size."""
    if factor < 1:
        raise ConfigurationError(f"factor must be >= 1, got {factor}")
    H, W = mask.shape[2:]
    if H % factor or W % factor:
        raise ShapeMismatchError(
            f"mask size {W}x{H} is not a multiple of {factor}")
    rows = (np.arange(H // factor) * factor).astype(np.int64)
    cols = (np.arange(W // factor) * factor).astype(np.int64)
    return mask[:, :, rows][:, :, :, cols].astype(np.float32)


def to_unit_range(pixels: np.ndarray) -> np.ndarray:
    """Decoder output in [-1, 1] → float32 in [0, 1]."""
    return np.clip(pixels / 2.0 + 0.5, 0.0, 1.0).astype(np.float32)


def postprocess_image(images: np.ndarray) -> np.ndarray:
    """(N, 3, H, W) in [0, 1] → uint8 (N, H, W, 3)."""
    x = np.clip(images, 0.0, 1.0) * 255.0
    return np.round(x).astype(np.uint8).transpose(0, 2, 3, 1)


def numbered_filename(path: str, index: int, num_samples: int) -> str:
    """``out.png`` → ``out.{index + 1}.png`` when several samples are written."""
    if num_samples <= 1:
        return path
    stem, ext = os.path.splitext(path)
    if not ext:
        return f"{path}.{index + 1}.png"
    return f"{stem}.{index + 1}{ext}"


__all__ = [
    'preprocess_image',
    'preprocess_mask',
    'preprocess_control',
    'prepare_mask_and_masked_image',
    'downsample_mask',
    'to_unit_range',
    'postprocess_image',
    'numbered_filename',
]
