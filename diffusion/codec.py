# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Latent codec — VAE encode / decode with the latent scaling constant.

The scheduler expects latents with roughly unit variance; the Stable
Diffusion VAE produces latents about 1 / 0.18215 times larger.  Encoded
latents are multiplied by the constant and decoder inputs divided by it.
Using the wrong constant desaturates or oversaturates every output
without any error.
"""
from __future__ import annotations

import logging
import numpy as np
from typing import Tuple

from easel.errors import AdapterError, ConfigurationError, EaselError
from easel.diffusion.models import AutoencoderModel

logger = logging.getLogger(__name__)

VAE_SCALING_FACTOR = 0.18215


class LatentCodec:
    """Wraps an autoencoder with pixel ↔ latent conversion.

    Args:
        vae:               Object with ``encode(pixels)`` and
                           ``decode(latents)``.
        scaling_factor:    Latent scaling constant.
        latent_channels:   Channels of the latent space.
        downsample_factor: Pixel-to-latent spatial ratio.
    """

    def __init__(self, vae, scaling_factor: float = VAE_SCALING_FACTOR,
                 latent_channels: int = 4, downsample_factor: int = 8):
        if not isinstance(vae, AutoencoderModel):
            raise ConfigurationError(
                f"{type(vae).__name__} has no encode / decode methods")
        if scaling_factor <= 0:
            raise ConfigurationError(
                f"scaling_factor must be > 0, got {scaling_factor}")
        self.vae = vae
        self.scaling_factor = scaling_factor
        self.latent_channels = latent_channels
        self.downsample_factor = downsample_factor

    def latent_shape(self, batch_size: int, height: int,
                     width: int) -> Tuple[int, int, int, int]:
        f = self.downsample_factor
        if height % f or width % f:
            raise ConfigurationError(
                f"height and width must be multiples of {f}, "
                f"got {width}x{height}")
        return (batch_size, self.latent_channels, height // f, width // f)

    def encode(self, pixels: np.ndarray) -> np.ndarray:
        """(B, 3, H, W) in [-1, 1] → scaled (B, C, H/f, W/f) latents.

        Takes the posterior mode; no sampling happens here.
        """
        try:
            posterior = self.vae.encode(pixels)
        except EaselError:
            raise
        except Exception as exc:
            raise AdapterError('vae', detail=str(exc)) from exc

        if isinstance(posterior, np.ndarray):
            latents = posterior
        elif hasattr(posterior, 'mode'):
            latents = posterior.mode()
        else:
            latents = posterior.mean
        latents = np.asarray(latents, dtype=np.float32)
        return (latents * self.scaling_factor).astype(np.float32)

    def decode(self, latents: np.ndarray) -> np.ndarray:
        """Scaled latents → (B, 3, H, W) pixels, nominally in [-1, 1]."""
        z = (latents / self.scaling_factor).astype(np.float32)
        try:
            pixels = self.vae.decode(z)
        except EaselError:
            raise
        except Exception as exc:
            raise AdapterError('vae', detail=str(exc)) from exc
        return np.asarray(pixels, dtype=np.float32)


__all__ = ['LatentCodec', 'VAE_SCALING_FACTOR']
