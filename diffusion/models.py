# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Network contracts consumed by the diffusion adapters.

The pipeline never builds or loads networks itself.  A weight provider
hands over ready-to-call objects satisfying these protocols; anything
with the right call signature works, including mocks and oracles in
tests.  All tensors are NumPy arrays in NCHW layout.

- **Tokenizer**          — ``encode(text) -> list[int]`` without specials.
- **TextEncoderModel**   — ``(B, S) int64 -> (B, S, D) float32``.
- **UNetModel**          — ``(sample, timestep, embeds, **residuals)``
  returning a prediction shaped like the first ``C_latent`` channels of
  ``sample``.
- **ControlNetModel**    — ``-> (down_residuals, mid_residual)``.
- **AutoencoderModel**   — ``encode(pixels)`` / ``decode(latents)``.

Weights are read-only for the lifetime of the handles; the same objects
may be shared by concurrent runs.
"""
from __future__ import annotations

import numpy as np
from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable


@runtime_checkable
class Tokenizer(Protocol):
    bos_token_id: int
    eos_token_id: int

    def encode(self, text: str) -> List[int]:
        ...


@runtime_checkable
class TextEncoderModel(Protocol):
    def __call__(self, input_ids: np.ndarray) -> np.ndarray:
        ...


@runtime_checkable
class UNetModel(Protocol):
    def __call__(
        self,
        sample: np.ndarray,
        timestep: int,
        encoder_hidden_states: np.ndarray,
        down_block_additional_residuals: Optional[Sequence[np.ndarray]] = None,
        mid_block_additional_residual: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        ...


@runtime_checkable
class ControlNetModel(Protocol):
    def __call__(
        self,
        sample: np.ndarray,
        timestep: int,
        encoder_hidden_states: np.ndarray,
        controlnet_cond: np.ndarray,
        conditioning_scale: float = 1.0,
    ) -> Tuple[Sequence[np.ndarray], np.ndarray]:
        ...


@runtime_checkable
class AutoencoderModel(Protocol):
    def encode(self, pixels: np.ndarray):
        ...

    def decode(self, latents: np.ndarray) -> np.ndarray:
        ...


__all__ = [
    'Tokenizer',
    'TextEncoderModel',
    'UNetModel',
    'ControlNetModel',
    'AutoencoderModel',
]
