# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""
Easel — Latent-diffusion image generation on NumPy.

Text-to-image, img2img, inpainting and control-guided generation around
pretrained networks supplied by the caller.  Easel owns the inference
core only: prompt conditioning, the DDIM schedule, the guided denoising
loop, and latent-space compositing.

Usage::

    import easel
    from easel.diffusion import StableDiffusionPipeline, DDIMScheduler

    cfg = easel.GenerationConfig(prompt='a red cube', seed=42,
                                 num_inference_steps=20)
"""
from __future__ import annotations

import logging

__version__ = "0.1.0"
__author__ = "Pictofeed, LLC"

logging.getLogger(__name__).addHandler(logging.NullHandler())

# ── Errors ──
from .errors import (
    EaselError,
    ConfigurationError,
    ShapeMismatchError,
    NumericInstabilityError,
    AdapterError,
    GenerationCancelled,
)

# ── Configuration ──
from .config import GenerationConfig, SchedulerConfig

# ── Sub-packages ──
from . import diffusion

__all__ = [
    "__version__",
    "__author__",

    # Errors
    'EaselError', 'ConfigurationError', 'ShapeMismatchError',
    'NumericInstabilityError', 'AdapterError', 'GenerationCancelled',
    # Configuration
    'GenerationConfig', 'SchedulerConfig',
    # Sub-packages
    'diffusion',
]
