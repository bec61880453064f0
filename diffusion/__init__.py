# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""easel.diffusion — Scheduler, adapters, and the denoising loop.

Usage::

    from easel.diffusion import (
        DDIMScheduler,
        ClipTokenizer,
        TextConditioner,
        LatentCodec,
        Denoiser,
        StableDiffusionPipeline,
    )

    pipe = StableDiffusionPipeline(
        TextConditioner(ClipTokenizer.from_file(vocab), clip),
        LatentCodec(vae),
        Denoiser(unet),
        DDIMScheduler(),
    )
    out = pipe(GenerationConfig(prompt='a red cube', seed=42))
"""
from __future__ import annotations

# ── Scheduler ──
from .schedulers import (
    DDIMScheduler,
    ScheduleState,
)

# ── Adapters ──
from .text import (
    ClipTokenizer,
    TextConditioner,
    PromptEmbeddings,
)
from .codec import LatentCodec, VAE_SCALING_FACTOR
from .denoiser import Denoiser

# ── Pipelines ──
from .pipelines import (
    DiffusionLoop,
    PipelineOutput,
    StableDiffusionPipeline,
)
from .batch import generate_many, sample_configs

# ── Utilities ──
from .utils import (
    randn_tensor,
    apply_guidance,
    classifier_free_guidance,
    blend_latents,
    get_beta_schedule,
)
from .image import (
    preprocess_image,
    preprocess_mask,
    preprocess_control,
    prepare_mask_and_masked_image,
    downsample_mask,
    postprocess_image,
    numbered_filename,
)

__all__ = [
    # Scheduler
    'DDIMScheduler',
    'ScheduleState',
    # Adapters
    'ClipTokenizer',
    'TextConditioner',
    'PromptEmbeddings',
    'LatentCodec',
    'VAE_SCALING_FACTOR',
    'Denoiser',
    # Pipelines
    'DiffusionLoop',
    'PipelineOutput',
    'StableDiffusionPipeline',
    'generate_many',
    'sample_configs',
    # Utilities
    'randn_tensor',
    'apply_guidance',
    'classifier_free_guidance',
    'blend_latents',
    'get_beta_schedule',
    'preprocess_image',
    'preprocess_mask',
    'preprocess_control',
    'prepare_mask_and_masked_image',
    'downsample_mask',
    'postprocess_image',
    'numbered_filename',
]
