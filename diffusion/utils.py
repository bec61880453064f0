# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Diffusion utilities — noise helpers, guidance, compositing, and checks.

Pure numeric helpers shared by the scheduler, adapters, and loop:

- ``randn_tensor``              — seeded standard-normal noise.
- ``apply_guidance``            — combine uncond / cond predictions.
- ``classifier_free_guidance``  — run a denoiser with CFG in one call.
- ``blend_latents``             — mask compositing for inpainting.
- ``get_beta_schedule``         — build β schedules.
- ``check_finite`` / ``check_latent_shapes`` — loop preconditions.
"""
from __future__ import annotations

import math
import numpy as np
from typing import Optional, Tuple, Union, Sequence

from easel.errors import (
    ConfigurationError,
    NumericInstabilityError,
    ShapeMismatchError,
)


# ═════════════════════════════════════════════════════════════════════
#  Noise generation
# ═════════════════════════════════════════════════════════════════════

def randn_tensor(
    shape: Union[Tuple[int, ...], Sequence[int]],
    seed: Optional[int] = None,
    generator: Optional[np.random.Generator] = None,
    dtype: np.dtype = np.float32,
) -> np.ndarray:
    """Generate an array filled with standard normal noise.

    Args:
        shape:     Shape of the output array.
        seed:      Seed for a fresh generator (ignored if *generator*).
        generator: Generator to draw from; its state advances.
        dtype:     NumPy dtype (default ``float32``).

    Returns:
        An array with i.i.d. N(0, 1) entries.
    """
    rng = generator if generator is not None else np.random.default_rng(seed)
    return rng.standard_normal(tuple(shape)).astype(dtype)


# ═════════════════════════════════════════════════════════════════════
#  Classifier-Free Guidance
# ═════════════════════════════════════════════════════════════════════

def apply_guidance(noise_uncond: np.ndarray, noise_cond: np.ndarray,
                   guidance_scale: float) -> np.ndarray:
    """``uncond + guidance_scale * (cond - uncond)``."""
    if noise_uncond.shape != noise_cond.shape:
        raise ShapeMismatchError(
            f"guidance branches disagree: {noise_uncond.shape} vs "
            f"{noise_cond.shape}")
    guided = noise_uncond + guidance_scale * (noise_cond - noise_uncond)
    return guided.astype(noise_cond.dtype, copy=False)


def classifier_free_guidance(
    model,
    latents: np.ndarray,
    timestep: int,
    prompt_embeds: np.ndarray,
    negative_prompt_embeds: np.ndarray,
    guidance_scale: float = 7.5,
    batched: bool = True,
    **model_kwargs,
) -> np.ndarray:
    """Run a denoising model with classifier-free guidance.

    Either one forward pass over the concatenated ``[uncond; cond]``
    batch (``batched=True``) or two separate passes.  The two branches
    are independent, so both modes give the same result::

        guided = uncond + guidance_scale * (cond - uncond)

    Args:
        model:                  Callable ``(latents, t, embeds, **kw)``.
        latents:                (B, C, h, w) current noisy sample.
        timestep:               Current diffusion timestep.
        prompt_embeds:          (B, S, D) conditional text embeddings.
        negative_prompt_embeds: (B, S, D) unconditional text embeddings.
        guidance_scale:         CFG weight (1.0 = no guidance).
        model_kwargs:           Per-sample extras (``conditioning_latents``,
                                ``control``) are duplicated for the
                                batched call.

    Returns:
        (B, C, h, w) guided noise prediction.
    """
    if batched:
        B = latents.shape[0]
        doubled = {k: _double(v) for k, v in model_kwargs.items()}
        noise = model(
            np.concatenate([latents, latents], axis=0),
            timestep,
            np.concatenate([negative_prompt_embeds, prompt_embeds], axis=0),
            **doubled)
        noise_uncond, noise_cond = noise[:B], noise[B:]
    else:
        noise_uncond = model(latents, timestep, negative_prompt_embeds,
                             **model_kwargs)
        noise_cond = model(latents, timestep, prompt_embeds, **model_kwargs)

    return apply_guidance(noise_uncond, noise_cond, guidance_scale)


def _double(value):
    if isinstance(value, np.ndarray):
        return np.concatenate([value, value], axis=0)
    return value


# ═════════════════════════════════════════════════════════════════════
#  Compositing
# ═════════════════════════════════════════════════════════════════════

def blend_latents(latents: np.ndarray, reference: np.ndarray,
                  mask: np.ndarray) -> np.ndarray:
    """Keep *latents* where ``mask == 1`` and *reference* where ``mask == 0``.

    ``mask`` may be soft; it broadcasts over the channel axis.
    """
    out = mask * latents + (1.0 - mask) * reference
    return out.astype(latents.dtype, copy=False)


# ═════════════════════════════════════════════════════════════════════
#  Beta-schedule builder (public API)
# ═════════════════════════════════════════════════════════════════════

def _betas_for_alpha_bar(num_timesteps: int, max_beta: float) -> np.ndarray:
    steps = np.arange(num_timesteps + 1, dtype=np.float64) / num_timesteps
    alpha_bar = np.cos((steps + 0.008) / 1.008 * math.pi / 2) ** 2
    alpha_bar = alpha_bar / alpha_bar[0]
    betas = 1 - alpha_bar[1:] / alpha_bar[:-1]
    return np.clip(betas, 0.0, max_beta)


def get_beta_schedule(
    schedule: str,
    num_timesteps: int = 1000,
    beta_start: float = 0.00085,
    beta_end: float = 0.012,
) -> np.ndarray:
    """Construct a beta noise schedule.

    Args:
        schedule:       One of ``'linear'``, ``'scaled_linear'``,
                        ``'cosine'``, ``'squaredcos_cap_v2'``.
        num_timesteps:  Number of training diffusion timesteps.
        beta_start:     Starting beta value (linear / scaled_linear).
        beta_end:       Ending beta value.

    Returns:
        1-D float64 numpy array of length ``num_timesteps``.
    """
    if schedule == 'linear':
        return np.linspace(beta_start, beta_end, num_timesteps,
                           dtype=np.float64)
    elif schedule == 'scaled_linear':
        return np.linspace(beta_start ** 0.5, beta_end ** 0.5,
                           num_timesteps, dtype=np.float64) ** 2
    elif schedule == 'cosine':
        return np.maximum(_betas_for_alpha_bar(num_timesteps, 0.9999), 0.0001)
    elif schedule == 'squaredcos_cap_v2':
        return _betas_for_alpha_bar(num_timesteps, 0.999)
    else:
        raise ConfigurationError(f"Unknown beta schedule: {schedule!r}")


# ═════════════════════════════════════════════════════════════════════
#  Loop preconditions
# ═════════════════════════════════════════════════════════════════════

def check_finite(array: np.ndarray, what: str,
                 step_index: Optional[int] = None,
                 timestep: Optional[int] = None):
    """Raise :class:`NumericInstabilityError` if *array* has NaN / Inf."""
    if not np.all(np.isfinite(array)):
        bad = int(np.size(array) - np.count_nonzero(np.isfinite(array)))
        where = f" at step {step_index} (t={timestep})" \
            if step_index is not None else ''
        raise NumericInstabilityError(
            f"{bad} non-finite value(s) in {what}{where}",
            step_index=step_index, timestep=timestep)


def check_latent_shapes(latent_shape: Tuple[int, ...],
                        source_latent: Optional[np.ndarray] = None,
                        mask: Optional[np.ndarray] = None,
                        conditioning_latents: Optional[np.ndarray] = None):
    """Validate latent / source-latent / mask agreement before a run.

    The mask must be 4-D, match the latent's spatial size, and have
    either one channel (broadcast) or the latent channel count.  A batch
    of one broadcasts over the latent batch.
    """
    if len(latent_shape) != 4:
        raise ShapeMismatchError(
            f"latents must be (B, C, h, w), got {tuple(latent_shape)}")
    B, C, h, w = latent_shape
    if source_latent is not None and tuple(source_latent.shape) != tuple(latent_shape):
        raise ShapeMismatchError(
            f"source latent {tuple(source_latent.shape)} does not match "
            f"latents {tuple(latent_shape)}")
    if mask is not None:
        if source_latent is None:
            raise ShapeMismatchError(
                "a mask requires a source latent to preserve")
        if mask.ndim != 4 or mask.shape[2:] != (h, w) \
                or mask.shape[1] not in (1, C) or mask.shape[0] not in (1, B):
            raise ShapeMismatchError(
                f"mask {tuple(mask.shape)} is not broadcastable to latents "
                f"{tuple(latent_shape)}")
    if conditioning_latents is not None:
        if conditioning_latents.ndim != 4 \
                or conditioning_latents.shape[0] != B \
                or conditioning_latents.shape[2:] != (h, w):
            raise ShapeMismatchError(
                f"conditioning latents {tuple(conditioning_latents.shape)} "
                f"do not match latents {tuple(latent_shape)}")


# ═════════════════════════════════════════════════════════════════════
#  Exports
# ═════════════════════════════════════════════════════════════════════

__all__ = [
    'randn_tensor',
    'apply_guidance',
    'classifier_free_guidance',
    'blend_latents',
    'get_beta_schedule',
    'check_finite',
    'check_latent_shapes',
]
