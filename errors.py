# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""easel.errors — Exception taxonomy for generation runs.

- **ConfigurationError**       — malformed or out-of-range inputs, raised
  before any network is called.
- **ShapeMismatchError**       — latent / mask / source-latent disagree.
- **NumericInstabilityError**  — non-finite values appeared mid-loop.
- **AdapterError**             — a wrapped network call failed.
- **GenerationCancelled**      — the run was aborted between steps.

A run is only recoverable by restarting it from scratch with the same
seed; none of these are retried internally.
"""
from __future__ import annotations

from typing import Optional


class EaselError(Exception):
    """Base class for every error raised by Easel."""


class ConfigurationError(EaselError, ValueError):
    """A required input is missing or outside its valid range."""


class ShapeMismatchError(EaselError, ValueError):
    """Tensors that must agree in shape do not."""


class NumericInstabilityError(EaselError, ArithmeticError):
    """A denoising step produced NaN or Inf values.

    The run is aborted and its partial state discarded.
    """

    def __init__(self, message: str, step_index: Optional[int] = None,
                 timestep: Optional[int] = None):
        super().__init__(message)
        self.step_index = step_index
        self.timestep = timestep


class AdapterError(EaselError, RuntimeError):
    """A wrapped network (text encoder, denoiser, VAE) raised.

    Args:
        component:  Which adapter failed, e.g. ``'denoiser'``.
        step_index: Index into the executed schedule at which the failure
                    happened, or ``None`` outside the denoising loop.
    """

    def __init__(self, component: str, step_index: Optional[int] = None,
                 detail: str = ''):
        where = f" at step {step_index}" if step_index is not None else ''
        msg = f"{component} call failed{where}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
        self.component = component
        self.step_index = step_index


class GenerationCancelled(EaselError):
    """The cancel event was set; raised before ``step_index`` ran."""

    def __init__(self, step_index: int):
        super().__init__(f"generation cancelled before step {step_index}")
        self.step_index = step_index


__all__ = [
    'EaselError',
    'ConfigurationError',
    'ShapeMismatchError',
    'NumericInstabilityError',
    'AdapterError',
    'GenerationCancelled',
]
