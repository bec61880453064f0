# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""easel.config — Generation and scheduler configuration.

Plain dataclasses holding the inputs the pipeline consumes.  Argument
parsing lives with the caller; these objects only carry and validate
values.

Usage::

    from easel.config import GenerationConfig, SchedulerConfig

    cfg = GenerationConfig(prompt='a red cube', seed=42,
                           num_inference_steps=20)
    cfg.validate()
    scheduler = SchedulerConfig().build()
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Union

from .errors import ConfigurationError


def _reject_unknown(cls, data: Mapping[str, Any]):
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown {cls.__name__} option(s): {', '.join(unknown)}")


# ═════════════════════════════════════════════════════════════════════
#  GenerationConfig
# ═════════════════════════════════════════════════════════════════════

@dataclass
class GenerationConfig:
    """Per-run generation inputs.

    Args:
        prompt:              Prompt text, or a list of prompts (one image
                             per prompt).
        negative_prompt:     Text for the unconditional branch.  The empty
                             string gives plain classifier-free guidance.
        height / width:      Output resolution in pixels (multiples of 8).
        num_inference_steps: Denoising steps before strength truncation.
        guidance_scale:      CFG weight; 1.0 disables the unconditional
                             branch.
        seed:                Seed of the run's noise generator.
        strength:            img2img / inpainting strength in (0, 1].
        num_samples:         Images generated with seeds ``seed``,
                             ``seed + 1``, …
        eta:                 DDIM stochasticity; 0.0 is deterministic.
    """

    prompt: Union[str, Sequence[str]] = (
        'A very realistic photo of a rusty robot walking on a sandy beach')
    negative_prompt: str = ''
    height: int = 512
    width: int = 512
    num_inference_steps: int = 30
    guidance_scale: float = 7.5
    seed: int = 32
    strength: float = 1.0
    num_samples: int = 1
    eta: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'GenerationConfig':
        _reject_unknown(cls, data)
        return cls(**data)

    @property
    def prompts(self) -> List[str]:
        if isinstance(self.prompt, str):
            return [self.prompt]
        return list(self.prompt)

    def with_seed(self, seed: int) -> 'GenerationConfig':
        return dataclasses.replace(self, seed=seed, num_samples=1)

    def validate(self) -> 'GenerationConfig':
        """Fail fast on malformed inputs; returns *self* for chaining."""
        prompts = self.prompts
        if not prompts:
            raise ConfigurationError("prompt list is empty")
        for p in prompts:
            if not isinstance(p, str):
                raise ConfigurationError(
                    f"prompts must be strings, got {type(p).__name__}")
        if not isinstance(self.negative_prompt, str):
            raise ConfigurationError("negative_prompt must be a string")
        if self.num_inference_steps < 1:
            raise ConfigurationError(
                f"num_inference_steps must be >= 1, got "
                f"{self.num_inference_steps}")
        if not self.guidance_scale >= 1.0:
            raise ConfigurationError(
                f"guidance_scale must be >= 1.0, got {self.guidance_scale}")
        if not 0.0 < self.strength <= 1.0:
            raise ConfigurationError(
                f"strength must be in (0, 1], got {self.strength}")
        if self.num_samples < 1:
            raise ConfigurationError(
                f"num_samples must be >= 1, got {self.num_samples}")
        if self.eta < 0.0:
            raise ConfigurationError(f"eta must be >= 0, got {self.eta}")
        if self.height <= 0 or self.width <= 0:
            raise ConfigurationError(
                f"invalid image size {self.width}x{self.height}")
        return self


# ═════════════════════════════════════════════════════════════════════
#  SchedulerConfig
# ═════════════════════════════════════════════════════════════════════

@dataclass
class SchedulerConfig:
    """Keyword arguments for :class:`DDIMScheduler`.

    Defaults match the Stable Diffusion v1 DDIM configuration.
    """

    num_train_timesteps: int = 1000
    beta_start: float = 0.00085
    beta_end: float = 0.012
    beta_schedule: str = 'scaled_linear'
    prediction_type: str = 'epsilon'
    steps_offset: int = 1
    set_alpha_to_one: bool = True
    clip_sample: bool = False
    eta: float = 0.0
    trained_betas: Optional[List[float]] = field(default=None)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'SchedulerConfig':
        _reject_unknown(cls, data)
        return cls(**data)

    def build(self):
        from .diffusion.schedulers import DDIMScheduler
        return DDIMScheduler(**dataclasses.asdict(self))


__all__ = ['GenerationConfig', 'SchedulerConfig']
