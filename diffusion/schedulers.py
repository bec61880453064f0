# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Noise scheduler for latent diffusion inference.

- **DDIMScheduler** — Denoising Diffusion Implicit Models (Song et al. 2020),
  deterministic at ``eta = 0`` so a fixed seed reproduces latents exactly.
- **ScheduleState** — the executed timestep sequence of one run, with the
  ᾱ (alpha-bar) value of every step.

The scheduler maps a requested number of inference steps onto the
network's trained discrete grid by integer stride, truncates that grid
for img2img / inpainting ``strength``, and implements the closed-form
forward process (``add_noise``) used to seed partial-strength runs.
"""
from __future__ import annotations

import math
import logging
from dataclasses import dataclass
import numpy as np
from typing import Optional, Sequence, Union

from easel.errors import ConfigurationError
from easel.diffusion.utils import get_beta_schedule

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
#  Helpers
# ═════════════════════════════════════════════════════════════════════

def _broadcast_to_ndim(arr: np.ndarray, ndim: int) -> np.ndarray:
    """Reshape a 1-D array to broadcast against an ndim tensor: (B,) → (B,1,…,1)."""
    shape = [-1] + [1] * (ndim - 1)
    return arr.reshape(shape)


# ═════════════════════════════════════════════════════════════════════
#  ScheduleState
# ═════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class ScheduleState:
    """Timesteps executed by one run.

    Attributes:
        timesteps:           Strictly decreasing int64 timesteps, already
                             truncated by strength.
        num_inference_steps: Requested step count before truncation.
        step_ratio:          Stride on the trained grid.
        start_index:         Index of ``timesteps[0]`` in the full list.
        alphas_cumprod:      ᾱ at each executed timestep.
    """

    timesteps: np.ndarray
    num_inference_steps: int
    step_ratio: int
    start_index: int
    alphas_cumprod: np.ndarray

    def __len__(self) -> int:
        return len(self.timesteps)

    @property
    def sigmas(self) -> np.ndarray:
        return np.sqrt(1.0 - self.alphas_cumprod)

    @property
    def initial_timestep(self) -> int:
        return int(self.timesteps[0])


# ═════════════════════════════════════════════════════════════════════
#  DDIMScheduler
# ═════════════════════════════════════════════════════════════════════

class DDIMScheduler:
    """Denoising Diffusion Implicit Models (Song et al. 2020).

    Deterministic (eta=0) reverse sampling with far fewer inference steps
    than training steps.  ``eta > 0`` adds the stochastic DDIM term, which
    then needs an explicit generator per call.

    Args:
        num_train_timesteps: Training diffusion steps T.
        beta_start / beta_end: Beta range.
        beta_schedule:       Schedule type (see ``get_beta_schedule``).
        prediction_type:     ``'epsilon'``, ``'v_prediction'`` or
                             ``'sample'``.
        steps_offset:        Added to every inference timestep.
        set_alpha_to_one:    Forces ᾱ = 1 past the last step.
        clip_sample:         Clip predicted x₀ to [-1, 1].
        eta:                 Default stochasticity for ``step``.
        trained_betas:       Explicit betas, overriding the schedule.
        min_denominator:     Floor for divisions by ``1 - ᾱ`` and ``ᾱ``.
    """

    init_noise_sigma = 1.0

    def __init__(
        self,
        num_train_timesteps: int = 1000,
        beta_start: float = 0.00085,
        beta_end: float = 0.012,
        beta_schedule: str = 'scaled_linear',
        prediction_type: str = 'epsilon',
        steps_offset: int = 1,
        set_alpha_to_one: bool = True,
        clip_sample: bool = False,
        eta: float = 0.0,
        trained_betas: Optional[Sequence[float]] = None,
        min_denominator: float = 1e-8,
    ):
        if num_train_timesteps < 1:
            raise ConfigurationError(
                f"num_train_timesteps must be >= 1, got {num_train_timesteps}")
        if prediction_type not in ('epsilon', 'v_prediction', 'sample'):
            raise ConfigurationError(
                f"Unknown prediction type: {prediction_type!r}")
        if eta < 0:
            raise ConfigurationError(f"eta must be >= 0, got {eta}")

        self.num_train_timesteps = num_train_timesteps
        self.prediction_type = prediction_type
        self.steps_offset = steps_offset
        self.clip_sample = clip_sample
        self.eta = eta
        self.min_denominator = min_denominator

        if trained_betas is not None:
            betas = np.asarray(trained_betas, dtype=np.float64)
            if betas.shape != (num_train_timesteps,):
                raise ConfigurationError(
                    f"trained_betas must have {num_train_timesteps} entries")
        else:
            betas = get_beta_schedule(beta_schedule, num_train_timesteps,
                                      beta_start, beta_end)
        self.betas = betas
        self.alphas = 1.0 - betas
        self.alphas_cumprod = np.cumprod(self.alphas)
        self.final_alpha_cumprod = (1.0 if set_alpha_to_one
                                    else float(self.alphas_cumprod[0]))

        self.timesteps = np.arange(num_train_timesteps - 1, -1, -1).astype(np.int64)
        self.num_inference_steps: int | None = None
        self._step_ratio: int | None = None

    @classmethod
    def from_config(cls, config) -> 'DDIMScheduler':
        return config.build()

    # ---- schedule ----

    def set_timesteps(self, num_inference_steps: int) -> ScheduleState:
        """Select ``num_inference_steps`` evenly spaced trained timesteps."""
        if not 1 <= num_inference_steps <= self.num_train_timesteps:
            raise ConfigurationError(
                f"num_inference_steps must be in [1, "
                f"{self.num_train_timesteps}], got {num_inference_steps}")
        step_ratio = self.num_train_timesteps // num_inference_steps
        timesteps = (
            np.arange(0, num_inference_steps)[::-1] * step_ratio
            + self.steps_offset
        ).astype(np.int64)
        if timesteps[0] >= self.num_train_timesteps or timesteps[-1] < 0:
            raise ConfigurationError(
                f"steps_offset={self.steps_offset} pushes timesteps off the "
                f"trained grid of {self.num_train_timesteps}")
        self.num_inference_steps = num_inference_steps
        self._step_ratio = step_ratio
        self.timesteps = timesteps
        return self._state(0)

    @staticmethod
    def get_start_index(num_inference_steps: int, strength: float) -> int:
        """``floor(n * (1 - strength))``: first executed index for *strength*."""
        if not 0.0 < strength <= 1.0:
            raise ConfigurationError(
                f"strength must be in (0, 1], got {strength}")
        # 10 * (1 - 0.9) is 0.999…; round before flooring
        return int(math.floor(round(num_inference_steps * (1.0 - strength), 9)))

    def schedule(self, num_inference_steps: int,
                 strength: float = 1.0) -> ScheduleState:
        """Set timesteps, then keep only those a run at *strength* executes."""
        self.set_timesteps(num_inference_steps)
        start = self.get_start_index(num_inference_steps, strength)
        state = self._state(start)
        logger.debug("schedule: %d/%d steps from t=%d (strength=%.3f)",
                     len(state), num_inference_steps,
                     state.initial_timestep, strength)
        return state

    def _state(self, start_index: int) -> ScheduleState:
        timesteps = self.timesteps[start_index:].copy()
        return ScheduleState(
            timesteps=timesteps,
            num_inference_steps=self.num_inference_steps,
            step_ratio=self._step_ratio,
            start_index=start_index,
            alphas_cumprod=self.alphas_cumprod[timesteps],
        )

    # ---- noise levels ----

    def _check_timesteps(self, t: np.ndarray):
        if np.any(t < 0) or np.any(t >= self.num_train_timesteps):
            raise ConfigurationError(
                f"timestep out of range [0, {self.num_train_timesteps}): "
                f"{t.tolist()}")

    def alpha_bar(self, timestep: int) -> float:
        """ᾱ at *timestep*; negative timesteps map past the last step."""
        if timestep < 0:
            return self.final_alpha_cumprod
        self._check_timesteps(np.asarray([timestep]))
        return float(self.alphas_cumprod[timestep])

    def previous_timestep(self, timestep: int) -> int:
        if self._step_ratio is None:
            raise ConfigurationError("set_timesteps must be called before step")
        return int(timestep) - self._step_ratio

    def _coefficients(self, timesteps, ndim: int):
        t = np.asarray(timesteps).astype(np.int64).ravel()
        self._check_timesteps(t)
        ab = self.alphas_cumprod[t]
        s_a = np.sqrt(ab)
        s_1a = np.sqrt(1.0 - ab)
        if t.size > 1:
            return _broadcast_to_ndim(s_a, ndim), _broadcast_to_ndim(s_1a, ndim)
        return s_a[0], s_1a[0]

    def add_noise(self, original: np.ndarray, noise: np.ndarray,
                  timesteps: Union[int, np.ndarray]) -> np.ndarray:
        """Forward diffusion q(x_t | x_0) = √ᾱ·x₀ + √(1−ᾱ)·ε."""
        s_a, s_1a = self._coefficients(timesteps, original.ndim)
        noisy = s_a * original + s_1a * noise
        return noisy.astype(original.dtype, copy=False)

    def velocity(self, sample: np.ndarray, noise: np.ndarray,
                 timesteps: Union[int, np.ndarray]) -> np.ndarray:
        """v-prediction target √ᾱ·ε − √(1−ᾱ)·x₀."""
        s_a, s_1a = self._coefficients(timesteps, sample.ndim)
        return (s_a * noise - s_1a * sample).astype(sample.dtype, copy=False)

    def scale_model_input(self, sample: np.ndarray,
                          timestep: Optional[int] = None) -> np.ndarray:
        return sample

    # ---- reverse step ----

    def _convert_model_output(self, model_output: np.ndarray,
                              sample: np.ndarray, alpha_bar_t: float):
        """Return (predicted x₀, predicted ε) for the configured parameterisation."""
        beta_prod_t = max(1.0 - alpha_bar_t, self.min_denominator)
        sqrt_a = math.sqrt(max(alpha_bar_t, self.min_denominator))
        sqrt_b = math.sqrt(beta_prod_t)
        if self.prediction_type == 'epsilon':
            pred_eps = model_output
            pred_x0 = (sample - sqrt_b * model_output) / sqrt_a
        elif self.prediction_type == 'v_prediction':
            pred_x0 = sqrt_a * sample - sqrt_b * model_output
            pred_eps = sqrt_a * model_output + sqrt_b * sample
        else:
            pred_x0 = model_output
            pred_eps = (sample - sqrt_a * model_output) / sqrt_b
        return pred_x0, pred_eps

    def step(self, model_output: np.ndarray, timestep: int,
             sample: np.ndarray, eta: Optional[float] = None,
             generator: Optional[np.random.Generator] = None) -> np.ndarray:
        """DDIM reverse step from *timestep* to the previous inference timestep.

        Deterministic when eta=0.  With eta>0 the added noise is drawn from
        *generator*, which is required so that every step's noise is tied
        to the run's seed.
        """
        eta = self.eta if eta is None else eta
        t = int(timestep)
        prev_t = self.previous_timestep(t)
        alpha_bar_t = self.alpha_bar(t)
        alpha_bar_prev = self.alpha_bar(prev_t)

        pred_x0, pred_eps = self._convert_model_output(
            model_output, sample, alpha_bar_t)

        if self.clip_sample:
            pred_x0 = np.clip(pred_x0, -1.0, 1.0)

        beta_prod_t = max(1.0 - alpha_bar_t, self.min_denominator)
        variance = ((1.0 - alpha_bar_prev) / beta_prod_t
                    * (1.0 - alpha_bar_t / alpha_bar_prev))
        sigma = eta * math.sqrt(max(variance, 0.0))

        pred_dir = math.sqrt(max(1.0 - alpha_bar_prev - sigma ** 2, 0.0)) * pred_eps
        prev = math.sqrt(alpha_bar_prev) * pred_x0 + pred_dir

        if eta > 0:
            if generator is None:
                raise ConfigurationError(
                    "stochastic DDIM (eta > 0) requires a generator")
            noise = generator.standard_normal(sample.shape)
            prev = prev + sigma * noise

        return prev.astype(sample.dtype, copy=False)


__all__ = ['DDIMScheduler', 'ScheduleState']
