# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Denoiser adapter — the noise-prediction network call.

Builds the model input (latents plus any per-step conditioning channels),
runs the optional structural-conditioning network, and feeds its
residuals into the UNet so that control fusion happens inside the call
rather than after guidance.
"""
from __future__ import annotations

import numpy as np
from typing import Optional

from easel.errors import ConfigurationError, ShapeMismatchError
from easel.diffusion.models import ControlNetModel, UNetModel


class Denoiser:
    """Callable wrapper around a UNet and optional ControlNet.

    Args:
        unet:               ``UNetModel`` returning a prediction with the
                            latent's shape.
        controlnet:         Optional ``ControlNetModel``.
        conditioning_scale: Residual weight passed to the control network.
    """

    def __init__(self, unet, controlnet=None, conditioning_scale: float = 1.0):
        if not isinstance(unet, UNetModel):
            raise ConfigurationError("unet must be callable")
        if controlnet is not None and not isinstance(controlnet, ControlNetModel):
            raise ConfigurationError("controlnet must be callable")
        self.unet = unet
        self.controlnet = controlnet
        self.conditioning_scale = conditioning_scale

    @property
    def in_channels(self) -> Optional[int]:
        return getattr(self.unet, 'in_channels', None)

    def __call__(
        self,
        latents: np.ndarray,
        timestep: int,
        embeddings: np.ndarray,
        control: Optional[np.ndarray] = None,
        conditioning_latents: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        if embeddings.shape[0] != latents.shape[0]:
            raise ShapeMismatchError(
                f"embeddings batch {embeddings.shape[0]} does not match "
                f"latents batch {latents.shape[0]}")

        model_input = latents
        if conditioning_latents is not None:
            model_input = np.concatenate(
                [latents, conditioning_latents.astype(latents.dtype)], axis=1)

        unet_kwargs = {}
        if control is not None:
            if self.controlnet is None:
                raise ConfigurationError(
                    "a control signal was given but no controlnet is configured")
            control = _match_batch(control, latents.shape[0])
            # control network sees the bare latents, never the inpaint channels
            down_res, mid_res = self.controlnet(
                latents, timestep, embeddings,
                controlnet_cond=control,
                conditioning_scale=self.conditioning_scale)
            unet_kwargs['down_block_additional_residuals'] = down_res
            unet_kwargs['mid_block_additional_residual'] = mid_res

        noise_pred = np.asarray(
            self.unet(model_input, timestep, embeddings, **unet_kwargs))

        if noise_pred.shape != latents.shape:
            raise ShapeMismatchError(
                f"denoiser returned {noise_pred.shape}, expected "
                f"{latents.shape}")
        return noise_pred.astype(latents.dtype, copy=False)


def _match_batch(control: np.ndarray, batch_size: int) -> np.ndarray:
    n = control.shape[0]
    if n == batch_size:
        return control
    if batch_size % n:
        raise ShapeMismatchError(
            f"control batch {n} does not divide latents batch {batch_size}")
    return np.concatenate([control] * (batch_size // n), axis=0)


__all__ = ['Denoiser']
