# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Diffusion pipelines — the denoising loop and end-to-end generation.

- **DiffusionLoop** — the orchestrator: initial latents (noise, noised
  source, or noised source under a mask), the scheduled denoising steps
  with classifier-free guidance, and per-step inpainting recompositing.
- **StableDiffusionPipeline** — wires text conditioning, the latent
  codec, the denoiser and the scheduler into text-to-image, img2img and
  inpainting generation.
"""
from __future__ import annotations

import copy
import logging
import threading
import numpy as np
from typing import Callable, List, Optional, Tuple
from tqdm.auto import tqdm

from easel.config import GenerationConfig
from easel.errors import (
    AdapterError,
    ConfigurationError,
    EaselError,
    GenerationCancelled,
    ShapeMismatchError,
)
from easel.diffusion.codec import LatentCodec
from easel.diffusion.denoiser import Denoiser
from easel.diffusion.schedulers import DDIMScheduler
from easel.diffusion.text import PromptEmbeddings, TextConditioner
from easel.diffusion.image import (
    downsample_mask,
    prepare_mask_and_masked_image,
    preprocess_control,
    preprocess_image,
    to_unit_range,
)
from easel.diffusion.utils import (
    blend_latents,
    check_finite,
    check_latent_shapes,
    classifier_free_guidance,
    randn_tensor,
)

logger = logging.getLogger(__name__)

StepCallback = Callable[[int, int, np.ndarray], None]


# ═════════════════════════════════════════════════════════════════════
#  DiffusionLoop
# ═════════════════════════════════════════════════════════════════════

class DiffusionLoop:
    """Runs one generation from conditioning to final latent.

    The networks behind *denoiser* are shared and read-only.  Everything
    mutable (latents, generator, schedule) belongs to a single ``run``
    call; the scheduler is deep-copied per run so concurrent runs never
    share schedule state.

    Args:
        denoiser:       Callable ``(latents, t, embeds, **kw) -> noise``,
                        usually a :class:`Denoiser`.
        scheduler:      A :class:`DDIMScheduler` template.
        batch_guidance: Issue the uncond / cond branches as one batched
                        call instead of two.
        progress_bar:   Show a tqdm bar over the steps.
    """

    def __init__(self, denoiser, scheduler: DDIMScheduler,
                 batch_guidance: bool = True, progress_bar: bool = True):
        self.denoiser = denoiser
        self.scheduler = scheduler
        self.batch_guidance = batch_guidance
        self.show_progress = progress_bar

    def progress_bar(self, iterable, desc: str = ''):
        return tqdm(iterable, desc=desc, disable=not self.show_progress)

    def run(
        self,
        prompt_embeds: np.ndarray,
        negative_embeds: Optional[np.ndarray] = None,
        guidance_scale: float = 7.5,
        n_steps: int = 50,
        seed: Optional[int] = None,
        source_latent: Optional[np.ndarray] = None,
        mask: Optional[np.ndarray] = None,
        strength: float = 1.0,
        control_signal: Optional[np.ndarray] = None,
        *,
        latent_shape: Optional[Tuple[int, ...]] = None,
        conditioning_latents: Optional[np.ndarray] = None,
        generator: Optional[np.random.Generator] = None,
        eta: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        callback: Optional[StepCallback] = None,
    ) -> np.ndarray:
        """Denoise to a final latent.

        Text-to-image needs ``latent_shape``; img2img passes
        ``source_latent`` and ``strength``; inpainting additionally passes
        a latent-resolution ``mask`` (1 = regenerate, 0 = preserve).

        All noise comes from one generator seeded with *seed*, drawn in a
        fixed order: the initial noise, then one draw per inpainting
        recomposite.

        Returns:
            (B, C, h, w) latent at the end of the schedule.
        """
        if isinstance(n_steps, bool) or not isinstance(n_steps, (int, np.integer)) \
                or n_steps < 1:
            raise ConfigurationError(f"n_steps must be a positive int, got {n_steps!r}")
        if not guidance_scale >= 1.0:
            raise ConfigurationError(
                f"guidance_scale must be >= 1.0, got {guidance_scale}")
        if not 0.0 < strength <= 1.0:
            raise ConfigurationError(
                f"strength must be in (0, 1], got {strength}")
        if strength < 1.0 and source_latent is None:
            raise ConfigurationError("strength < 1 requires a source latent")

        if source_latent is not None:
            source_latent = np.asarray(source_latent, dtype=np.float32)
            shape = source_latent.shape
        elif latent_shape is not None:
            shape = tuple(latent_shape)
        else:
            raise ConfigurationError(
                "latent_shape is required when no source latent is given")

        if mask is not None:
            mask = np.asarray(mask, dtype=np.float32)
        check_latent_shapes(shape, source_latent, mask, conditioning_latents)

        prompt_embeds = np.asarray(prompt_embeds, dtype=np.float32)
        if prompt_embeds.shape[0] != shape[0]:
            raise ShapeMismatchError(
                f"prompt batch {prompt_embeds.shape[0]} does not match "
                f"latent batch {shape[0]}")

        do_guidance = guidance_scale > 1.0 and negative_embeds is not None
        if do_guidance:
            embeds = PromptEmbeddings(
                cond=prompt_embeds,
                uncond=np.asarray(negative_embeds, dtype=np.float32))
        else:
            if guidance_scale > 1.0:
                logger.warning(
                    "guidance_scale=%.2f without negative embeddings; "
                    "classifier-free guidance disabled", guidance_scale)
            embeds = PromptEmbeddings(cond=prompt_embeds)

        scheduler = copy.deepcopy(self.scheduler)
        state = scheduler.schedule(n_steps, strength)
        rng = generator if generator is not None else np.random.default_rng(seed)

        noise = randn_tensor(shape, generator=rng)
        if source_latent is None:
            latents = noise * np.float32(scheduler.init_noise_sigma)
        else:
            latents = scheduler.add_noise(source_latent, noise,
                                          state.initial_timestep)

        mode = ('inpaint' if mask is not None
                else 'img2img' if source_latent is not None else 'txt2img')
        logger.info("%s: %d/%d steps, guidance %.2f, seed %s",
                    mode, len(state), n_steps, guidance_scale, seed)

        n = len(state)
        for i, t in enumerate(self.progress_bar(state.timesteps, desc=mode)):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("cancelled before step %d/%d", i, n)
                raise GenerationCancelled(i)

            t = int(t)
            model_input = scheduler.scale_model_input(latents, t)
            noise_pred = self._predict_noise(
                model_input, t, i, embeds, guidance_scale if do_guidance else 1.0,
                control_signal, conditioning_latents)
            check_finite(noise_pred, 'denoiser output', i, t)

            latents = scheduler.step(noise_pred, t, latents, eta=eta,
                                     generator=rng)
            check_finite(latents, 'latents', i, t)

            if mask is not None:
                # Preserved region must sit at the noise level of the next call.
                if i + 1 < n:
                    reference = scheduler.add_noise(
                        source_latent, randn_tensor(shape, generator=rng),
                        int(state.timesteps[i + 1]))
                else:
                    reference = source_latent
                latents = blend_latents(latents, reference, mask)

            logger.debug("step %d/%d t=%d std=%.4f", i + 1, n, t,
                         float(latents.std()))
            if callback is not None:
                callback(i, t, latents)

        logger.info("%s finished after %d steps", mode, n)
        return latents

    def _predict_noise(self, latents, t, step_index, embeds: PromptEmbeddings,
                       guidance_scale, control_signal, conditioning_latents):
        kwargs = {}
        if control_signal is not None:
            kwargs['control'] = control_signal
        if conditioning_latents is not None:
            kwargs['conditioning_latents'] = conditioning_latents
        try:
            if embeds.uncond is not None:
                return classifier_free_guidance(
                    self.denoiser, latents, t, embeds.cond, embeds.uncond,
                    guidance_scale, batched=self.batch_guidance, **kwargs)
            return self.denoiser(latents, t, embeds.cond, **kwargs)
        except EaselError:
            raise
        except Exception as exc:
            raise AdapterError('denoiser', step_index=step_index,
                               detail=str(exc)) from exc


# ═════════════════════════════════════════════════════════════════════
#  StableDiffusionPipeline
# ═════════════════════════════════════════════════════════════════════

class PipelineOutput:
    """Result of a pipeline call.

    ``images`` is (N, 3, H, W) float32 in [0, 1], ``latents`` the final
    latents, and ``seeds`` the seed used for each sample.
    """

    def __init__(self, images: np.ndarray, latents: np.ndarray,
                 seeds: List[int]):
        self.images = images
        self.latents = latents
        self.seeds = seeds

    def __repr__(self):
        return (f"PipelineOutput(images={tuple(self.images.shape)}, "
                f"seeds={self.seeds})")


class StableDiffusionPipeline:
    """Stable Diffusion latent-diffusion pipeline.

    1. Encode prompt → text embeddings (unconditional branch once).
    2. Encode the source image / mask when given.
    3. Denoise with :class:`DiffusionLoop`.
    4. Decode latents through the codec.

    Inpainting uses per-step recompositing with a standard denoiser, or
    mask + masked-image channels when the UNet takes
    ``2 * latent_channels + 1`` input channels.

    Args:
        text_conditioner: :class:`TextConditioner`.
        codec:            :class:`LatentCodec`.
        denoiser:         :class:`Denoiser`.
        scheduler:        :class:`DDIMScheduler` (defaults to SD v1 DDIM).
    """

    def __init__(
        self,
        text_conditioner: TextConditioner,
        codec: LatentCodec,
        denoiser: Denoiser,
        scheduler: Optional[DDIMScheduler] = None,
        batch_guidance: bool = True,
        progress_bar: bool = True,
    ):
        self.text_conditioner = text_conditioner
        self.codec = codec
        self.denoiser = denoiser
        self.scheduler = scheduler or DDIMScheduler()
        self.loop = DiffusionLoop(denoiser, self.scheduler,
                                  batch_guidance=batch_guidance,
                                  progress_bar=progress_bar)

    @property
    def is_inpainting_unet(self) -> bool:
        in_channels = getattr(self.denoiser, 'in_channels', None)
        return in_channels == 2 * self.codec.latent_channels + 1

    def encode_prompt(self, prompt, negative_prompt: str = '',
                      do_guidance: bool = True) -> PromptEmbeddings:
        return self.text_conditioner.encode_prompt(
            prompt, negative_prompt, do_guidance)

    def _image_pixels(self, image: np.ndarray, config: GenerationConfig,
                      batch_size: int) -> np.ndarray:
        pixels = preprocess_image(image)
        if pixels.shape[2:] != (config.height, config.width):
            raise ShapeMismatchError(
                f"image is {pixels.shape[3]}x{pixels.shape[2]}, expected "
                f"{config.width}x{config.height}")
        return _match_batch(pixels, batch_size)

    def _prepare_sources(self, config, batch_size, image, mask_image):
        """Return ``(source_latent, latent_mask, conditioning_latents)``."""
        if image is None:
            if mask_image is not None:
                raise ConfigurationError("mask_image requires an image")
            return None, None, None

        pixels = self._image_pixels(image, config, batch_size)
        if mask_image is None:
            return self.codec.encode(pixels), None, None

        mask, masked_pixels = prepare_mask_and_masked_image(image, mask_image)
        mask = _match_batch(mask, batch_size)
        masked_pixels = _match_batch(masked_pixels, batch_size)
        latent_mask = downsample_mask(mask, self.codec.downsample_factor)

        if self.is_inpainting_unet:
            masked_latents = self.codec.encode(masked_pixels)
            conditioning = np.concatenate([latent_mask, masked_latents], axis=1)
            source = self.codec.encode(pixels) if config.strength < 1.0 else None
            return source, None, conditioning

        return self.codec.encode(pixels), latent_mask, None

    def __call__(
        self,
        config: GenerationConfig,
        image: Optional[np.ndarray] = None,
        mask_image: Optional[np.ndarray] = None,
        control_image: Optional[np.ndarray] = None,
        cancel_event: Optional[threading.Event] = None,
        callback: Optional[StepCallback] = None,
    ) -> PipelineOutput:
        """Generate ``config.num_samples`` images per prompt.

        Pixel inputs are uint8 HWC arrays (or float NCHW in [0, 1]) at
        ``config.height`` × ``config.width``.  Sample *i* uses seed
        ``config.seed + i``.
        """
        config.validate()
        if config.strength < 1.0 and image is None:
            raise ConfigurationError("strength < 1 requires an input image")

        prompts = config.prompts
        batch_size = len(prompts)
        latent_shape = self.codec.latent_shape(batch_size, config.height,
                                               config.width)

        do_guidance = config.guidance_scale > 1.0
        if config.negative_prompt and not do_guidance:
            logger.warning("negative prompt ignored: guidance_scale is 1.0")
        embeds = self.encode_prompt(prompts, config.negative_prompt,
                                    do_guidance)

        source, latent_mask, conditioning = self._prepare_sources(
            config, batch_size, image, mask_image)
        control = (preprocess_control(control_image)
                   if control_image is not None else None)

        images, latents_out, seeds = [], [], []
        for idx in range(config.num_samples):
            seed = config.seed + idx
            logger.info("sample %d/%d (seed %d)", idx + 1,
                        config.num_samples, seed)
            latents = self.loop.run(
                embeds.cond, embeds.uncond,
                guidance_scale=config.guidance_scale,
                n_steps=config.num_inference_steps,
                seed=seed,
                source_latent=source,
                mask=latent_mask,
                strength=config.strength,
                control_signal=control,
                latent_shape=latent_shape,
                conditioning_latents=conditioning,
                eta=config.eta,
                cancel_event=cancel_event,
                callback=callback,
            )
            pixels = self.codec.decode(latents)
            check_finite(pixels, 'decoded image')
            images.append(to_unit_range(pixels))
            latents_out.append(latents)
            seeds.append(seed)

        return PipelineOutput(np.concatenate(images, axis=0),
                              np.concatenate(latents_out, axis=0), seeds)


def _match_batch(x: np.ndarray, batch_size: int) -> np.ndarray:
    if x.shape[0] == batch_size:
        return x
    if x.shape[0] != 1:
        raise ShapeMismatchError(
            f"input batch {x.shape[0]} does not match prompt batch "
            f"{batch_size}")
    return np.repeat(x, batch_size, axis=0)


# ═════════════════════════════════════════════════════════════════════
#  Exports
# ═════════════════════════════════════════════════════════════════════

__all__ = [
    'DiffusionLoop',
    'PipelineOutput',
    'StableDiffusionPipeline',
]
