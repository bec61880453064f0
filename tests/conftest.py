"""
Shared mock and oracle networks for the easel test-suite.

The networks are tiny, deterministic NumPy callables honouring the
contracts in ``easel.diffusion.models``:

- ``CharTokenizer`` / ``TableTextEncoder`` — prompt → embeddings.
- ``BlockVAE``      — 8× average-pool encoder, nearest-upsample decoder.
- ``TargetUNet``    — predicts the noise that leads exactly to a target
  x₀ derived from the prompt embeddings (an oracle toward that target).
- ``ShrinkUNet``    — posterior-mean denoiser for unit-Gaussian data.
"""
import numpy as np
import pytest

from easel.diffusion import (
    DDIMScheduler,
    Denoiser,
    LatentCodec,
    StableDiffusionPipeline,
    TextConditioner,
)

LATENT_CHANNELS = 4
VAE_NATIVE_SCALE = 5.0


class CharTokenizer:
    bos_token_id = 49406
    eos_token_id = 49407

    def encode(self, text):
        return [ord(c) % 1000 + 1 for c in text]


class TableTextEncoder:
    """Embeds ids through a fixed random table; counts calls."""

    def __init__(self, dim=8, seed=0):
        self.table = np.random.default_rng(seed).standard_normal(
            (49408, dim)).astype(np.float32)
        self.calls = 0

    def __call__(self, input_ids):
        self.calls += 1
        return self.table[input_ids]


class BlockVAE:
    """Average-pools 8×8 blocks into 3 colour channels plus their mean."""

    factor = 8

    def encode(self, pixels):
        B, C, H, W = pixels.shape
        f = self.factor
        pooled = pixels.reshape(B, C, H // f, f, W // f, f).mean(axis=(3, 5))
        gray = pooled.mean(axis=1, keepdims=True)
        return np.concatenate([pooled, gray], axis=1) * VAE_NATIVE_SCALE

    def decode(self, latents):
        rgb = latents[:, :3] / VAE_NATIVE_SCALE
        return rgb.repeat(self.factor, axis=2).repeat(self.factor, axis=3)


class _OracleUNet:
    """Base: predicts ε leading to ``self.x0(sample, embeds, ab)``."""

    def __init__(self, alphas_cumprod, prediction_type='epsilon'):
        self.alphas_cumprod = alphas_cumprod
        self.prediction_type = prediction_type
        self.calls = []

    def x0(self, sample, embeds, alpha_bar, residual):
        raise NotImplementedError

    def __call__(self, sample, timestep, encoder_hidden_states,
                 down_block_additional_residuals=None,
                 mid_block_additional_residual=None):
        self.calls.append((sample.shape, int(timestep)))
        x = sample[:, :LATENT_CHANNELS]
        ab = float(self.alphas_cumprod[int(timestep)])
        x0 = self.x0(x, encoder_hidden_states, ab,
                     mid_block_additional_residual)
        eps = (x - np.sqrt(ab) * x0) / np.sqrt(1.0 - ab)
        if self.prediction_type == 'v_prediction':
            return (np.sqrt(ab) * eps - np.sqrt(1.0 - ab) * x0).astype(np.float32)
        return eps.astype(np.float32)


class TargetUNet(_OracleUNet):
    """Target x₀ per channel from the first prompt tokens' embeddings."""

    in_channels = LATENT_CHANNELS

    def x0(self, x, embeds, alpha_bar, residual):
        target = embeds[:, 1:9, :LATENT_CHANNELS].mean(axis=1)
        target = np.broadcast_to(target[:, :, None, None], x.shape)
        if residual is not None:
            target = target + residual
        return target


class InpaintTargetUNet(TargetUNet):
    in_channels = 2 * LATENT_CHANNELS + 1


class ShrinkUNet(_OracleUNet):
    """x₀ ≈ √ᾱ · x_t, the posterior mean for unit-Gaussian data."""

    in_channels = LATENT_CHANNELS

    def x0(self, x, embeds, alpha_bar, residual):
        return np.sqrt(alpha_bar) * x


class MeanControlNet:
    """Residual equal to the control map's mean times the scale."""

    def __init__(self):
        self.calls = []
        self.samples = []

    def __call__(self, sample, timestep, encoder_hidden_states,
                 controlnet_cond, conditioning_scale=1.0):
        self.calls.append(controlnet_cond.shape)
        self.samples.append(sample.shape)
        B = sample.shape[0]
        mid = np.full((B, 1, 1, 1),
                      controlnet_cond.mean() * conditioning_scale,
                      dtype=np.float32)
        return [mid], mid


def blocky_image(seed=0, size=64):
    """uint8 HWC image built from constant 8×8 blocks."""
    rng = np.random.default_rng(seed)
    blocks = rng.integers(40, 216, size=(size // 8, size // 8, 3),
                          dtype=np.uint8)
    return blocks.repeat(8, axis=0).repeat(8, axis=1)


def quadrant_mask(size=64):
    """uint8 HWC mask with the top-left quadrant white (repaint)."""
    mask = np.zeros((size, size, 3), dtype=np.uint8)
    mask[: size // 2, : size // 2] = 255
    return mask


@pytest.fixture
def scheduler():
    return DDIMScheduler()


@pytest.fixture
def text_encoder():
    return TableTextEncoder()


@pytest.fixture
def conditioner(text_encoder):
    return TextConditioner(CharTokenizer(), text_encoder)


@pytest.fixture
def codec():
    return LatentCodec(BlockVAE())


@pytest.fixture
def target_unet(scheduler):
    return TargetUNet(scheduler.alphas_cumprod)


@pytest.fixture
def make_pipeline(conditioner, codec, scheduler):
    """Factory: ``make_pipeline(unet_cls=TargetUNet, controlnet=None, **kw)``."""

    def _make(unet=None, controlnet=None, **kwargs):
        unet = unet if unet is not None else TargetUNet(scheduler.alphas_cumprod)
        return StableDiffusionPipeline(
            conditioner, codec, Denoiser(unet, controlnet=controlnet),
            scheduler, progress_bar=False, **kwargs)

    return _make


@pytest.fixture
def image():
    return blocky_image()


@pytest.fixture
def mask_image():
    return quadrant_mask()
