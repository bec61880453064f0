"""
Tests for easel.diffusion.batch: concurrent independent generations.
"""
import threading

import numpy as np
import pytest

from easel import (
    AdapterError,
    ConfigurationError,
    GenerationCancelled,
    GenerationConfig,
)
from easel.diffusion import generate_many, sample_configs

from conftest import ShrinkUNet, TargetUNet


def _config(**kwargs):
    base = dict(prompt='a red cube', height=64, width=64,
                num_inference_steps=20, guidance_scale=7.5, seed=42)
    base.update(kwargs)
    return GenerationConfig(**base)


def test_sample_configs_split_seeds():
    configs = sample_configs(_config(seed=5, num_samples=3))
    assert [c.seed for c in configs] == [5, 6, 7]
    assert all(c.num_samples == 1 for c in configs)


def test_parallel_runs_match_sequential(make_pipeline, scheduler):
    pipe = make_pipeline(ShrinkUNet(scheduler.alphas_cumprod))
    configs = sample_configs(_config(num_samples=4, num_inference_steps=10))
    results = generate_many(pipe, configs, max_workers=4)
    assert [r.seeds for r in results] == [[42], [43], [44], [45]]
    for cfg, result in zip(configs, results):
        assert np.array_equal(result.latents, pipe(cfg).latents)


def test_parallel_runs_with_shared_inputs(make_pipeline, image, mask_image):
    pipe = make_pipeline()
    configs = [_config(prompt=p, num_inference_steps=5)
               for p in ('a red cube', 'a blue sphere')]
    results = generate_many(pipe, configs, max_workers=2, image=image,
                            mask_image=mask_image)
    assert np.array_equal(results[0].latents[:, :, 4:],
                          results[1].latents[:, :, 4:])


def test_invalid_config_fails_before_running(make_pipeline, scheduler):
    unet = TargetUNet(scheduler.alphas_cumprod)
    with pytest.raises(ConfigurationError):
        generate_many(make_pipeline(unet),
                      [_config(), _config(num_inference_steps=0)])
    assert unet.calls == []


class _PromptFailingUNet(TargetUNet):
    """Fails for the prompt embedded as ``bad``; other runs wait for cancel."""

    def __init__(self, alphas_cumprod, bad_embeds, cancel):
        super().__init__(alphas_cumprod)
        self.bad = bad_embeds
        self.cancel = cancel

    def __call__(self, sample, timestep, encoder_hidden_states, **kwargs):
        if np.allclose(encoder_hidden_states[-1], self.bad):
            raise RuntimeError('device lost')
        self.cancel.wait(timeout=5)
        return super().__call__(sample, timestep, encoder_hidden_states,
                                **kwargs)


def test_failure_cancels_other_runs(make_pipeline, scheduler, conditioner):
    cancel = threading.Event()
    bad = conditioner.encode('zzz')[0]
    unet = _PromptFailingUNet(scheduler.alphas_cumprod, bad, cancel)
    configs = [_config(prompt='zzz'), _config(prompt='a red cube'),
               _config(prompt='a blue sphere')]
    with pytest.raises(AdapterError) as exc:
        generate_many(make_pipeline(unet), configs, max_workers=3,
                      cancel_event=cancel)
    assert exc.value.step_index == 0
    assert cancel.is_set()
    # healthy runs finish their current step, then stop
    assert len(unet.calls) <= 2


def test_external_cancel(make_pipeline):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(GenerationCancelled):
        generate_many(make_pipeline(), [_config(), _config(seed=1)],
                      cancel_event=cancel)
