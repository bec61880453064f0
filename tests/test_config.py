"""
Tests for easel.config.
"""
import pytest

from easel import ConfigurationError, GenerationConfig, SchedulerConfig
from easel.diffusion import DDIMScheduler


def test_defaults_validate():
    cfg = GenerationConfig().validate()
    assert cfg.prompts == [
        'A very realistic photo of a rusty robot walking on a sandy beach']
    assert cfg.num_inference_steps == 30
    assert cfg.guidance_scale == 7.5
    assert cfg.seed == 32


@pytest.mark.parametrize('kwargs', [
    {'prompt': []},
    {'prompt': ['ok', 7]},
    {'negative_prompt': None},
    {'num_inference_steps': 0},
    {'guidance_scale': 0.5},
    {'guidance_scale': float('nan')},
    {'strength': 0.0},
    {'strength': 1.2},
    {'num_samples': 0},
    {'eta': -1.0},
    {'height': 0},
])
def test_invalid_values(kwargs):
    with pytest.raises(ConfigurationError):
        GenerationConfig(**kwargs).validate()


def test_from_dict_rejects_unknown_keys():
    cfg = GenerationConfig.from_dict({'prompt': 'a red cube', 'seed': 42})
    assert cfg.seed == 42
    with pytest.raises(ConfigurationError, match='n_iter'):
        GenerationConfig.from_dict({'prompt': 'a red cube', 'n_iter': 2})


def test_with_seed_makes_single_sample():
    cfg = GenerationConfig(num_samples=4, seed=10).with_seed(12)
    assert cfg.seed == 12
    assert cfg.num_samples == 1


def test_scheduler_config_builds_ddim():
    sched = SchedulerConfig.from_dict({'prediction_type': 'v_prediction',
                                       'steps_offset': 0}).build()
    assert isinstance(sched, DDIMScheduler)
    assert sched.prediction_type == 'v_prediction'
    assert sched.steps_offset == 0
    assert DDIMScheduler.from_config(SchedulerConfig()).num_train_timesteps == 1000


def test_scheduler_config_unknown_key():
    with pytest.raises(ConfigurationError):
        SchedulerConfig.from_dict({'solver_order': 2})
