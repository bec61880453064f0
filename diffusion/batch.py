# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Independent generations in parallel.

Each run owns its latent, generator and scheduler copy; the networks are
shared read-only handles.  Runs share only a cancel event, which the
first failure sets so the others stop at their next step boundary.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from easel.config import GenerationConfig
from easel.errors import GenerationCancelled

logger = logging.getLogger(__name__)


def sample_configs(config: GenerationConfig) -> List[GenerationConfig]:
    """Split ``num_samples`` into single-sample configs with seeds seed, seed+1, …"""
    return [config.with_seed(config.seed + i) for i in range(config.num_samples)]


def generate_many(pipeline, configs: Sequence[GenerationConfig],
                  max_workers: Optional[int] = None,
                  cancel_event: Optional[threading.Event] = None,
                  **inputs) -> list:
    """Run ``pipeline(config, **inputs)`` for every config concurrently.

    Returns the :class:`PipelineOutput` objects in input order.  The
    first exception cancels the remaining runs and is re-raised.
    """
    cancel = cancel_event if cancel_event is not None else threading.Event()
    configs = list(configs)
    for cfg in configs:
        cfg.validate()

    def _run(cfg):
        try:
            return pipeline(cfg, cancel_event=cancel, **inputs)
        except GenerationCancelled:
            raise
        except Exception:
            cancel.set()
            raise

    logger.info("generating %d run(s) on %s worker(s)", len(configs),
                max_workers or 'default')
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(_run, cfg) for cfg in configs]

    errors = [f.exception() for f in futures if f.exception() is not None]
    primary = [e for e in errors if not isinstance(e, GenerationCancelled)]
    if primary:
        raise primary[0]
    if errors:
        raise errors[0]
    return [f.result() for f in futures]


__all__ = ['sample_configs', 'generate_many']
