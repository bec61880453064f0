# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Text conditioning — CLIP tokenisation and prompt embedding.

- **ClipTokenizer**    — byte-level BPE over the CLIP
  ``bpe_simple_vocab_16e6.txt`` merges file.
- **TextConditioner**  — pads / truncates token ids to a fixed context
  length and runs the text encoder.
- **PromptEmbeddings** — conditional and unconditional embeddings of a
  run, computed once and reused by every denoising step.
"""
from __future__ import annotations

import gzip
import html
import logging
from dataclasses import dataclass
from functools import lru_cache
import numpy as np
import regex
from typing import Dict, List, Optional, Sequence, Tuple, Union

from easel.errors import (
    AdapterError,
    ConfigurationError,
    EaselError,
    ShapeMismatchError,
)
from easel.diffusion.models import TextEncoderModel, Tokenizer

logger = logging.getLogger(__name__)

START_OF_TEXT = '<|startoftext|>'
END_OF_TEXT = '<|endoftext|>'

# Number of merges in the released CLIP vocabulary (49408 ids in total).
_NUM_CLIP_MERGES = 49152 - 256 - 2

_PAT = regex.compile(
    r"""<\|startoftext\|>|<\|endoftext\|>|'s|'t|'re|'ve|'m|'ll|'d|[\p{L}]+|[\p{N}]|[^\s\p{L}\p{N}]+""",
    regex.IGNORECASE,
)


# ═════════════════════════════════════════════════════════════════════
#  Byte-level BPE
# ═════════════════════════════════════════════════════════════════════

@lru_cache()
def bytes_to_unicode() -> Dict[int, str]:
    """Map every byte to a printable unicode character.

    Printable latin-1 bytes map to themselves; the rest are shifted above
    U+0100 so that BPE never sees whitespace or control characters.
    """
    bs = (list(range(ord('!'), ord('~') + 1))
          + list(range(ord('¡'), ord('¬') + 1))
          + list(range(ord('®'), ord('ÿ') + 1)))
    cs = bs[:]
    n = 0
    for b in range(256):
        if b not in bs:
            bs.append(b)
            cs.append(256 + n)
            n += 1
    return dict(zip(bs, (chr(c) for c in cs)))


def _pairs(word: Tuple[str, ...]) -> set:
    return set(zip(word, word[1:]))


def _clean_text(text: str) -> str:
    text = html.unescape(html.unescape(text))
    return regex.sub(r'\s+', ' ', text).strip().lower()


class ClipTokenizer:
    """CLIP byte-level BPE tokenizer.

    Args:
        merges: Ordered BPE merge pairs, highest priority first.
    """

    def __init__(self, merges: Sequence[Tuple[str, str]]):
        self.byte_encoder = bytes_to_unicode()
        vocab = list(self.byte_encoder.values())
        vocab = vocab + [v + '</w>' for v in vocab]
        vocab.extend(''.join(m) for m in merges)
        vocab.extend([START_OF_TEXT, END_OF_TEXT])

        self.encoder = {tok: i for i, tok in enumerate(vocab)}
        self.decoder = {i: tok for tok, i in self.encoder.items()}
        self.byte_decoder = {c: b for b, c in self.byte_encoder.items()}
        self.bpe_ranks = {tuple(m): i for i, m in enumerate(merges)}
        self._cache = {START_OF_TEXT: START_OF_TEXT, END_OF_TEXT: END_OF_TEXT}

    @classmethod
    def from_file(cls, path: str) -> 'ClipTokenizer':
        """Load a ``bpe_simple_vocab_16e6.txt`` file (plain or ``.gz``)."""
        opener = gzip.open if str(path).endswith('.gz') else open
        with opener(path, 'rt', encoding='utf-8') as fh:
            lines = fh.read().split('\n')
        merges = [tuple(line.split()) for line in lines[1:1 + _NUM_CLIP_MERGES]
                  if line.strip()]
        for m in merges:
            if len(m) != 2:
                raise ConfigurationError(f"malformed BPE merge line: {m!r}")
        logger.debug("loaded %d BPE merges from %s", len(merges), path)
        return cls(merges)

    @property
    def vocab_size(self) -> int:
        return len(self.encoder)

    @property
    def bos_token_id(self) -> int:
        return self.encoder[START_OF_TEXT]

    @property
    def eos_token_id(self) -> int:
        return self.encoder[END_OF_TEXT]

    def bpe(self, token: str) -> List[str]:
        cached = self._cache.get(token)
        if cached is not None:
            return cached.split(' ')

        word = tuple(token[:-1]) + (token[-1] + '</w>',)
        pairs = _pairs(word)
        while pairs:
            bigram = min(pairs, key=lambda p: self.bpe_ranks.get(p, float('inf')))
            if bigram not in self.bpe_ranks:
                break
            first, second = bigram
            merged: List[str] = []
            i = 0
            while i < len(word):
                if i < len(word) - 1 and word[i] == first and word[i + 1] == second:
                    merged.append(first + second)
                    i += 2
                else:
                    merged.append(word[i])
                    i += 1
            word = tuple(merged)
            pairs = _pairs(word)

        self._cache[token] = ' '.join(word)
        return list(word)

    def encode(self, text: str) -> List[int]:
        """Token ids for *text*, without start / end markers."""
        ids: List[int] = []
        for token in _PAT.findall(_clean_text(text)):
            token = ''.join(self.byte_encoder[b] for b in token.encode('utf-8'))
            ids.extend(self.encoder[t] for t in self.bpe(token))
        return ids

    def decode(self, ids: Sequence[int]) -> str:
        text = ''.join(self.decoder[int(i)] for i in ids)
        raw = bytearray(self.byte_decoder[c] for c in text
                        if c in self.byte_decoder)
        return raw.decode('utf-8', errors='replace').replace('</w>', ' ').strip()

    def __call__(self, text: str) -> List[int]:
        return self.encode(text)


# ═════════════════════════════════════════════════════════════════════
#  Prompt conditioning
# ═════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class PromptEmbeddings:
    """Conditional / unconditional embeddings of one run.

    ``uncond`` is ``None`` when guidance is disabled.
    """

    cond: np.ndarray
    uncond: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.uncond is not None and self.uncond.shape != self.cond.shape:
            raise ShapeMismatchError(
                f"unconditional embeddings {self.uncond.shape} do not match "
                f"conditional {self.cond.shape}")

    @property
    def batch_size(self) -> int:
        return self.cond.shape[0]


class TextConditioner:
    """Tokenizer + text encoder with fixed-length context.

    Args:
        tokenizer:    Object with ``encode(text) -> list[int]`` plus
                      ``bos_token_id`` / ``eos_token_id``.
        text_encoder: Callable ``(B, S) int64 -> (B, S, D)``.
        max_length:   Context length, including start / end markers.
        pad_token_id: Padding id; defaults to the end-of-text id as in
                      Stable Diffusion v1.
    """

    def __init__(self, tokenizer, text_encoder, max_length: int = 77,
                 pad_token_id: Optional[int] = None):
        if max_length < 2:
            raise ConfigurationError(
                f"max_length must leave room for start/end tokens, "
                f"got {max_length}")
        if not isinstance(tokenizer, Tokenizer):
            raise ConfigurationError(
                f"{type(tokenizer).__name__} is not a tokenizer")
        if not isinstance(text_encoder, TextEncoderModel):
            raise ConfigurationError("text_encoder must be callable")
        self.tokenizer = tokenizer
        self.text_encoder = text_encoder
        self.max_length = max_length
        self.pad_token_id = (tokenizer.eos_token_id if pad_token_id is None
                             else pad_token_id)

    def _normalize(self, prompts: Union[str, Sequence[str]]) -> List[str]:
        if isinstance(prompts, str):
            prompts = [prompts]
        prompts = list(prompts)
        if not prompts:
            raise ConfigurationError("prompt list is empty")
        for p in prompts:
            if not isinstance(p, str):
                raise ConfigurationError(
                    f"prompts must be strings, got {type(p).__name__}")
        return prompts

    def tokenize(self, prompts: Union[str, Sequence[str]]) -> np.ndarray:
        """(B, max_length) int64 token ids, truncated and padded."""
        rows = []
        budget = self.max_length - 2
        for prompt in self._normalize(prompts):
            ids = list(self.tokenizer.encode(prompt))
            if len(ids) > budget:
                logger.warning(
                    "prompt truncated from %d to %d tokens", len(ids), budget)
                ids = ids[:budget]
            ids = [self.tokenizer.bos_token_id] + ids + [self.tokenizer.eos_token_id]
            ids += [self.pad_token_id] * (self.max_length - len(ids))
            rows.append(ids)
        return np.asarray(rows, dtype=np.int64)

    def encode(self, prompts: Union[str, Sequence[str]]) -> np.ndarray:
        """(B, max_length, D) float32 embeddings."""
        input_ids = self.tokenize(prompts)
        try:
            embeds = self.text_encoder(input_ids)
        except EaselError:
            raise
        except Exception as exc:
            raise AdapterError('text_encoder', detail=str(exc)) from exc
        embeds = np.asarray(embeds, dtype=np.float32)
        if embeds.ndim != 3 or embeds.shape[:2] != input_ids.shape:
            raise ShapeMismatchError(
                f"text encoder returned {embeds.shape} for ids "
                f"{input_ids.shape}")
        return embeds

    def encode_prompt(self, prompt: Union[str, Sequence[str]],
                      negative_prompt: str = '',
                      do_guidance: bool = True) -> PromptEmbeddings:
        """Embed the prompt batch and, with guidance, the negative prompt once."""
        cond = self.encode(prompt)
        if not do_guidance:
            return PromptEmbeddings(cond=cond)
        uncond = self.encode(negative_prompt)
        uncond = np.repeat(uncond, cond.shape[0], axis=0)
        return PromptEmbeddings(cond=cond, uncond=uncond)


__all__ = [
    'ClipTokenizer',
    'TextConditioner',
    'PromptEmbeddings',
    'bytes_to_unicode',
    'START_OF_TEXT',
    'END_OF_TEXT',
]
