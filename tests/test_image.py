"""
Tests for easel.diffusion.image pixel and mask helpers.
"""
import numpy as np
import pytest

from easel.errors import ShapeMismatchError
from easel.diffusion import (
    downsample_mask,
    numbered_filename,
    postprocess_image,
    prepare_mask_and_masked_image,
    preprocess_control,
    preprocess_image,
    preprocess_mask,
)
from easel.diffusion.image import to_unit_range


def test_preprocess_image_range_and_layout():
    img = np.zeros((16, 24, 3), dtype=np.uint8)
    img[:, :, 1] = 255
    x = preprocess_image(img)
    assert x.shape == (1, 3, 16, 24)
    assert x.dtype == np.float32
    assert np.all(x[:, 0] == -1.0)
    assert np.all(x[:, 1] == 1.0)


def test_preprocess_image_requires_rgb():
    with pytest.raises(ShapeMismatchError):
        preprocess_image(np.zeros((16, 16), dtype=np.uint8))


def test_preprocess_control_keeps_unit_range():
    ctrl = np.full((8, 8, 3), 255, dtype=np.uint8)
    x = preprocess_control(ctrl)
    assert x.shape == (1, 3, 8, 8)
    assert np.all(x == 1.0)


def test_preprocess_mask_thresholds_channel_mean():
    mask = np.zeros((2, 2, 3), dtype=np.uint8)
    mask[0, 0] = 255
    mask[0, 1] = 128
    mask[1, 0] = 122
    mask[1, 1] = (255, 255, 0)
    m = preprocess_mask(mask)
    assert m.shape == (1, 1, 2, 2)
    assert m[0, 0].tolist() == [[1.0, 1.0], [0.0, 1.0]]


def test_preprocess_mask_repaints_grey_edges():
    # 122.5 on the 0..255 scale is the cut; mid greys below 127.5 repaint
    m = preprocess_mask(np.full((8, 8, 3), 125, dtype=np.uint8))
    assert np.all(m == 1.0)
    assert preprocess_mask(np.full((8, 8, 3), 123, dtype=np.uint8)).min() == 1.0
    assert preprocess_mask(np.full((8, 8, 3), 122, dtype=np.uint8)).max() == 0.0


def test_masked_image_blanks_repaint_region(image, mask_image):
    mask, masked = prepare_mask_and_masked_image(image, mask_image)
    assert mask.shape == (1, 1, 64, 64)
    assert np.all(masked[:, :, :32, :32] == 0.0)
    assert np.array_equal(masked[:, :, 32:], preprocess_image(image)[:, :, 32:])


def test_masked_image_size_mismatch(image):
    with pytest.raises(ShapeMismatchError):
        prepare_mask_and_masked_image(image, np.zeros((32, 32, 3), np.uint8))


def test_downsample_mask(mask_image):
    latent_mask = downsample_mask(preprocess_mask(mask_image), 8)
    assert latent_mask.shape == (1, 1, 8, 8)
    assert latent_mask[0, 0, :4, :4].all()
    assert latent_mask.sum() == 16
    with pytest.raises(ShapeMismatchError):
        downsample_mask(np.zeros((1, 1, 12, 16)), 8)


def test_postprocess_round_trip():
    img = np.arange(48, dtype=np.uint8).reshape(4, 4, 3)
    back = postprocess_image(to_unit_range(preprocess_image(img)))
    assert back.shape == (1, 4, 4, 3)
    assert np.array_equal(back[0], img)


def test_to_unit_range_clips():
    out = to_unit_range(np.array([-3.0, -1.0, 0.0, 1.0, 3.0]))
    assert out.tolist() == [0.0, 0.0, 0.5, 1.0, 1.0]


@pytest.mark.parametrize('path, index, n, expected', [
    ('sd_final.png', 0, 1, 'sd_final.png'),
    ('sd_final.png', 0, 3, 'sd_final.1.png'),
    ('sd_final.png', 2, 3, 'sd_final.3.png'),
    ('out', 1, 2, 'out.2.png'),
])
def test_numbered_filename(path, index, n, expected):
    assert numbered_filename(path, index, n) == expected
