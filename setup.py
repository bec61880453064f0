# ╔══════════════════════════════════════════════════════════════════════╗
# ║  Easel — Latent Diffusion Inference                                  ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""
Easel build configuration.

Pure Python on top of NumPy; no extensions are compiled.  The repository
root is the ``easel`` package directory.

Build
-----
    pip install -e .                          # editable install
    pip install -e '.[dev]'                   # with test dependencies
    python setup.py bdist_wheel               # wheel
"""
import os

from setuptools import setup

# ── Package metadata ──
_readme = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'README.md')
try:
    with open(_readme, 'r', encoding='utf-8') as fh:
        long_description = fh.read()
except FileNotFoundError:
    long_description = ''

setup(
    name='easel',
    version='0.1.0',
    author='Pictofeed, LLC',
    author_email='engineering@pictofeed.io',
    description=(
        'Latent-diffusion inference core — DDIM scheduling, guided '
        'denoising, img2img and inpainting on NumPy'
    ),
    long_description=long_description,
    long_description_content_type='text/markdown',
    url='https://github.com/pictofeed/easel',
    license='Proprietary',

    package_dir={
        'easel': '.',
        'easel.diffusion': 'diffusion',
    },
    packages=[
        'easel',
        'easel.diffusion',
    ],

    python_requires='>=3.10',
    install_requires=[
        'numpy>=1.24',
        'regex>=2023.0',
        'tqdm>=4.60',
    ],
    extras_require={
        'dev': [
            'pytest>=7.0',
        ],
        'test': [
            'pytest>=7.0',
        ],
    },

    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Intended Audience :: Science/Research',
        'License :: Other/Proprietary License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Scientific/Engineering :: Artificial Intelligence',
    ],
    zip_safe=False,
)
