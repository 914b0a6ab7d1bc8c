"""
Setup script for mlx-gabor.

Pure Python package; FFT work runs on MLX (CPU wheel on Linux).
"""

from setuptools import setup

setup(
    name="mlx-gabor",
    version="0.1.0",
    description="Streaming constant-Q Gabor analysis and synthesis for MLX",
    python_requires=">=3.10",
    packages=["mlx_gabor"],
    install_requires=[
        "numpy>=1.24",
        "mlx>=0.26; sys_platform == 'darwin'",
        "mlx[cpu]>=0.26; sys_platform == 'linux'",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    zip_safe=False,
)
