# torchsht setuptools configuration
from setuptools import find_packages, setup

setup(
    name="torchsht",
    version="0.1.0",
    description="Spin spherical harmonic transforms for PyTorch",
    python_requires=">=3.9",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "torch>=2.0",
        "numpy>=1.22",
        "psutil>=5.8",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "torchsht-forward=torchsht.cli:forward_entry",
            "torchsht-inverse=torchsht.cli:inverse_entry",
        ],
    },
)
