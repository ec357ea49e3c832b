from setuptools import setup, find_packages

setup(
    name="pymixmax",
    version="0.1.0",
    description="MIXMAX matrix random number generator with skip-ahead substreams",
    packages=find_packages(include=["pymixmax*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24.0",
        "jax>=0.4.0",
        "jaxlib>=0.4.0",
    ],
    extras_require={
        "tpu": ["jax[tpu]"],
        "dev": ["pytest>=7.0.0"],
    },
    entry_points={
        "console_scripts": [
            "pymixmax=pymixmax.main:main",
        ],
    },
)
