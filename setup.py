import sys
from setuptools import setup

if sys.version_info < (3, 8):
    sys.exit("Sorry, Python < 3.8 is not supported")

setup(
    name="adaptive_biasing",
    packages=[
        "adaptive_biasing",
        "adaptive_biasing.colvars",
        "adaptive_biasing.sampling_tools",
        "adaptive_biasing.interface",
    ],
    version="1.0.0",
    license="MIT",
    description="Adaptive Biasing Force with multiple walkers on N-dimensional grids",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    keywords=[
        "computational chemistry",
        "molecular dynamics",
        "free energy",
        "adaptive biasing force",
    ],
    install_requires=[
        "torch>=1.10.2",
        "numpy>=1.19.5",
    ],
    extras_require={
        "mpi": ["mpi4py>=3.0"],
        "test": ["pytest"],
    },
    setup_requires=["pytest"],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.8",
    ],
    zip_safe=False,
)
