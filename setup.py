"""
Setup Configuration for PeakFit
===============================

Dependency management, installation options and package metadata.

Key Features:
- Core numerical stack (numpy, scipy, cma) always installed
- Development tooling integration through the ``dev`` extra
"""

import sys
from pathlib import Path
from setuptools import setup, find_packages

# Get the directory containing setup.py
HERE = Path(__file__).parent.resolve()

# Read the long description from README
def read_readme():
    """Read README file for long description."""
    readme_path = HERE / "README.md"
    if readme_path.exists():
        return readme_path.read_text(encoding="utf-8")
    return "Levenberg-Marquardt and maximum likelihood peak fitting"

# Read version from peakfit/__init__.py
def read_version():
    """Read version from package __init__.py."""
    init_path = HERE / "peakfit" / "__init__.py"
    if init_path.exists():
        with open(init_path, 'r') as f:
            for line in f:
                if line.startswith('__version__'):
                    # Extract version string
                    version = line.split('=')[1].strip().strip('"\'')
                    return version
    return "1.0.0"  # Fallback version

# Define dependency groups
INSTALL_REQUIRES = [
    "numpy>=1.21.0",
    # COBYQA is available from 1.14
    "scipy>=1.14.0",
    "pyyaml>=5.4.0",
    "cma>=3.2.0",
]

EXTRAS_REQUIRE = {
    # Development dependencies
    "dev": [
        "pytest>=6.2.0",
        "pytest-cov>=2.12.0",
        "pytest-mock>=3.6.0",
        "black>=21.0.0",
        "ruff>=0.0.290",
        "mypy>=0.910",
        "pre-commit>=2.15.0",
    ],

    # Test dependencies only
    "test": [
        "pytest>=6.2.0",
        "pytest-cov>=2.12.0",
        "pytest-mock>=3.6.0",
    ],
}

# Combine extras for convenience
EXTRAS_REQUIRE["all"] = list(set(sum(EXTRAS_REQUIRE.values(), [])))

# Classifiers for PyPI
CLASSIFIERS = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Topic :: Scientific/Engineering :: Image Processing",
    "Topic :: Scientific/Engineering :: Mathematics",
    "License :: OSI Approved :: MIT License",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Operating System :: OS Independent",
]

# Keywords for PyPI search
KEYWORDS = [
    "levenberg-marquardt", "nonlinear least squares", "maximum likelihood",
    "poisson", "gaussian", "peak fitting", "localisation microscopy",
    "cma-es", "scientific computing"
]


def check_python_version():
    """Check if Python version is supported."""
    if sys.version_info < (3, 10):
        print("Python 3.10 or higher is required")
        print(f"   Current version: {sys.version}")
        sys.exit(1)


if __name__ == "__main__":
    # Check Python version before installation
    check_python_version()

    # Run setup
    setup(
        # Basic package information
        name="peakfit",
        version=read_version(),
        description="Levenberg-Marquardt and maximum likelihood peak fitting",
        long_description=read_readme(),
        long_description_content_type="text/markdown",

        # Author and contact information
        author="PeakFit Development Team",
        author_email="peakfit-dev@example.com",

        # Package discovery and inclusion
        packages=find_packages(exclude=["tests*", "docs*", "examples*"]),
        include_package_data=True,

        # Dependencies
        install_requires=INSTALL_REQUIRES,
        extras_require=EXTRAS_REQUIRE,
        python_requires=">=3.10",

        # Metadata for PyPI
        classifiers=CLASSIFIERS,
        keywords=KEYWORDS,
        license="MIT",

        zip_safe=False,
        platforms=["any"],
    )
