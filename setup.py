"""
Packaging for the QCC wallet core and its ``qcc-wallet`` command.

Usage:
    pip install .              # library + CLI
    pip install -e ".[dev]"    # editable, with test and lint tools
"""

import re
from pathlib import Path

from setuptools import find_packages, setup

HERE = Path(__file__).resolve().parent


def _version() -> str:
    text = (HERE / "qcc_core" / "__init__.py").read_text(encoding="utf-8")
    match = re.search(r'^__version__ = "([^"]+)"', text, re.M)
    if not match:
        raise RuntimeError("qcc_core.__version__ not found")
    return match.group(1)


readme = HERE / "README.md"

setup(
    name="qcc-wallet",
    version=_version(),
    description="QCC wallet core: recovery phrases, idHash addresses and signed transfers",
    long_description=readme.read_text(encoding="utf-8") if readme.exists() else "",
    long_description_content_type="text/markdown",
    license="MIT",
    python_requires=">=3.10",
    packages=find_packages(include=["qcc_core", "qcc_core.*"]),
    py_modules=["run_wallet"],
    install_requires=[
        "aiohttp>=3.9.0,<4",
        "mnemonic>=0.20,<1",
        "pycryptodome>=3.21.0,<4",
        "pynacl>=1.5.0,<2",
        "tomli>=2.0.0,<3;python_version<'3.11'",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "pytest-cov>=4.0",
        ],
        "dev": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "pytest-cov>=4.0",
            "mypy>=1.5",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "qcc-wallet=run_wallet:main_sync",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3 :: Only",
        "Topic :: Office/Business :: Financial",
        "Topic :: Security :: Cryptography",
    ],
)
