from __future__ import annotations

import re
from pathlib import Path

from setuptools import find_packages, setup


ROOT = Path(__file__).parent.resolve()


def read_version() -> str:
    """Return the package version declared in ``fbboost/__init__.py``."""
    text = (ROOT / "fbboost" / "__init__.py").read_text(encoding="utf-8")
    match = re.search(r'^__version__ = "([^"]+)"', text, re.MULTILINE)
    if match is None:
        raise RuntimeError("unable to find __version__ in fbboost/__init__.py")
    return match.group(1)


setup(
    name="fbboost",
    version=read_version(),
    description="Sparse one-hot leaf embeddings of boosted tree ensembles (GBDT+LR features).",
    packages=find_packages(include=["fbboost", "fbboost.*"]),
    python_requires=">=3.8",
    install_requires=["numpy", "scipy", "tqdm"],
    extras_require={
        "xgboost": ["xgboost"],
        "test": ["pytest", "xgboost"],
    },
)
