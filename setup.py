"""Setup script for the Lacona addon manager.

This script installs the ``lacona`` command and its dependencies.
"""

from __future__ import annotations

import setuptools

# Read the long description from README.md
with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

# Read version from __version__.py
version = {}
with open("lacona/__version__.py", "r", encoding="utf-8") as f:
    exec(f.read(), version)

# Dependencies
install_requires = [
    "pydantic>=2.0.0",
    "pyyaml>=6.0",
    "structlog>=22.1.0",
    "httpx>=0.24.0",
    "python-json-logger>=2.0.4",
]

# Development dependencies
dev_requires = [
    "pytest>=7.0.0",
    "pytest-cov>=4.0.0",
    "black>=23.1.0",
    "isort>=5.12.0",
    "mypy>=1.0.0",
    "types-pyyaml",
]

setuptools.setup(
    name="lacona-cli",
    version=version.get("__version__", "0.1.0"),
    author="Lacona Team",
    description="Install, link and manage addons for the Lacona host application",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Environment :: Console",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "License :: OSI Approved :: MIT License",
        "Operating System :: MacOS",
    ],
    python_requires=">=3.11",
    install_requires=install_requires,
    extras_require={
        "dev": dev_requires,
    },
    entry_points={
        "console_scripts": [
            "lacona=lacona.main:main",
        ],
    },
)
