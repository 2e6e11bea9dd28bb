"""
Setup configuration for relay-client.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read version from __version__.py
version = {}
with open("relay_client/__version__.py") as f:
    exec(f.read(), version)

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8")

# Read requirements
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
with open(requirements_file) as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith("#")]

# Development requirements
dev_requirements_file = Path(__file__).parent / "requirements-dev.txt"
dev_requirements = []
with open(dev_requirements_file) as f:
    dev_requirements = [line.strip() for line in f if line.strip() and not line.startswith("#")]

setup(
    name="relay-client",
    version=version["__version__"],
    author=version["__author__"],
    author_email="",
    description=version["__description__"],
    long_description=long_description,
    long_description_content_type="text/markdown",
    url=version["__url__"],
    packages=find_packages(exclude=["tests", "tests.*", "docs", "scripts"]),
    package_data={
        "relay_client": ["py.typed"],
    },
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "dev": dev_requirements,
        "test": dev_requirements,
        "all": requirements + dev_requirements,
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: AsyncIO",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Software Development :: Libraries",
        "Topic :: Communications",
        "Typing :: Typed",
    ],
    keywords=[
        "webhook",
        "relay",
        "smee",
        "sse",
        "server-sent-events",
        "eventsource",
        "aiohttp",
        "asyncio",
    ],
    entry_points={
        "console_scripts": [
            "relay-client=relay_client.main:main",
        ],
    },
    license="MIT",
    zip_safe=False,
)
