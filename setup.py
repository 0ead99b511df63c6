"""
Setup script for skillpath-core.

skillpath-core is the adaptive-learning core of a primary-school practice
platform. After every practice attempt it:

1. Estimates mastery from the recent outcome window
2. Schedules the next review with SM-2
3. Checks prerequisite blocking and repeated failures
4. Recommends what to work on next

The 'skillpath' command is an operator CLI over the same engine.
"""

from setuptools import find_packages, setup

setup(
    name="skillpath-core",
    version="0.1.0",
    description="Adaptive-learning core: mastery estimation, SM-2 scheduling and prerequisite-aware recommendations",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["skillpath", "skillpath.*"]),
    package_data={"skillpath.curriculum.data": ["*.json"]},
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "skillpath=skillpath.cli.main:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition sm2 mastery education",
)
