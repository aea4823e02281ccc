"""
Setup script for quiz-elo-sync.

quiz-elo-sync reads quizzes and quiz submissions from Canvas LMS and
maintains dual ELO ratings for students and questions:

1. Incremental sync - per-course watermark, idempotent re-runs
2. Rating engine - adaptive K-factors for both sides of every attempt
3. Read side - leaderboards and practice recommendations (API + CLI)

The 'elosync' command is the CLI entry point; `python main.py` runs the API.
"""

from setuptools import find_packages, setup

setup(
    name="quiz-elo-sync",
    version="1.0.0",
    description="Incremental Canvas quiz sync with dual ELO ratings for students and questions",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config", "main"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy[asyncio]>=2.0.0",
        "asyncpg>=0.29.0",
        "aiosqlite>=0.19.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # API
        "fastapi>=0.104.0",
        "uvicorn>=0.24.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "elosync=elosync.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="canvas lms elo rating quiz sync",
)
