"""
Setup script for atp-mastery-engine.

The ATP mastery engine is the adaptive core of the ATP exam-prep platform.
It serves three roles:

1. Mastery tracking - bounded per-skill proficiency updates from graded attempts
2. Exam gating - multi-condition EXAM_READY certification per skill
3. Scheduling - budgeted daily plans and an SM-2 review queue

The 'atp-mastery' command is the operator entry point.
"""

from setuptools import find_packages, setup

setup(
    name="atp-mastery-engine",
    version="1.0.0",
    description="Mastery tracking, exam gating and adaptive scheduling for ATP exam preparation",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["atp_mastery", "atp_mastery.*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0,<0.27",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
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
            "atp-mastery=atp_mastery.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition mastery exam-prep scheduling",
)
