"""Setup configuration for Batch QA Tracker."""

from setuptools import setup, find_namespace_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="batch-qa-tracker",
    version="0.1.0",
    description=(
        "Batch QA progression, lot traceability and release eligibility "
        "for cured meat production"
    ),
    long_description=long_description,
    long_description_content_type="text/markdown",
    # Modules import each other as src.<package>, so src itself is the top package
    packages=find_namespace_packages(include=["src", "src.*"], exclude=["src.tests", "src.tests.*"]),
    classifiers=[
        "Development Status :: 2 - Pre-Alpha",
        "Intended Audience :: Manufacturing",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0"],
        "postgres": ["psycopg2-binary>=2.9"],
    },
    entry_points={
        "console_scripts": [
            "batch-qa=src.main:main",
        ],
    },
)
