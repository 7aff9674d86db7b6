"""Setup script for pipewatch package."""

from setuptools import find_packages, setup

setup(
    name="pipewatch",
    version="0.1.0",
    description="Terminal dashboard for GitLab CI/CD pipelines",
    author="Pipewatch Contributors",
    author_email="noreply@pipewatch.dev",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml>=6.0",
        "requests>=2.25.0",
        "rich>=13.0.0",
        "textual>=0.47.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "pipewatch=pipewatch.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console :: Curses",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
