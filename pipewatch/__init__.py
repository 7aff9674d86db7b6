"""Pipewatch: a terminal dashboard for GitLab CI/CD pipelines."""

__version__ = "0.1.0"
