"""
Common building blocks shared by the artifact, inference and policy packages.

This package contains reusable, domain-agnostic code:

- configuration loading (environment variables)
- model settings and their persistence
- the error taxonomy
- retry helpers
- logging configuration
"""
