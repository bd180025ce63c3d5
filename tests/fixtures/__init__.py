"""
Shared test fixtures and utilities for compose-apps-exporter tests.

This package provides:
- runtime: a fake runtime querier, compose file writers and canned
  `docker compose ps` output
"""

from tests.fixtures import runtime

__all__ = ["runtime"]
