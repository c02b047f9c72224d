"""Stock Advisor scoring and signal engine."""

import os


def get_engine_version() -> str:
    """Get version with fallback for dev mode."""
    if version := os.environ.get("ENGINE_VERSION"):
        return version
    from importlib.metadata import PackageNotFoundError, version as pkg_version

    try:
        return pkg_version("stock-advisor")
    except PackageNotFoundError:
        return "dev"


ENGINE_VERSION = get_engine_version()
# Bump when Recommendation output schema changes materially (new fields, renamed fields, structure changes)
# v1: Initial schema (single sorted signal list)
# v2: Split action/quality signals, explanation trace, legacy news/insider scores
# v3: Breakdown lists standalone News and Insider components
SCHEMA_VERSION = "3"
