"""
Command-line interface for Web Harvest.
"""

from web_harvest.cli.main import app

__all__ = ["app"]
