"""
deno-bot tasks package

This package contains the scheduled tasks run by the handlers and the CLI.
"""

from . import fav_rt
