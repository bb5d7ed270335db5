"""Configuration package exports."""

from . import settings as config
from .settings import *  # noqa: F401,F403

__all__ = [name for name in dir(config) if not name.startswith("_")]
