# Copyright (c) Syntropy Systems
"""coilsim server module: HTTP API over the simulation service."""

from .app import create_app

__all__ = ["create_app"]
