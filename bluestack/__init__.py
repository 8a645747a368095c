"""
Bluestack: Local Azure-style Cloud Service Emulator

Runs cloud storage service emulators locally behind a single edge port.
"""

__version__ = "0.1.0"

from .core.runtime import create_app

__all__ = ["create_app", "__version__"]
