"""
wikit - command-line client for Wiki.js

This package holds the credential side of wikit: an encrypted store of
Wiki.js instances (site URL + API key) that replaces the plaintext
environment-variable configuration, and the logic that resolves which
credential a command should use.

Key Features:
    - Multiple instances in one store, selected by id
    - API keys encrypted at rest with AES-256-GCM
    - Transparent fallback to legacy WIKIJS_*/TLWIKI_* variables
    - Migration to and from .env format
"""

__version__ = "0.1.0"

from wikit.config.settings import Settings, load_config

__all__ = [
    "__version__",
    "Settings",
    "load_config",
]
