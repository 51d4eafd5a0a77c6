"""
Entry point for running wikit as a module.

Usage:
    python -m wikit [command] [options]
"""

from wikit.cli import main

if __name__ == "__main__":
    main()
