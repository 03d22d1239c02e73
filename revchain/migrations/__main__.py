"""Entry point for running migrations as a module.

Usage:
    python -m revchain.migrations --schema inventory upgrade
    python -m revchain.migrations --schema inventory status
"""

from .cli import main

if __name__ == "__main__":
    main()
