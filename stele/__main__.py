"""Entry point for the Stele CLI.

This module serves as the main entry point when running the stele package directly.
"""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
