"""
Entry point for running dohrank as a module.

Usage: python -m dohrank [OPTIONS] COMMAND [ARGS]...
"""

from .cli import main

if __name__ == "__main__":
    main()
