"""
Syncwire CLI entry point.

Usage:
    python -m syncwire [OPTIONS] COMMAND [ARGS]...
"""

from syncwire.cli import main

if __name__ == "__main__":
    main()
