"""
Convenience entry point for running quorumcal as a module.

Usage: python -m quorumcal [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
