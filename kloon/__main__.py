"""Entry point for running kloon as a module.

This module allows kloon to be run as a Python module using the -m flag:
    python -m kloon

It serves as the main entry point for the kloon command-line interface.
"""

from . import cli

if __name__ == "__main__":
    cli._main()
