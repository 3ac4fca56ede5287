#!/usr/bin/env python3
"""
devsetup - run from a source checkout.

Usage:
    bootstrap.py install            # Directories, packages, plugins, dotfiles
    bootstrap.py update             # Upgrade packages, pull plugins, maintenance
    bootstrap.py remove dotfiles    # Unstow and delete the dotfiles checkout
"""

import os
import sys

# Add current directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from devsetup.cli import run


if __name__ == "__main__":
    run()
