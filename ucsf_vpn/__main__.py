#!/usr/bin/env python3
"""
Entry point for ucsf-vpn.

This module provides the CLI entry point when run as a Python package
(`python -m ucsf_vpn`).
"""

import sys

from ucsf_vpn.cli import main

if __name__ == "__main__":
    sys.exit(main())
