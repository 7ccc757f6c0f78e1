#!/usr/bin/env python3
"""
Angkor Compliance Access Control - Main Entry Point
===================================================

Layered permission evaluation for a multi-tenant labour compliance
platform: RBAC, ABAC, field-level and record-level checks.

Usage:
    python main.py --help            # Show available commands
    python main.py init              # Initialize database
    python main.py demo              # Load demo data
    python main.py users list        # List users
    python main.py test access ...   # Test access decisions
    python main.py test scenario     # Run stage walkthroughs
"""

import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from cli.main import app

if __name__ == "__main__":
    app()
