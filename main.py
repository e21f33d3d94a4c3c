#!/usr/bin/env python3
"""
Shoe Image API — Rich CLI Entry Point.

Usage:
    python main.py                    # Show help
    python main.py serve              # Start the HTTP API
    python main.py fetch "Xero Shoes HFS II"
    python main.py check shoe.jpg --model "Xero Shoes HFS II"
    python main.py config             # Show configuration
    python main.py cache --clear
    python main.py clean
"""

from cli.app import app

if __name__ == "__main__":
    app()
