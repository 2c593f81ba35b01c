#!/usr/bin/env python3
"""CLI entry point for the provider switchboard"""
import sys

from switchboard.cli import main


if __name__ == "__main__":
    sys.exit(main())
