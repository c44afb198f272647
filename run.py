#!/usr/bin/env python3
"""Development runner"""
from pirouette.cli import main

if __name__ == '__main__':
    # Reads ./pirouette.toml unless PIROUETTE_CONFIG_FILE or --config says otherwise
    main()
