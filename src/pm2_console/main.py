#!/usr/bin/env python3
"""
PM2 Console - Main Entry Point

This module provides the main entry point for the PM2 console, a web
dashboard for processes supervised by PM2.
"""

from pm2_console.server import main

if __name__ == "__main__":
    main()
