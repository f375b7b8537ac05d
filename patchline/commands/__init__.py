"""CLI command implementations for patchline.

This module contains all command-line interface implementations:
- launcher: Install, update, play, uninstall and diagnostics
- content: Add-on content search, install and management
"""
