"""
Shared utilities: logging, errors and configuration.
"""
