"""Utility module for wireftp.

This module provides cross-cutting utilities:
- Logging: Configured logging with credential redaction
- Validators: Input validation for host, port, timeouts, paths
- Events: Thread-safe notification hub
"""
