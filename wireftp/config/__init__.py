"""Configuration module for wireftp.

This module handles client settings and credentials:
- SettingsManager: JSON-based settings persistence
- CredentialManager: Secure password storage via keyring
- Paths: Platform config/log directory discovery
- ClientSettings: Settings dataclass
"""
