"""
Self-hosted stream/VOD archiver: process job registry and operator CLI.
"""

__version__ = "0.1.0"
