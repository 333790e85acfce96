"""
Version information for BMO Chatbot.

This file is the single source of truth for the application version.
"""

# Version components
VERSION_MAJOR = 0
VERSION_MINOR = 3
VERSION_PATCH = 1

# Full version string
__version__ = f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}"
