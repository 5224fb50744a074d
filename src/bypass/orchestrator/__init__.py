"""Batch orchestration for Shortcut bulk creation.

Provides:
- Settings loaded from the environment, `.env` and the user config file
- Structured logging
- The canonical resource model and format adapters
- The phase-ordered batch engine and its outcome stream
"""
