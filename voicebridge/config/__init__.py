"""
Configuration module for the voice bridge.

This module provides centralized configuration for the entire application,
including constants, logging setup, environment-based settings and the assistant
persona sent to the model.

Key components:
- constants: Application-wide names for socket events, statuses and actions.
- logging_config: Console and rotating-file logging for the application logger.
- settings: Environment-driven settings (API keys, call-control credentials,
  registry timings, server host/port).
- prompts: System prompt, voice configuration, declared function tools and the
  emergency contact table.

Usage examples:
```python
from voicebridge.config.constants import LOGGER_NAME
from voicebridge.config.logging_config import configure_logging
from voicebridge.config import settings

logger = configure_logging()
logger.info(f"Transfers enabled: {bool(settings.EXOTEL_SID)}")
```
"""
