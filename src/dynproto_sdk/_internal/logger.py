import logging

logger = logging.getLogger('dynproto-sdk')
"""Package-wide logger. Applications are responsible for configuring handlers and levels."""
