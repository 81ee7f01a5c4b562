"""Web Serial bridge package initialisation.

Lets code written against the browser Web Serial API run inside a sandbox
context while the bytes travel over a serial device owned by the host process.
"""

__version__ = "1.0.0"

import logging

logger = logging.getLogger(__name__)
