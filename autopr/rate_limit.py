"""Shared slowapi limiter. Disabled with RATE_LIMIT_ENABLED=false."""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

GENERATE_LIMIT = os.getenv("RATE_LIMIT_GENERATE", "10/minute")
BATCH_LIMIT = os.getenv("RATE_LIMIT_BATCH", "5/minute")
ANALYZE_LIMIT = os.getenv("RATE_LIMIT_ANALYZE", "10/minute")

limiter = Limiter(key_func=get_remote_address)
