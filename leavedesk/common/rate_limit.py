"""Rate limiting (slowapi).

One module-level Limiter, attached to the app in main.py and imported by
routers that need a tighter per-route limit.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Scheduled jobs run once a month or once a day; anything faster is a misfire
JOB_RATE_LIMIT = "6/minute"

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
)
