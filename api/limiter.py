"""
api/limiter.py -- Process-wide slowapi limiter for the Sociosim API.

Only POST /api/v1/auth/login carries a limit (LOGIN_RATE_LIMIT, per client
IP). Every sign-in attempt occupies the single auth lane for up to the
sign-in deadline, so unthrottled guessing from one address would also stall
session reads for everyone else.

Counters live in process memory; tests call limiter.reset() between cases.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
