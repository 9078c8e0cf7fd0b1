from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

# keyed on remote address only, kept in memory
limiter = Limiter(key_func=get_remote_address)
