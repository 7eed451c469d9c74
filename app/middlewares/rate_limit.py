from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import get_settings

settings = get_settings()

# Write endpoints are limited per client address; reads are not.
limiter = Limiter(key_func=get_remote_address, enabled=settings.environment != "test")
