from functools import lru_cache

from icogen.core.config import settings
from icogen.services.icon_store import IconStore


@lru_cache(maxsize=1)
def get_icon_store() -> IconStore:
    return IconStore(settings.output_dir, ttl_seconds=settings.icon_ttl_seconds)
