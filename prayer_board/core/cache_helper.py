import os
import json
from datetime import date, datetime
import logging
from typing import Any, Callable, Optional
import hashlib

logger = logging.getLogger(__name__)

class CacheHelper:
    DEFAULT_CACHE_DIR = "~/.prayer_board/cache"

    def __init__(self, cache_dir: Optional[str] = None, namespace: str = "",
                 today: Callable[[], date] = date.today):
        """Initialize cache helper with specific cache directory
        Args:
            cache_dir: Base cache directory from config, if None uses DEFAULT_CACHE_DIR
            namespace: Subdirectory for one kind of cached response
            today: Source of the current date; entries from other days are ignored
        """
        base_dir = os.path.expanduser(cache_dir or self.DEFAULT_CACHE_DIR)
        self.cache_dir = os.path.join(base_dir, namespace) if namespace else base_dir
        self.today = today
        os.makedirs(self.cache_dir, exist_ok=True)

    def _get_cache_file(self, key: str) -> str:
        """Generate cache filename from a request key"""
        key_hash = hashlib.md5(key.encode()).hexdigest()
        return os.path.join(self.cache_dir, f"{key_hash}.json")

    def get_cached_content(self, key: str) -> Optional[Any]:
        """Get cached content if it exists and is from today"""
        try:
            cache_file = self._get_cache_file(key)
            if not os.path.exists(cache_file):
                return None

            with open(cache_file, 'r') as f:
                cached = json.load(f)

            cache_date = datetime.strptime(cached['date'], '%Y-%m-%d').date()
            if cache_date == self.today():
                return cached['content']

            return None

        except Exception as e:
            logger.error(f"Error reading cache: {e}")
            return None

    def save_to_cache(self, key: str, content: Any) -> None:
        """Save JSON-serializable content to cache with today's date"""
        try:
            cache_data = {
                'date': self.today().strftime('%Y-%m-%d'),
                'content': content
            }

            cache_file = self._get_cache_file(key)
            with open(cache_file, 'w') as f:
                json.dump(cache_data, f)

        except Exception as e:
            logger.error(f"Error saving to cache: {e}")
