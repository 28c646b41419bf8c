"""User-Agent rotation for outbound scrape requests."""

import random
from typing import List


# Desktop browsers on Windows and macOS
USER_AGENTS: List[str] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
]

# Accept-Language per price locale, so portals render the expected formats
ACCEPT_LANGUAGES = {
    "it_IT": "it-IT,it;q=0.9,en;q=0.8",
    "es_ES": "es-ES,es;q=0.9,en;q=0.8",
    "en_US": "en-US,en;q=0.9",
}


def get_random_user_agent() -> str:
    """Get a random user-agent string from the pool."""
    return random.choice(USER_AGENTS)


def browser_headers(locale: str) -> dict:
    """Request headers resembling a desktop browser for ``locale``."""
    return {
        "User-Agent": get_random_user_agent(),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": ACCEPT_LANGUAGES.get(locale, "en-US,en;q=0.9"),
    }
