from typing import Optional
import logging
import requests

logger = logging.getLogger(__name__)

BOOKS_URL = "https://openlibrary.org/api/books"

def by_isbn(isbn: str) -> Optional[dict]:
    try:
        r = requests.get(BOOKS_URL, params={"bibkeys": f"ISBN:{isbn}", "format": "json", "jscmd": "data"}, timeout=10)
        if not r.ok: return None
        data = r.json().get(f"ISBN:{isbn}")
    except (requests.RequestException, ValueError) as e:
        logger.warning("Open Library lookup failed for %s: %s", isbn, e)
        return None
    if not data: return None
    def names(key: str) -> str:
        return ", ".join(x.get("name", "") for x in data.get(key, []) or [] if x.get("name"))
    cover = data.get("cover", {}) or {}
    return {
        "isbn": isbn,
        "title": data.get("title", ""),
        "author": names("authors"),
        "thumbnail": cover.get("medium") or cover.get("small") or "",
        "page_count": data.get("number_of_pages") or 0,
        "published_date": data.get("publish_date", ""),
        "publisher": names("publishers"),
        "categories": ", ".join(s.get("name", "") for s in (data.get("subjects", []) or [])[:5]),
        "language": "",
        "description": "",
        "source": "openlibrary",
    }
