from typing import Optional
import logging
import requests

from ..utils import safe_url

logger = logging.getLogger(__name__)

VOLUMES_URL = "https://www.googleapis.com/books/v1/volumes"

def _isbns(info: dict) -> dict:
    out = {}
    for ident in info.get("industryIdentifiers", []) or []:
        if ident.get("type") in ("ISBN_13", "ISBN_10"):
            out[ident["type"]] = (ident.get("identifier") or "").strip()
    return out

def by_isbn(isbn: str, api_key: Optional[str] = None) -> Optional[dict]:
    params = {"q": f"isbn:{isbn}", "maxResults": 1, "printType": "books"}
    if api_key:
        params["key"] = api_key
    try:
        r = requests.get(VOLUMES_URL, params=params, timeout=10)
        if not r.ok: return None
        items = r.json().get("items", [])
    except (requests.RequestException, ValueError) as e:
        logger.warning("Google Books lookup failed for %s: %s", isbn, e)
        return None
    if not items: return None
    info = items[0].get("volumeInfo", {})
    ids = _isbns(info)
    return {
        "isbn": ids.get("ISBN_13") or isbn,
        "title": info.get("title", ""),
        "author": ", ".join(info.get("authors", []) or []),
        "thumbnail": safe_url((info.get("imageLinks", {}) or {}).get("thumbnail")) or "",
        "page_count": info.get("pageCount") or 0,
        "published_date": info.get("publishedDate", ""),
        "publisher": info.get("publisher", ""),
        "categories": ", ".join(info.get("categories", []) or []),
        "language": info.get("language", ""),
        "description": info.get("description", ""),
        "source": "google",
    }
