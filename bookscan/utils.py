import re
from typing import Optional

# Hyphens and spaces may appear between digits in printed ISBNs.
_ISBN_RE = re.compile(r"(?<![0-9])(?:97[89][-\s]?)?(?:[0-9][-\s]?){9}[0-9Xx](?![0-9])")

def clean_isbn(s: str) -> str:
    return re.sub(r"[^0-9X]", "", (s or "").upper())

def validate_isbn13(isbn13: str) -> bool:
    if not (isbn13.isdigit() and len(isbn13) == 13):
        return False
    total = sum((int(d) * (1 if i % 2 == 0 else 3)) for i, d in enumerate(isbn13[:12]))
    check = (10 - (total % 10)) % 10
    return check == int(isbn13[-1])

def validate_isbn10(isbn10: str) -> bool:
    if len(isbn10) != 10 or not isbn10[:9].isdigit():
        return False
    last = isbn10[-1]
    if not (last.isdigit() or last == "X"):
        return False
    values = [int(ch) for ch in isbn10[:9]] + [10 if last == "X" else int(last)]
    total = sum(weight * v for weight, v in zip(range(10, 0, -1), values))
    return total % 11 == 0

def validate_isbn(text: str) -> bool:
    """
    True when the digit-only form of `text` is a well-formed ISBN-10 or ISBN-13.
    """
    s = clean_isbn(text)
    if len(s) == 13:
        return validate_isbn13(s)
    if len(s) == 10:
        return validate_isbn10(s)
    return False

def isbn13_to_isbn10(isbn13: str) -> Optional[str]:
    if not (isbn13.startswith("978") and validate_isbn13(isbn13)):
        return None
    core = isbn13[3:12]
    total = sum((i + 1) * int(d) for i, d in enumerate(core))
    remainder = total % 11
    check = "X" if remainder == 10 else str(remainder)
    return core + check

def isbn10_to_isbn13(isbn10: str) -> Optional[str]:
    if not validate_isbn10(isbn10):
        return None
    core = "978" + isbn10[:9]
    total = sum((int(d) * (1 if i % 2 == 0 else 3)) for i, d in enumerate(core))
    return core + str((10 - (total % 10)) % 10)

def extract_isbn_from_text(s: str) -> Optional[str]:
    """
    First valid ISBN found in free text (OCR output, decoded payloads),
    returned in its cleaned form. 978/979 ISBN-13s win over anything else.
    """
    if not s:
        return None
    found = [clean_isbn(m.group(0)) for m in _ISBN_RE.finditer(s)]
    found = sorted(found, key=lambda x: (not (len(x) == 13 and x.startswith(("978", "979"))),))
    for c in found:
        if validate_isbn(c):
            return c
    return None

def extract_isbn13_from_text(s: str) -> Optional[str]:
    found = extract_isbn_from_text(s)
    if found and len(found) == 10:
        return isbn10_to_isbn13(found)
    return found

def safe_url(u: str | None) -> Optional[str]:
    if isinstance(u, str):
        u = u.strip()
        if u.lower().startswith(("http://", "https://")) and len(u) > 7:
            return u.replace("http://", "https://")
    return None
