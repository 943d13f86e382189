# app.py
# Book Scanner — register books by scanning their barcode.
# The browser captures a snapshot (or you upload a photo); the server runs it
# through the recognition backends and looks the ISBN up on Google Books /
# Open Library.
# Requires: streamlit, requests, pillow, numpy, zxing-cpp, opencv-python,
#           google-cloud-vision, google-auth
# Optional settings live in .streamlit/secrets.toml (see bookscan/config.py).

import logging
from dataclasses import replace

import streamlit as st

from bookscan.arbitrator import Arbitrator
from bookscan.config import ConfigError, ScannerConfig, load_config
from bookscan.diagnostics import run_diagnostics
from bookscan.camera import SnapshotDevices
from bookscan.models import Book, SourceMethod
from bookscan.services import BookLookupService, scan_image
from bookscan.utils import clean_isbn, isbn13_to_isbn10, safe_url, validate_isbn

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# ==========================================
# App config
# ==========================================
st.set_page_config(page_title="Book Scanner", page_icon="📚", layout="wide")


try:
    BASE_CONFIG = load_config(st.secrets)
except FileNotFoundError:
    BASE_CONFIG = ScannerConfig()
except ConfigError as e:
    st.error(f"Invalid [scanner] settings in secrets.toml: {e}")
    st.stop()


@st.cache_resource
def get_lookup() -> BookLookupService:
    return BookLookupService(BASE_CONFIG.google_books_key)


@st.cache_data(ttl=3600, show_spinner=False)
def lookup(isbn: str) -> dict | None:
    book = get_lookup().by_isbn(isbn)
    return book.to_row() if book else None


# ==========================================
# Sidebar — recognition settings
# ==========================================

with st.sidebar:
    st.header("⚙️ Scanner settings")
    choices = [m for m in SourceMethod if m is not SourceMethod.CLOUD_OCR or BASE_CONFIG.cloud.configured]
    picked = st.multiselect(
        "Recognition backends",
        options=choices,
        default=[m for m in BASE_CONFIG.enabled_backends if m in choices],
        format_func=lambda m: m.value,
    )
    min_conf = st.slider("Minimum confidence", 0.0, 1.0, float(BASE_CONFIG.min_confidence), 0.05)
    if not BASE_CONFIG.cloud.configured:
        st.caption("Cloud OCR is off: add [google_vision].api_key to secrets.toml to enable it.")

CONFIG = replace(BASE_CONFIG, enabled_backends=tuple(picked), min_confidence=min_conf)

st.session_state.setdefault("misses", 0)
st.session_state.setdefault("scanned_isbn", "")
st.session_state.setdefault("last_snapshot", None)

st.title("📚 Book Scanner")

# -----------------------------
# SECTION 1 — Scan
# -----------------------------
with st.expander("📷 Scan barcode", expanded=True):
    source = st.radio("Source", ["Camera", "Upload photo"], horizontal=True)
    if source == "Camera":
        shot = st.camera_input("Point the camera at the barcode on the back cover")
    else:
        shot = st.file_uploader("Photo of the barcode", type=["jpg", "jpeg", "png", "webp"])

    if shot is not None:
        data = shot.getvalue()
        # Streamlit reruns the script on every widget change; scan each image once.
        if data != st.session_state.last_snapshot:
            st.session_state.last_snapshot = data
            if not picked:
                st.warning("Enable at least one recognition backend in the sidebar.")
            else:
                with st.spinner("Reading barcode…"):
                    try:
                        outcome = scan_image(data, CONFIG)
                    except (OSError, ValueError) as e:
                        st.error(f"Could not read the image: {e}")
                        outcome = None
                if outcome is not None and outcome.found:
                    st.session_state.misses = 0
                    st.session_state.scanned_isbn = outcome.isbn
                    st.success(
                        f"ISBN scanned: {outcome.isbn} "
                        f"({outcome.candidate.source_method.value}, {outcome.candidate.confidence:.0%})"
                    )
                elif outcome is not None:
                    st.session_state.misses += 1
                    st.info("No ISBN recognized in this image. Try again with the barcode filling the frame.")

    if st.session_state.misses >= CONFIG.miss_hint_after:
        st.warning("Still nothing recognized. Type the ISBN below instead.")

# -----------------------------
# SECTION 2 — Manual entry / lookup
# -----------------------------
with st.expander("🔎 ISBN", expanded=True):
    typed = st.text_input("ISBN (10 or 13 digits)", value=st.session_state.scanned_isbn)
    isbn = clean_isbn(typed)
    if typed and not validate_isbn(isbn):
        st.warning("That is not a valid ISBN (check the digits).")
    elif isbn:
        with st.spinner("Looking up the book…"):
            rec = lookup(isbn)
        if not rec:
            st.info("No metadata found. You can still register the book by hand.")
        else:
            book = Book(**rec)
            cols = st.columns([1, 4])
            with cols[0]:
                url = safe_url(book.thumbnail)
                if url:
                    st.image(url)
                else:
                    st.caption("No cover")
            with cols[1]:
                st.markdown(f"**{book.title}**")
                subtitle_bits = [p for p in [book.author, book.publisher, book.published_date] if p]
                if subtitle_bits:
                    st.caption(" · ".join(subtitle_bits))
                meta_bits = [f"ISBN-13: {book.isbn}"]
                isbn10 = isbn13_to_isbn10(book.isbn)
                if isbn10: meta_bits.append(f"ISBN-10: {isbn10}")
                if book.page_count: meta_bits.append(f"{int(book.page_count)} pages")
                st.caption(" • ".join(meta_bits))
                if book.description:
                    st.write(book.description)
                st.caption(f"Source: {book.source}")

# -----------------------------
# SECTION 3 — Diagnostics (collapsed)
# -----------------------------
with st.expander("🩺 Diagnostics", expanded=False):
    st.caption("Checks run on the server. Camera permission itself is handled by your browser.")
    if st.button("Run diagnostics"):
        icons = {"pass": "✅", "warning": "⚠️", "fail": "❌"}
        devices = SnapshotDevices(st.session_state.last_snapshot) if st.session_state.last_snapshot else None
        arbitrator = Arbitrator.from_config(CONFIG)
        if devices is None:
            st.info("Take a snapshot first to include the capture checks.")
            for name, ok in arbitrator.capabilities().items():
                st.write(f"{icons['pass' if ok else 'warning']} Backend {name}: {'available' if ok else 'not available'}")
        else:
            for r in run_diagnostics(devices, arbitrator):
                st.write(f"{icons.get(r.status, '•')} **{r.test}** — {r.message}")
