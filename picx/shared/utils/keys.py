"""Object-key helpers shared by upload routes and storage providers.

Keys are bucket/repository paths without a leading slash, e.g.
``2024/05/Ab3xK.png``.
"""

import re

from picx.shared.utils.generators import generate_cuid

# ASCII letters, digits, "._-" and CJK unified ideographs survive; "-" last.
_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._\u4e00-\u9fa5-]")


def normalize_key(key: str) -> str:
    """Strip leading slashes; every provider stores keys in this form."""
    return (key or "").lstrip("/")


def normalize_folder(path: str | None) -> str:
    """Return folder prefix with trailing slash and no leading slash ("" stays "")."""
    folder = normalize_key((path or "").strip())
    if folder and not folder.endswith("/"):
        folder += "/"
    return folder


def sanitize_filename(name: str) -> str:
    """Replace characters unsafe in keys and URLs with "_".

    Raises:
        ValueError: If nothing usable remains.
    """
    safe = _UNSAFE_FILENAME_CHARS.sub("_", (name or "").strip())
    if not safe.strip("._"):
        raise ValueError("Filename is empty or invalid after sanitization")
    return safe


def generate_object_name(ext: str) -> str:
    """Random object name with the given extension (e.g. "png")."""
    ext = ext.lstrip(".")
    name = generate_cuid()
    return f"{name}.{ext}" if ext else name


def build_object_key(folder: str | None, filename: str) -> str:
    """Join folder prefix and filename into a normalized key."""
    return normalize_key(normalize_folder(folder) + filename)
