"""URL slug helpers for staff and student profiles"""
import re
import unicodedata
import uuid

# Letters NFKD does not decompose into ASCII
_TRANSLITERATE = str.maketrans({
    "ı": "i", "İ": "I", "ş": "s", "Ş": "S", "ğ": "g", "Ğ": "G",
    "ß": "ss", "ø": "o", "Ø": "O", "æ": "ae", "Æ": "AE", "đ": "d", "Đ": "D",
})


def slugify(value: str) -> str:
    """
    ASCII-fold and lower-case `value`, joining word runs with single dashes.

    >>> slugify("Çağlar Şahin")
    'caglar-sahin'
    """
    value = str(value or "").translate(_TRANSLITERATE)
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-zA-Z0-9]+", "-", value).strip("-")
    return value.lower()


def staff_slug(first_name: str, last_name: str) -> str:
    """Name slug with a random suffix; staff names are not unique"""
    return slugify(f"{first_name}-{last_name}-{uuid.uuid4().hex[:8]}")


def student_slug(first_name: str, last_name: str, student_number: str) -> str:
    return slugify(f"{first_name}-{last_name}-{student_number}")
