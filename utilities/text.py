import unicodedata
from typing import Optional


def normalize_text(value: Optional[str]) -> str:
    """
    Fold a name for comparison: strip accents, lowercase, trim.

    "  Aimorés " -> "aimores"
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.lower().strip()


def clean(value: Optional[str]) -> Optional[str]:
    """Trim a submitted string, turning blanks into None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None
