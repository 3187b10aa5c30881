import re

_WS = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    """Trim and collapse every whitespace run (newlines included) to one space."""
    if not text:
        return ""
    return _WS.sub(" ", text).strip()
