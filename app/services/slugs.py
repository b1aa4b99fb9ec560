import unicodedata


def slugify(value: str, fallback: str = "item") -> str:
    raw = unicodedata.normalize("NFKD", str(value or "")).strip().lower()
    if not raw:
        return fallback
    out: list[str] = []
    prev_dash = False
    for ch in raw:
        if unicodedata.combining(ch):
            continue
        if ("a" <= ch <= "z") or ("0" <= ch <= "9"):
            out.append(ch)
            prev_dash = False
            continue
        if not prev_dash:
            out.append("-")
            prev_dash = True
    slug = "".join(out).strip("-")
    return slug or fallback
