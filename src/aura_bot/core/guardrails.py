
"""Guardrails simples: sanitização do texto do cliente."""
import re

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

def sanitize_text(text: str) -> str:
    """Normaliza espaços e remove caracteres de controle."""
    text = CONTROL_CHARS.sub("", text or "")
    return " ".join(text.split())
