
"""Erros de colaboradores externos (API, gateway LLM, catálogo)."""
from __future__ import annotations

class CollaboratorError(RuntimeError):
    """Falha de um colaborador externo: status não-2xx ou resposta inesperada.

    Sempre capturada no ponto de chamada do pipeline e substituída pelo fallback documentado.
    """
    def __init__(self, collaborator: str, detail: str, status_code: int | None = None):
        super().__init__(f"{collaborator}: {detail}")
        self.collaborator = collaborator
        self.detail = detail
        self.status_code = status_code
