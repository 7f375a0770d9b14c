# vigia/errors.py
from __future__ import annotations

from typing import Optional


class IncidentError(Exception):
    """Base error carrying a stable machine code and a user-facing message."""

    code = "INCIDENT_ERROR"
    message = "Não foi possível concluir a operação."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class AuthRequiredError(IncidentError):
    code = "AUTH_REQUIRED"
    message = "Faça login para enviar um alerta."


class CoordsRequiredError(IncidentError):
    code = "COORDS_REQUIRED"
    message = "Localização inválida ou ausente."


class PrivacyBlockedError(IncidentError):
    # Same neutral wording for content violations and active blocks.
    code = "PRIVACY_BLOCKED"
    message = "Conteúdo não permitido. Reformule sua descrição."

    def __init__(self, suggestion: str = "", message: Optional[str] = None):
        super().__init__(message)
        self.suggestion = suggestion


class TransactionConflictError(IncidentError):
    code = "TRANSACTION_CONFLICT"
    message = "Serviço temporariamente indisponível. Tente novamente."


class SiblingConflictError(IncidentError):
    code = "CONFLICT_SIBLING_EXISTS"
    message = "Serviço temporariamente indisponível. Tente novamente."


class QueryParamError(ValueError):
    """Malformed circle/bbox query input (client error)."""


class QueryTimeoutError(TimeoutError):
    """Footprint fan-out did not finish within the request timeout."""
