from __future__ import annotations

from tablero.core.errors import ExternalServiceError, InfraError, TransientExternalError


class SheetsConfigError(InfraError):
    pass


class SheetsCredentialsError(SheetsConfigError):
    pass


class SheetsPermissionError(SheetsConfigError):
    pass


class NetworkError(TransientExternalError):
    """La petición falló antes de recibir respuesta."""


class RateLimited(TransientExternalError):
    """El almacén de filas respondió 429 (o equivalente)."""


class WriteTimeout(TransientExternalError):
    """Se superó el plazo del llamante sin respuesta definitiva."""

    def __init__(self, deadline_ms: int) -> None:
        super().__init__(f"Sin respuesta tras {deadline_ms} ms")
        self.deadline_ms = deadline_ms


class HardRejection(ExternalServiceError):
    """El servidor rechazó la escritura de forma definitiva."""


class RecordNotFound(HardRejection):
    def __init__(self, record_id: str) -> None:
        super().__init__(f"Registro no encontrado: {record_id}")
        self.record_id = record_id


class ChannelError(TransientExternalError):
    """Fallo del canal push. ``terminal`` indica que el canal quedó cerrado."""

    def __init__(self, message: str, *, terminal: bool = False) -> None:
        super().__init__(message)
        self.terminal = terminal


class ChannelClosedPermanent(ChannelError):
    def __init__(self, message: str = "Canal push cerrado definitivamente") -> None:
        super().__init__(message, terminal=True)
