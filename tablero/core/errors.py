from __future__ import annotations


class AppError(Exception):
    pass


class ValidationError(AppError):
    pass


class InfraError(AppError):
    pass


class ExternalServiceError(InfraError):
    pass


class TransientExternalError(ExternalServiceError):
    pass
