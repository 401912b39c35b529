from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

_KEY_VALUE_PATTERNS = [
    re.compile(
        r'(?i)("?(?:access_token|refresh_token|id_token|token|client_secret|private_key|client_email)"?\s*[:=]\s*)("[^"]*"|\'[^\']*\'|[^,\s}\]&]+)'  # noqa: E501
    ),
    re.compile(r"(?i)(authorization\s*[:=]\s*bearer\s+)([^\s,;]+)"),
    re.compile(r"(?i)(bearer\s+)([A-Za-z0-9\-_.~+/]+=*)"),
]
# El stream SSE viaja con el token en la query (?token=...).
_QUERY_TOKEN_PATTERN = re.compile(r"(?i)([?&](?:token|access_token)=)([^&#\s]+)")
_CREDENTIALS_PATH_PATTERN = re.compile(
    r"(?i)(?:[a-z]:\\[^\s'\"]*credentials\.json|/[^\s'\"]*credentials\.json)"
)


def redactar_texto(texto: str) -> str:
    redacted = _QUERY_TOKEN_PATTERN.sub(r"\1<REDACTED>", texto)
    for pattern in _KEY_VALUE_PATTERNS:
        redacted = pattern.sub(r"\1<REDACTED>", redacted)
    return _CREDENTIALS_PATH_PATTERN.sub("<CRED_PATH>", redacted)


def _redactar_valor(value: Any) -> Any:
    if isinstance(value, str):
        return redactar_texto(value)
    if isinstance(value, Mapping):
        return {key: _redactar_valor(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_redactar_valor(item) for item in value]
    return value


class LoggingSecretsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redactar_texto(record.msg)

        if isinstance(record.args, Mapping):
            record.args = {key: _redactar_valor(value) for key, value in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_redactar_valor(value) for value in record.args)

        extra_payload = getattr(record, "extra", None)
        if isinstance(extra_payload, Mapping):
            record.extra = {key: _redactar_valor(value) for key, value in extra_payload.items()}

        return True
