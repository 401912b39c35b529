from __future__ import annotations

from typing import Any, Mapping

from tablero.domain.models import FieldValue, Record


def calcular_backoff_escritura(intento: int, base_segundos: float = 1.0) -> float:
    return base_segundos * (2 ** (intento - 1))


def debe_reintentar(intento: int, max_intentos: int) -> bool:
    return intento < max_intentos


def normalizar_fila(fila: list[Any], total_columnas: int) -> list[str]:
    if total_columnas < 0:
        raise ValueError("total_columnas no puede ser negativo")
    celdas = ["" if celda is None else str(celda) for celda in fila]
    if len(celdas) >= total_columnas:
        return celdas[:total_columnas]
    return celdas + [""] * (total_columnas - len(celdas))


def normalizar_cabeceras(cabeceras: list[Any]) -> list[str]:
    return [str(cabecera).strip() for cabecera in cabeceras]


def fila_vacia(fila: list[Any]) -> bool:
    return all(str(celda).strip() == "" for celda in fila if celda is not None)


def asegurar_columna_id(cabeceras: list[str], columna_id: str) -> tuple[list[str], bool]:
    if columna_id in cabeceras:
        return list(cabeceras), False
    return [*cabeceras, columna_id], True


def indice_columna(cabeceras: list[str], nombre: str) -> int | None:
    try:
        return cabeceras.index(nombre)
    except ValueError:
        return None


def construir_registro(cabeceras: list[str], fila: list[Any], columna_id: str) -> Record:
    fila_normalizada = normalizar_fila(fila, len(cabeceras))
    valores: dict[str, FieldValue] = {}
    record_id = ""
    for idx, cabecera in enumerate(cabeceras):
        if not cabecera:
            continue
        if cabecera == columna_id:
            record_id = fila_normalizada[idx].strip()
            continue
        valores[cabecera] = fila_normalizada[idx]
    return Record.from_mapping(record_id, valores)


def buscar_fila_por_id(valores: list[list[Any]], indice_id: int, record_id: str) -> int | None:
    """Devuelve el número de fila (1-based, cabecera incluida) del registro o ``None``."""
    objetivo = record_id.strip()
    for numero, fila in enumerate(valores[1:], start=2):
        if indice_id < len(fila) and str(fila[indice_id]).strip() == objetivo:
            return numero
    return None


def columnas_desconocidas(cabeceras: list[str], campos: Mapping[str, Any]) -> list[str]:
    conocidas = set(cabeceras)
    return [nombre for nombre in campos if nombre not in conocidas]


def fila_para_alta(cabeceras: list[str], campos: Mapping[str, FieldValue], columna_id: str, record_id: str) -> list[Any]:
    return [record_id if cabecera == columna_id else campos.get(cabecera, "") for cabecera in cabeceras]


def fusionar_fila(cabeceras: list[str], fila: list[Any], campos: Mapping[str, FieldValue]) -> list[Any]:
    actual = normalizar_fila(fila, len(cabeceras))
    return [campos.get(cabecera, actual[idx]) for idx, cabecera in enumerate(cabeceras)]


def extraer_opciones_validacion(cabeceras: list[str], metadata: Mapping[str, Any]) -> dict[str, list[str]]:
    """Lee las listas desplegables (ONE_OF_LIST) de la primera fila de datos.

    ``metadata`` es la respuesta de ``spreadsheets.get`` con ``includeGridData``
    limitada a la fila 2 de la pestaña.
    """
    opciones: dict[str, list[str]] = {}
    for hoja in metadata.get("sheets", []) or []:
        for bloque in hoja.get("data", []) or []:
            inicio = int(bloque.get("startColumn", 0) or 0)
            for fila in bloque.get("rowData", []) or []:
                for offset, celda in enumerate(fila.get("values", []) or []):
                    columna = inicio + offset
                    if columna >= len(cabeceras) or not cabeceras[columna]:
                        continue
                    valores = _valores_lista(celda.get("dataValidation"))
                    if valores:
                        opciones[cabeceras[columna]] = valores
    return opciones


def _valores_lista(validacion: Mapping[str, Any] | None) -> list[str]:
    if not validacion:
        return []
    condicion = validacion.get("condition") or {}
    if condicion.get("type") != "ONE_OF_LIST":
        return []
    salida: list[str] = []
    for valor in condicion.get("values", []) or []:
        texto = str(valor.get("userEnteredValue", "")).strip()
        if texto:
            salida.append(texto)
    return salida
