"""Translate raw job diagnostics into friendly, actionable messages.

Rules are evaluated in declaration order and the first matching pattern
wins. Specific signatures (bad credentials, empty period) come before
generic ones (internal error), so the list must stay ordered.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Pattern, Sequence


class ErrorCategory(str, Enum):
    USER = "user"
    TEMPORARY = "temporary"
    UPSTREAM = "upstream"
    SYSTEM = "system"


@dataclass(frozen=True)
class FriendlyError:
    category: ErrorCategory
    headline: str
    remedy: str
    icon: str

    @property
    def color(self) -> str:
        return ERROR_COLORS[self.category]

    def as_text(self) -> str:
        return f"{self.headline} - {self.remedy}"


@dataclass(frozen=True)
class ErrorRule:
    patterns: tuple[Pattern[str], ...]
    error: FriendlyError


def _rule(patterns: Sequence[str], error: FriendlyError) -> ErrorRule:
    return ErrorRule(tuple(re.compile(p, re.IGNORECASE) for p in patterns), error)


ERROR_COLORS: dict[ErrorCategory, str] = {
    ErrorCategory.USER: "amber",
    ErrorCategory.TEMPORARY: "blue",
    ErrorCategory.UPSTREAM: "orange",
    ErrorCategory.SYSTEM: "red",
}

ERROR_RULES: tuple[ErrorRule, ...] = (
    # Credenciales inválidas
    _rule(
        [
            r"invalid credentials",
            r"login failed",
            r"credenciales.*inv[aá]lid",
            r"usuario.*incorrecto",
            r"clave.*incorrecta",
            r"autenticaci[oó]n.*fall",
        ],
        FriendlyError(
            ErrorCategory.USER,
            "Credenciales SOL inválidas",
            "Verifique usuario y clave en la sección Empresas",
            "user",
        ),
    ),
    # Sin comprobantes
    _rule(
        [
            r"no.*data.*found",
            r"0 comprobantes",
            r"sin.*comprobantes",
            r"no se encontr",
            r"empty.*result",
        ],
        FriendlyError(
            ErrorCategory.USER,
            "Sin comprobantes en este periodo",
            "Verifique que el periodo y módulo sean correctos",
            "user",
        ),
    ),
    _rule(
        [
            r"timeout",
            r"timed?\s*out",
            r"tiempo.*agotado",
            r"no respond",
            r"ETIMEDOUT",
        ],
        FriendlyError(
            ErrorCategory.TEMPORARY,
            "SUNAT no respondió a tiempo",
            "Intente nuevamente en unos minutos",
            "clock",
        ),
    ),
    _rule(
        [
            r"captcha",
            r"verificaci[oó]n.*humana",
            r"robot",
        ],
        FriendlyError(
            ErrorCategory.UPSTREAM,
            "SUNAT requiere verificación manual",
            "Ingrese a SUNAT manualmente y vuelva a intentar",
            "cloud",
        ),
    ),
    _rule(
        [
            r"session.*expir",
            r"sesi[oó]n.*expir",
            r"sesi[oó]n.*cerr",
            r"logged.*out",
        ],
        FriendlyError(
            ErrorCategory.TEMPORARY,
            "La sesión de SUNAT expiró",
            "Reintente la descarga",
            "clock",
        ),
    ),
    _rule(
        [
            r"connection.*refused",
            r"ECONNREFUSED",
            r"network",
            r"sin.*conexi[oó]n",
            r"ENOTFOUND",
            r"DNS",
        ],
        FriendlyError(
            ErrorCategory.TEMPORARY,
            "Error de conexión",
            "Verifique su conexión a internet",
            "clock",
        ),
    ),
    # Cambios en el portal
    _rule(
        [
            r"element.*not.*found",
            r"selector.*not.*found",
            r"elemento.*no.*encontr",
            r"page.*structure",
            r"iframe",
        ],
        FriendlyError(
            ErrorCategory.UPSTREAM,
            "SUNAT actualizó su portal",
            "Contacte a soporte técnico",
            "cloud",
        ),
    ),
    # Navegador cerrado a mitad de proceso
    _rule(
        [
            r"browser.*closed",
            r"page.*closed",
            r"context.*closed",
            r"target.*closed",
        ],
        FriendlyError(
            ErrorCategory.TEMPORARY,
            "El proceso se interrumpió",
            "Reintente la descarga",
            "clock",
        ),
    ),
    _rule(
        [
            r"errno\s*22",
            r"invalid.*argument",
            r"worker.*error",
            r"subprocess",
            r"internal.*error",
        ],
        FriendlyError(
            ErrorCategory.SYSTEM,
            "Error interno del sistema",
            "Si persiste, contacte a soporte",
            "alert",
        ),
    ),
)

DEFAULT_ERROR = FriendlyError(
    ErrorCategory.SYSTEM,
    "Error inesperado",
    "Reintente o contacte a soporte",
    "alert",
)


def classify(raw: str | None, rules: Sequence[ErrorRule] = ERROR_RULES) -> FriendlyError:
    """Return the friendly error for a raw diagnostic; never raises."""
    if not raw:
        return DEFAULT_ERROR
    for rule in rules:
        for pattern in rule.patterns:
            if pattern.search(raw):
                return rule.error
    return DEFAULT_ERROR
