"""Contrôle d'intégrité des champs modifiés par une fusion.

Remplace les comparaisons de longueur "de debug" par un rapport structuré renvoyé avec
le résultat de l'opération. Un rétrécissement suspect est signalé et journalisé, jamais
corrigé silencieusement.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

import structlog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IntegrityReport:
    """Comparaison avant/après d'un champ texte."""

    field: str
    before_length: int
    after_length: int
    ratio: float
    shrunk: bool
    ok: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _length(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, str):
        return len(value)
    if isinstance(value, list | tuple | dict):
        return len(value)
    return len(str(value))


def check_integrity(
    before: Any, after: Any, field: str, *, shrink_ratio: float = 0.5
) -> IntegrityReport:
    """Compare deux valeurs d'un champ.

    `ok` est faux si une valeur précédente non vide rétrécit sous `shrink_ratio`.
    """
    before_length = _length(before)
    after_length = _length(after)
    ratio = after_length / before_length if before_length else 1.0
    shrunk = after_length < before_length
    ok = not (before_length > 0 and ratio < shrink_ratio)
    report = IntegrityReport(
        field=field,
        before_length=before_length,
        after_length=after_length,
        ratio=round(ratio, 4),
        shrunk=shrunk,
        ok=ok,
    )
    if not ok:
        log.warning(
            "integrity_shrink_detected",
            field=field,
            before_length=before_length,
            after_length=after_length,
            ratio=report.ratio,
        )
    return report
