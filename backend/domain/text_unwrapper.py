# ============================================================
# Module : backend/domain/text_unwrapper.py
# Objet  : Récupération du texte utile dans une sortie LLM brute.
# Contexte : Les fournisseurs renvoient du texte brut, du JSON balisé
#            (```json), du JSON encodé dans une chaîne, ou du JSON tronqué.
# Invariants :
#  - Ne lève jamais d'exception; ne renvoie "" que pour une entrée vide.
#  - Idempotent: unwrap(unwrap(x)) == unwrap(x).
#  - Chaîne de stratégies pures: valeur ou TRY_NEXT, sans exception de contrôle.
# ============================================================
"""Désenveloppement best-effort des sorties LLM.

Chaîne de stratégies ordonnée, la première qui réussit gagne :

1. retrait des balises de bloc (```json ... ```);
2. parsing JSON direct puis sélection d'une clé prioritaire (`full_text`, `high_yield`,
   `deep_dive`);
3. parsing de la sous-chaîne entre le premier `{` et le dernier `}`;
4. décodage d'un JSON échappé (`{\\"full_text\\": ...}`) puis reprise de la chaîne;
5. recherche littérale de `"clé": "` et extraction manuelle jusqu'au guillemet fermant;
6. à défaut, l'entrée elle-même, déséchappée.

La chaîne est réappliquée jusqu'au point fixe, ce qui garantit l'idempotence sur les
encodages imbriqués (champ JSON contenant lui-même du JSON balisé).
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from backend.core.constants import BODY_KEYS


class _TryNext:
    """Signal explicite "stratégie suivante"."""

    def __repr__(self) -> str:
        return "TRY_NEXT"


TRY_NEXT = _TryNext()

# Nombre maximal de passes pour atteindre le point fixe
MAX_PASSES = 6
# Profondeur maximale de décodage des JSON encodés dans des chaînes
MAX_DECODE_DEPTH = 3

# Stratégies considérées comme des replis tardifs (ParseDegraded)
DEGRADED_STRATEGIES = frozenset({"brace_slice", "key_scan", "plain_json_like"})

_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_+-]*[ \t]*(?:\r?\n|\\n)?")
_FENCE_CLOSE = re.compile(r"(?:\r?\n|\\n)?[ \t]*```\s*$")


@dataclass(frozen=True)
class UnwrapOutcome:
    """Résultat tracé du désenveloppement.

    - text: texte récupéré.
    - strategy: stratégie gagnante de la première passe.
    - degraded: vrai si une passe a dû recourir à un repli tardif.
    """

    text: str
    strategy: str
    degraded: bool


def unescape_whitespace(text: str) -> str:
    """Convertit les séquences littérales `\\n`, `\\r\\n` et `\\t` en caractères réels."""
    if not text:
        return text
    return text.replace("\\r\\n", "\n").replace("\\n", "\n").replace("\\t", "\t")


def strip_fence(text: str) -> str:
    """Retire une balise de bloc ouvrante et/ou fermante si présente."""
    stripped = _FENCE_OPEN.sub("", text, count=1)
    stripped = _FENCE_CLOSE.sub("", stripped, count=1)
    return stripped.strip()


def looks_like_json(text: str) -> bool:
    """Heuristique: la chaîne (balises retirées) commence par `{` ou `[`."""
    if not isinstance(text, str):
        return False
    candidate = strip_fence(text)
    return candidate.startswith("{") or candidate.startswith("[")


def _loads(text: str) -> Any:
    """json.loads tolérant (caractères de contrôle admis); TRY_NEXT si invalide."""
    try:
        return json.loads(text, strict=False)
    except (ValueError, RecursionError):
        # imbrication trop profonde: traitée comme du JSON invalide
        return TRY_NEXT


# ------------------------------------------------------------------
# Récupération d'un objet JSON
# ------------------------------------------------------------------


def _object_from_value(value: Any, depth: int) -> dict | _TryNext:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and depth < MAX_DECODE_DEPTH:
        # JSON encodé dans une chaîne JSON
        obj, _ = _parse_object(value, depth + 1)
        return obj if obj is not None else TRY_NEXT
    return TRY_NEXT


def _object_direct(candidate: str, depth: int) -> dict | _TryNext:
    value = _loads(candidate)
    if value is TRY_NEXT:
        return TRY_NEXT
    return _object_from_value(value, depth)


def _object_brace_slice(candidate: str, depth: int) -> dict | _TryNext:
    first = candidate.find("{")
    last = candidate.rfind("}")
    if first == -1 or last <= first:
        return TRY_NEXT
    if first == 0 and last == len(candidate) - 1:
        # Identique au parsing direct, déjà tenté
        return TRY_NEXT
    return _object_direct(candidate[first : last + 1], depth)


def _object_escaped(candidate: str, depth: int) -> dict | _TryNext:
    if '\\"' not in candidate or depth >= MAX_DECODE_DEPTH:
        return TRY_NEXT
    decoded = _loads(f'"{candidate}"')
    if not isinstance(decoded, str) or decoded == candidate:
        return TRY_NEXT
    obj, _ = _parse_object(decoded, depth + 1)
    return obj if obj is not None else TRY_NEXT


_OBJECT_STRATEGIES: tuple[tuple[str, Callable[[str, int], dict | _TryNext]], ...] = (
    ("json", _object_direct),
    ("brace_slice", _object_brace_slice),
    ("escaped_json", _object_escaped),
)


def _parse_object(text: str, depth: int = 0) -> tuple[dict | None, str | None]:
    candidate = strip_fence(text)
    if not candidate:
        return None, None
    for name, strategy in _OBJECT_STRATEGIES:
        result = strategy(candidate, depth)
        if result is not TRY_NEXT:
            return result, name
    return None, None


def parse_json_object(text: str) -> tuple[dict | None, str | None]:
    """Récupère un objet JSON et le nom de la stratégie qui l'a produit."""
    if not isinstance(text, str) or not text.strip():
        return None, None
    return _parse_object(text)


def try_parse_json_object(text: str) -> dict | None:
    """Récupère un objet JSON depuis une chaîne balisée/encodée, ou None."""
    obj, _ = parse_json_object(text)
    return obj


# ------------------------------------------------------------------
# Extraction du texte
# ------------------------------------------------------------------


def _decode_fragment(raw: str) -> str:
    """Déséchappe un fragment de chaîne JSON extrait manuellement."""
    decoded = _loads(f'"{raw}"')
    if isinstance(decoded, str):
        return unescape_whitespace(decoded)
    return unescape_whitespace(raw.replace('\\"', '"'))


def _pick_key(obj: dict, keys: Sequence[str]) -> str | _TryNext:
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str) and value:
            return unescape_whitespace(value)
    return TRY_NEXT


def _text_from_object(text: str, keys: Sequence[str]) -> tuple[str | _TryNext, str]:
    obj, strategy = parse_json_object(text)
    if obj is None:
        return TRY_NEXT, ""
    return _pick_key(obj, keys), strategy or "json"


def _scan_quoted_value(text: str, start: int) -> str:
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            rest = text[idx + 1 :].lstrip()
            if not rest or rest[0] in ",}":
                return text[start:idx]
    # JSON tronqué: tout le reste
    return text[start:].rstrip()


def _text_from_key_scan(text: str, keys: Sequence[str]) -> str | _TryNext:
    candidate = strip_fence(text)
    for key in keys:
        match = re.search(rf'"{re.escape(key)}"\s*:\s*"', candidate)
        if not match:
            continue
        raw = _scan_quoted_value(candidate, match.end())
        value = _decode_fragment(raw)
        if value:
            return value
    return TRY_NEXT


def _unwrap_once(text: str, keys: Sequence[str]) -> tuple[str, str]:
    value, strategy = _text_from_object(text, keys)
    if value is not TRY_NEXT:
        return value, strategy
    value = _text_from_key_scan(text, keys)
    if value is not TRY_NEXT:
        return value, "key_scan"
    if looks_like_json(text):
        return unescape_whitespace(text), "plain_json_like"
    return unescape_whitespace(text), "plain"


def unwrap_with_trace(text: str, keys: Sequence[str] = BODY_KEYS) -> UnwrapOutcome:
    """Désenveloppe `text` et indique la stratégie employée."""
    if not isinstance(text, str) or not text:
        return UnwrapOutcome(
            text=text if isinstance(text, str) else "", strategy="empty", degraded=False
        )
    current = text
    first_strategy: str | None = None
    degraded = False
    for _ in range(MAX_PASSES):
        out, strategy = _unwrap_once(current, keys)
        if first_strategy is None:
            first_strategy = strategy
        if out == current:
            break
        degraded = degraded or strategy in DEGRADED_STRATEGIES
        current = out
    if first_strategy in DEGRADED_STRATEGIES:
        degraded = True
    return UnwrapOutcome(text=current, strategy=first_strategy or "plain", degraded=degraded)


def unwrap(text: str, keys: Sequence[str] = BODY_KEYS) -> str:
    """Retourne le meilleur texte utile récupérable depuis `text`."""
    return unwrap_with_trace(text, keys).text
