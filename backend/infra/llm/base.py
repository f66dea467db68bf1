"""Interface de base pour les modèles de langage utilisés par la génération et la relecture."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Literal, overload


class LLM(ABC):
    """Interface abstraite pour les modèles de langage.

    `provider` identifie le fournisseur servi par l'implémentation (routage des modes) et
    `model` le modèle utilisé quand l'appelant n'en impose pas un via `model=`.
    """

    provider: str = "openai"
    model: str = ""

    # with_usage=True -> (texte, usage)
    @overload
    def generate(
        self,
        messages: list[dict[str, str]],
        *,
        with_usage: Literal[True],
        **kwargs: Any,
    ) -> tuple[str, dict[str, int]]: ...

    # Cas par défaut -> texte
    @overload
    def generate(
        self,
        messages: list[dict[str, str]],
        *,
        with_usage: Literal[False] = False,
        **kwargs: Any,
    ) -> str: ...

    @abstractmethod
    def generate(
        self,
        messages: list[dict[str, str]],
        *,
        with_usage: bool = False,
        **kwargs: Any,
    ) -> str | tuple[str, dict[str, int]]:
        """Génère une réponse brute à partir d'une liste de messages."""
        ...
