"""
Fakes pour les tests unitaires.

Ce module fournit des implémentations factices du LLM, du générateur et du relecteur avec un
comportement déterministe et un historique des appels.
"""

from __future__ import annotations

from typing import Any, Literal, overload

from backend.infra.llm.base import LLM


class FakeLLM(LLM):
    """
    Implémentation factice de LLM pour les tests.

    Retourne la réponse configurée (ou lève l'erreur configurée) et mémorise les appels.
    """

    def __init__(
        self,
        reply: str = '{"full_text": "FAKE"}',
        usage: dict[str, int] | None = None,
        error: Exception | None = None,
        provider: str = "openai",
    ) -> None:
        """Configure la réponse, l'usage et l'éventuelle erreur."""
        self.reply = reply
        if usage is None:
            usage = {"prompt_tokens": 1000, "completion_tokens": 2000, "total_tokens": 3000}
        self.usage = usage
        self.error = error
        self.provider = provider
        self.calls: list[dict[str, Any]] = []

    @overload
    def generate(
        self,
        messages: list[dict[str, str]],
        *,
        with_usage: Literal[True],
        **kwargs: Any,
    ) -> tuple[str, dict[str, int]]: ...

    @overload
    def generate(
        self,
        messages: list[dict[str, str]],
        *,
        with_usage: Literal[False] = False,
        **kwargs: Any,
    ) -> str: ...

    def generate(
        self,
        messages: list[dict[str, str]],
        *,
        with_usage: bool = False,
        **kwargs: Any,
    ) -> str | tuple[str, dict[str, int]]:
        """Renvoie la réponse configurée."""
        self.calls.append({"messages": messages, **kwargs})
        if self.error is not None:
            raise self.error
        return (self.reply, dict(self.usage)) if with_usage else self.reply


class FakeGenerator:
    """Générateur factice: renvoie une réponse brute par mode, ou lève une erreur."""

    def __init__(self, responses: dict[str, Any] | None = None, error: Exception | None = None):
        """Configure les réponses par mode."""
        self.responses = responses or {}
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def generate(self, mode: str, context: dict[str, Any]) -> Any:
        """Renvoie la réponse configurée pour `mode`."""
        self.calls.append((mode, dict(context)))
        if self.error is not None:
            raise self.error
        return self.responses[mode]


class FakeReviewer:
    """Relecteur factice: renvoie une réponse brute fixe."""

    def __init__(self, raw: Any = None):
        """Configure la réponse brute."""
        self.raw = raw
        self.calls: list[tuple[str, str | None, str]] = []

    def review(self, content: str, specialty: str | None, mode: str) -> Any:
        """Mémorise l'appel et renvoie la réponse configurée."""
        self.calls.append((content, specialty, mode))
        return self.raw
