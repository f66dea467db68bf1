"""
Client LLM basé sur l'API OpenAI avec fallback déterministe.

Implémente l'interface LLM en supportant:
- chat.completions (SDK OpenAI), en mode JSON quand demandé
- responses (SDK OpenAI plus récent)
- fallback local déterministe (tests/dev, sans clé API)
"""

from __future__ import annotations

from typing import Any, Literal, overload

import structlog
from openai import OpenAI, OpenAIError

from backend.infra.llm.base import LLM

log = structlog.get_logger(__name__)


class OpenAILLM(LLM):
    """
    LLM basé sur OpenAI avec fallback.

    Utilise l'API OpenAI si une clé API est disponible, sinon renvoie une réponse
    déterministe pour les tests.
    """

    provider = "openai"

    def __init__(self, api_key: str | None = None, model: str = "gpt-4o") -> None:
        """Initialise le client (aucun appel réseau à la construction)."""
        self.model = model
        self.client = OpenAI(api_key=api_key) if api_key else None

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
        """
        Génère du texte (et éventuellement les métriques d'usage).

        - with_usage=False (défaut) -> str
        - with_usage=True -> (str, dict[str, int])

        Raises:
            OpenAIError: si les deux API du SDK échouent.
        """
        if not self.client:
            text, usage = self._fallback_response(messages)
            return (text, usage) if with_usage else text

        model = kwargs.pop("model", None) or self.model
        try:
            r = self._chat_completions(messages, model, **kwargs)
        except OpenAIError as exc:
            log.warning("openai_chat_completions_failed", model=model, error=type(exc).__name__)
            r = None
        if r is None:
            r = self._responses_api(messages, model, **kwargs)

        text, usage = r
        return (text, usage) if with_usage else text

    # -------------------- Helpers internes --------------------

    def _fallback_response(
        self, messages: list[dict[str, str]]
    ) -> tuple[str, dict[str, int]]:
        """Réponse déterministe (utile pour tests), usage vide."""
        last = messages[-1]["content"] if messages else ""
        return f"FAKE_OPENAI: {last[:80]}".strip(), {}

    def _chat_completions(
        self, messages: list[dict[str, str]], model: str, **kwargs: Any
    ) -> tuple[str, dict[str, int]] | None:
        """Appelle chat.completions; None si la réponse est vide."""
        json_mode = kwargs.pop("json_mode", False)
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        resp = self.client.chat.completions.create(  # type: ignore[union-attr]
            model=model,
            messages=messages,
            **kwargs,
        )
        choice = resp.choices[0]
        content = getattr(getattr(choice, "message", None), "content", None)
        if content:
            return str(content), self._extract_usage_dict(resp)
        return None

    def _responses_api(
        self, messages: list[dict[str, str]], model: str, **kwargs: Any
    ) -> tuple[str, dict[str, int]]:
        """Appelle l'API responses (dernier recours)."""
        kwargs.pop("json_mode", None)
        max_tokens = kwargs.pop("max_tokens", None)
        if max_tokens is not None:
            kwargs["max_output_tokens"] = max_tokens
        resp = self.client.responses.create(  # type: ignore[union-attr]
            model=model,
            input=messages,
            **kwargs,
        )
        content = getattr(resp, "output_text", None) or ""
        return str(content), self._extract_usage_dict(resp)

    def _extract_usage_dict(self, resp: Any) -> dict[str, int]:
        """
        Extrait les infos d'usage depuis la réponse OpenAI.

        Toujours un dict (vide si le SDK n'en fournit pas).
        """
        usage = getattr(resp, "usage", None)
        if not usage:
            return {}
        prompt = getattr(usage, "prompt_tokens", None) or getattr(usage, "input_tokens", 0)
        completion = getattr(usage, "completion_tokens", None) or getattr(
            usage, "output_tokens", 0
        )
        total = getattr(usage, "total_tokens", None) or (prompt or 0) + (completion or 0)
        return {
            "prompt_tokens": int(prompt or 0),
            "completion_tokens": int(completion or 0),
            "total_tokens": int(total or 0),
        }
