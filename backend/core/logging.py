"""Configuration de logging basée sur structlog.

Objectif du module
------------------
- Logs console lisibles en développement, JSON (une ligne par événement) sinon.
- Propager le contexte de requête (request_id, entity_id) via les contextvars.
- Ne jamais journaliser le contenu généré: seulement des identifiants, longueurs et comptes.
"""

import logging
import sys

import structlog


def _renderer(debug: bool):
    if debug:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(debug: bool = True):
    """Configure structlog (niveau DEBUG et rendu console si `debug`, INFO et JSON sinon)."""
    level = logging.DEBUG if debug else logging.INFO
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="ISO", utc=True),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(debug),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
