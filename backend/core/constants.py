"""Constantes partagées (clés de contenu, seuils, valeurs de test).

Regroupe les valeurs utilisées à plusieurs endroits pour éviter les valeurs magiques
dans le code et dans les tests.
"""

# Champs de corps d'une entité, par ordre de priorité d'extraction
BODY_KEYS: tuple[str, ...] = ("full_text", "high_yield", "deep_dive")

CONFIDENCE_LEVELS: tuple[str, ...] = ("high", "medium", "low")
CONFIDENCE_HIGH_MIN = 0.8
CONFIDENCE_MEDIUM_MIN = 0.5

REVIEW_SEVERITIES: tuple[str, ...] = ("low", "medium", "high")

CHANGE_REASON_AI_PREFIX = "AI generation: "

# Tentatives d'insertion d'une version (1 essai + 1 relance sur conflit)
VERSION_INSERT_ATTEMPTS = 2

# Valeurs de test (PLR2004)
TEST_HTTP_STATUS_OK = 200
TEST_HTTP_STATUS_CREATED = 201
TEST_HTTP_STATUS_NOT_FOUND = 404
TEST_HTTP_STATUS_CONFLICT = 409
TEST_HTTP_STATUS_UNPROCESSABLE = 422
TEST_HTTP_STATUS_BAD_GATEWAY = 502
TEST_THREE_SAVES = 3
TEST_TWO_ITEMS = 2
