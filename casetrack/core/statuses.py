"""
Action status vocabulary shared by the server and the board client.

Canonical statuses (stored verbatim in ``actions.status``):
    Não iniciado  — unstarted
    Em andamento  — in progress
    Finalizado    — finished
    Devolvido     — returned by a reviewer

Approval and filing are NOT statuses; they are the ``approved_at`` and
``filed`` columns. Legacy status values from older rows ("Concluído",
"Aprovado", "Protocolado") are read as ``Finalizado`` and never set
the approval or filing flags on their own.
"""

import unicodedata

NOT_STARTED = "Não iniciado"
IN_PROGRESS = "Em andamento"
FINISHED = "Finalizado"
RETURNED = "Devolvido"

STATUSES = (NOT_STARTED, IN_PROGRESS, FINISHED, RETURNED)

# Statuses that stamp completed_at (first time only)
COMPLETED_STATUSES = frozenset({FINISHED})
# Statuses that clear completed_at
ACTIVE_STATUSES = frozenset({NOT_STARTED, IN_PROGRESS, RETURNED})

COMPLEXITIES = ("Baixa", "Média", "Alta")

NO_ASSIGNEE_LABEL = "Nenhum"
NO_CREATOR_LABEL = "Sistema"


def fold(value: str) -> str:
    """Lower-case and strip diacritics: ``"Não Iniciado"`` → ``"nao iniciado"``."""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.lower().split())


_STATUS_ALIASES = {
    "nao iniciado": NOT_STARTED,
    "not started": NOT_STARTED,
    "em andamento": IN_PROGRESS,
    "in progress": IN_PROGRESS,
    "finalizado": FINISHED,
    "finished": FINISHED,
    "concluido": FINISHED,
    "aprovado": FINISHED,
    "protocolado": FINISHED,
    "devolvido": RETURNED,
    "returned": RETURNED,
}

_COMPLEXITY_ALIASES = {
    "baixa": "Baixa",
    "baixo": "Baixa",
    "media": "Média",
    "medio": "Média",
    "alta": "Alta",
    "alto": "Alta",
}


def normalize_status(value) -> str | None:
    """Map any accepted spelling to its canonical status, or None if unknown."""
    if not isinstance(value, str) or not value.strip():
        return None
    return _STATUS_ALIASES.get(fold(value))


def normalize_complexity(value) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    return _COMPLEXITY_ALIASES.get(fold(value))


def column_for(status, columns=STATUSES) -> str:
    """Board column for *status*; unknown values land in the first column."""
    canonical = normalize_status(status)
    if canonical in columns:
        return canonical
    return columns[0] if columns else NOT_STARTED


def is_completed(status) -> bool:
    return normalize_status(status) in COMPLETED_STATUSES
