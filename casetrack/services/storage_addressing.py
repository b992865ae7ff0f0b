"""
Storage addressing — derives where an action's files live in the object store.

Layout:
    <tenant>_<tenant id>/Processos/<client name - document>/<title>/<CAT>_<safe-filename>

Rules:
  - Every segment is derived, never stored: uploader and lister call the
    same function and get byte-identical prefixes.
  - Labels fold diacritics, turn path separators into "-", drop anything
    outside ``[A-Za-z0-9_ .-]`` and collapse whitespace, so no output
    segment can contain "/", "\\" or non-ASCII characters.
  - The tenant root carries the tenant id, so two tenants never share a
    root even when their names fold to the same label.
  - A missing tenant is a hard failure; there is no default tenant.
  - Files are classified at read time by their ``<CAT>_`` prefix.
"""

import logging
import re
import unicodedata

from casetrack.core.exceptions import UnauthorizedError, ValidationError
from casetrack.models import db
from casetrack.models.tenant import Tenant

logger = logging.getLogger(__name__)

ROOT_FOLDER = "Processos"
TENANT_FALLBACK = "Tenant"
CLIENT_FALLBACK = "NA"
TITLE_FALLBACK = "Sem Titulo"
FILENAME_FALLBACK = "arquivo"

# Filename token → category. ACAO is the action's own filing channel.
CATEGORY_TOKENS = {
    "CON": "Contract",
    "PRO": "PowerOfAttorney",
    "DEC": "Declaration",
    "FIC": "Form",
    "DOC": "SupportingDocs",
    "PROV": "Evidence",
    "ACAO": "Filing",
}
OTHER_CATEGORY = "Other"
FILING_TOKEN = "ACAO"

# Categories the caller may delete from (the others are intake documents)
DELETABLE_TOKENS = frozenset({FILING_TOKEN})

_SEPARATORS = re.compile(r"[/\\]+")
_LABEL_DISALLOWED = re.compile(r"[^\w\s.\-]+", re.ASCII)
_NAME_DISALLOWED = re.compile(r"[^\w.\-]+", re.ASCII)
_DASH_RUN = re.compile(r"-{2,}")
_DOT_RUN = re.compile(r"\.{2,}")
_FORBIDDEN_IN_NAME = ("/", "\\", "..", "*", "?")


def _fold_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def safe_label(value, fallback: str = CLIENT_FALLBACK) -> str:
    """Folder-safe label: ``"São Paulo / Centro"`` → ``"Sao Paulo - Centro"``."""
    text = _fold_diacritics(str(value or ""))
    text = _SEPARATORS.sub("-", text)
    text = _LABEL_DISALLOWED.sub("", text)
    text = " ".join(text.split())
    if not text.strip("."):
        return fallback
    return text


def safe_filename(value) -> str:
    """Object-name-safe file name: ``"Petição inicial (v2).pdf"`` → ``"Peticao-inicial-v2-.pdf"``."""
    text = _fold_diacritics(str(value or ""))
    text = _NAME_DISALLOWED.sub("-", text)
    text = _DOT_RUN.sub(".", text)
    text = _DASH_RUN.sub("-", text)
    text = text.strip("-.")
    return text or FILENAME_FALLBACK


def client_label(client_name, client_document_id) -> str:
    parts = [str(p).strip() for p in (client_name, client_document_id) if p and str(p).strip()]
    return safe_label(" - ".join(parts), CLIENT_FALLBACK)


def tenant_root(tenant_name, tenant_id) -> str:
    """Storage root for one tenant: ``"Escritório Alfa"``, 3 → ``"Escritorio Alfa_3"``.

    The id suffix keeps roots unique even when two names fold to the same
    label; unnamed tenants get ``Tenant_<id>``.
    """
    if isinstance(tenant_id, bool) or not isinstance(tenant_id, int) or tenant_id <= 0:
        raise UnauthorizedError("A valid tenant is required to address storage")
    return f"{safe_label(tenant_name, TENANT_FALLBACK)}_{tenant_id}"


def build_prefix(tenant_label, client_name, client_document_id, title) -> str:
    """Pure prefix derivation from already-resolved values."""
    tenant_segment = safe_label(tenant_label, "")
    if not tenant_segment:
        raise UnauthorizedError("A valid tenant is required to address storage")
    return "/".join((
        tenant_segment,
        ROOT_FOLDER,
        client_label(client_name, client_document_id),
        safe_label(title, TITLE_FALLBACK),
    )) + "/"


def resolve_tenant_label(tenant_id) -> str:
    """Unique storage root for the tenant (see :func:`tenant_root`).

    Raises:
        UnauthorizedError: tenant_id missing, non-positive or unknown.
    """
    if isinstance(tenant_id, bool) or not isinstance(tenant_id, int) or tenant_id <= 0:
        raise UnauthorizedError("A valid tenant is required to address storage")
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        logger.warning("Storage addressing for unknown tenant_id=%s", tenant_id)
        raise UnauthorizedError("A valid tenant is required to address storage")
    return tenant_root(tenant.name, tenant.id)


def derive_prefix(tenant_id, client_name, client_document_id, title) -> str:
    """Storage prefix for one action: ``<tenant>_<id>/Processos/<client>/<title>/``."""
    return build_prefix(resolve_tenant_label(tenant_id), client_name, client_document_id, title)


def prefix_for_action(action) -> str:
    client = action.client
    if client is None:
        raise ValidationError("Action has no client", details={"client_id": action.client_id})
    return derive_prefix(action.tenant_id, client.name, client.document_id, action.title)


# ── Categories ───────────────────────────────────────────────────────────────

def category_token(category) -> str:
    """Accept either the token (``"CON"``) or the category name (``"Contract"``)."""
    value = str(category or "").strip()
    upper = value.upper()
    if upper in CATEGORY_TOKENS:
        return upper
    for token, name in CATEGORY_TOKENS.items():
        if name.lower() == value.lower():
            return token
    raise ValidationError(
        f"Unknown file category: {value or '(empty)'}",
        details={"category": sorted(CATEGORY_TOKENS)},
    )


def classify(filename: str) -> str:
    """Category for a stored file name, ``Other`` when no token matches."""
    token, sep, _ = filename.partition("_")
    if sep and token in CATEGORY_TOKENS:
        return CATEGORY_TOKENS[token]
    return OTHER_CATEGORY


def stored_filename(category, original_name) -> str:
    return f"{category_token(category)}_{safe_filename(original_name)}"


def is_bare_filename(name) -> bool:
    if not isinstance(name, str) or not name.strip():
        return False
    return not any(marker in name for marker in _FORBIDDEN_IN_NAME)


def is_deletable(filename: str) -> bool:
    token, sep, _ = filename.partition("_")
    return bool(sep) and token in DELETABLE_TOKENS
