"""
Board session context.

One BoardSession per open board: it carries the server address, the tenant
and the viewing user, and is passed explicitly to the API client instead of
living in module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from casetrack.core.statuses import STATUSES


@dataclass(frozen=True)
class BoardSession:
    """Immutable context for one board.

    Attributes:
        base_url:  Server root, e.g. ``http://localhost:5000``.
        tenant_id: Tenant whose actions are shown. Required.
        user_id:   Viewing user; needed for scope="mine" and personal status edits.
        scope:     "all" or "mine".
        status:    Optional server-side status filter.
        columns:   Board columns, in display order.
    """

    base_url: str
    tenant_id: int
    user_id: int | None = None
    scope: str = "all"
    status: str | None = None
    columns: tuple[str, ...] = field(default=STATUSES)

    def __post_init__(self):
        if isinstance(self.tenant_id, bool) or not isinstance(self.tenant_id, int) or self.tenant_id <= 0:
            raise ValueError("BoardSession requires a positive tenant_id")
        if self.scope not in ("all", "mine"):
            raise ValueError("scope must be 'all' or 'mine'")
        if self.scope == "mine" and self.user_id is None:
            raise ValueError("scope='mine' requires user_id")
        if not self.columns:
            raise ValueError("at least one board column is required")

    @property
    def api_root(self) -> str:
        return self.base_url.rstrip("/") + "/api/v1"

    def headers(self) -> dict[str, str]:
        headers = {"X-Tenant-ID": str(self.tenant_id)}
        if self.user_id is not None:
            headers["X-User-ID"] = str(self.user_id)
        return headers

    def list_params(self) -> dict[str, str]:
        params = {"scope": self.scope}
        if self.status:
            params["status"] = self.status
        return params
