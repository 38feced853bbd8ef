"""
Client configuration schema.

Defines the typed, frozen form of the console client configuration.  YAML
files are parsed into these types by ``billing_config.loader``; services
receive a ``ClientConfig`` and never read files themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

# Path templates, relative to ``ApiConfig.base_url``.  ``{id}`` is the
# document id.
DEFAULT_ENDPOINTS: dict[str, str] = {
    "invoices.list": "/invoices",
    "invoices.update": "/invoices/{id}",
    "invoices.delete": "/invoices/{id}",
    "invoices.submit": "/invoices/{id}/submit",
    "invoices.dgi_status": "/invoices/{id}/dgi-status",
    "quotes.list": "/quotes",
    "quotes.delete": "/quotes/{id}",
    "quotes.update_status": "/quotes/{id}/status",
    "quotes.submit": "/quotes/{id}/submit",
    "quotes.convert": "/quotes/{id}/convert",
    "credit_notes.list": "/creditNotes",
    "credit_notes.update": "/creditNotes/{id}",
    "credit_notes.delete": "/creditNotes/{id}",
    "credit_notes.submit": "/creditNotes/{id}/submit",
    "credit_notes.dgi_status": "/creditNotes/{id}/dgi-status",
}


@dataclass(frozen=True)
class EndpointTable:
    """Named path templates for the remote API."""

    templates: tuple[tuple[str, str], ...] = tuple(sorted(DEFAULT_ENDPOINTS.items()))

    def path(self, name: str, document_id: object | None = None) -> str:
        """Render the template ``name``.

        Raises:
            KeyError: if ``name`` is not configured.
        """
        template = dict(self.templates)[name]
        if document_id is None:
            return template
        return template.format(id=document_id)

    def names(self) -> frozenset[str]:
        return frozenset(name for name, _ in self.templates)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApiConfig:
    """Remote API connection settings."""

    base_url: str = "http://localhost:5000/api"
    timeout_seconds: float = 30.0
    accept_language: str = "fr-FR"


@dataclass(frozen=True)
class BulkConfig:
    """Bulk fan-out settings."""

    max_concurrency: int = 4


@dataclass(frozen=True)
class LoggingConfig:
    """Logging settings applied by ``configure_logging``."""

    level: str = "INFO"


@dataclass(frozen=True)
class ClientConfig:
    """Complete client configuration (the only runtime config artifact)."""

    name: str = "default"
    api: ApiConfig = field(default_factory=ApiConfig)
    bulk: BulkConfig = field(default_factory=BulkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    endpoints: EndpointTable = field(default_factory=EndpointTable)
