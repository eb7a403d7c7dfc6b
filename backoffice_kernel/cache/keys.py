"""
Typed cache keys.

Every cached aggregate is declared here as a ``KeySpec``: the namespace
(string prefix evicted by the invalidation router), the key template, and
the entity types whose writes change the cached value.  The router checks
at start-up that each ``depends_on`` type actually evicts the key's prefix,
so a new cached value cannot silently miss an invalidation edge.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from backoffice_kernel.domain.values import EntityType


class CacheNamespace(str, Enum):
    """Key prefixes.  Eviction is by string prefix, so order matters only for readability."""

    OPEN_SRS = "open_srs"
    SR = "sr_"
    WORKBENCH_OPEN_SRS = "workbench_open_srs"
    REQUESTS_SUMMARY = "requests_summary"
    ACTIVE_PROJECTS = "active_projects"
    PROJECT = "project_"
    WORKBENCH_ACTIVE_PROJECTS = "workbench_active_projects"
    PENDING_INVOICES = "pending_invoices"
    INVOICE = "invoice_"
    WORKBENCH_PENDING_INVOICES = "workbench_pending_invoices"
    MILESTONE = "milestone_"
    TIME_ENTRY = "te_"
    WORKBENCH = "workbench_"


@dataclass(frozen=True)
class KeySpec:
    name: str
    namespace: CacheNamespace
    template: str
    depends_on: frozenset[EntityType]

    @property
    def static_prefix(self) -> str:
        """The literal part of the template before the first placeholder."""
        return self.template.split("{", 1)[0]

    def key(self, **params: object) -> str:
        return self.template.format(**params)


class CacheKeys:
    """Registry of every cached aggregate."""

    PROJECT_HOURS = KeySpec(
        "PROJECT_HOURS",
        CacheNamespace.PROJECT,
        "project_hours_{project_id}",
        frozenset({EntityType.TIME_ENTRY, EntityType.MILESTONE, EntityType.PROJECT}),
    )
    PROJECT_TOTAL = KeySpec(
        "PROJECT_TOTAL",
        CacheNamespace.PROJECT,
        "project_total_{project_id}",
        frozenset({EntityType.MILESTONE, EntityType.PROJECT}),
    )
    MILESTONE_HOURS = KeySpec(
        "MILESTONE_HOURS",
        CacheNamespace.MILESTONE,
        "milestone_hours_{milestone_id}",
        frozenset({EntityType.TIME_ENTRY, EntityType.MILESTONE}),
    )
    SR_HOURS = KeySpec(
        "SR_HOURS",
        CacheNamespace.SR,
        "sr_hours_{service_request_id}",
        frozenset({EntityType.TIME_ENTRY, EntityType.SERVICE_REQUEST}),
    )
    ACTIVE_PROJECTS = KeySpec(
        "ACTIVE_PROJECTS",
        CacheNamespace.ACTIVE_PROJECTS,
        "active_projects_org_{organization_id}",
        frozenset({EntityType.PROJECT}),
    )
    WORKBENCH_ACTIVE_PROJECTS = KeySpec(
        "WORKBENCH_ACTIVE_PROJECTS",
        CacheNamespace.WORKBENCH_ACTIVE_PROJECTS,
        "workbench_active_projects_{limit}",
        frozenset({EntityType.PROJECT}),
    )
    PENDING_INVOICES = KeySpec(
        "PENDING_INVOICES",
        CacheNamespace.PENDING_INVOICES,
        "pending_invoices_org_{organization_id}",
        frozenset({EntityType.INVOICE}),
    )
    WORKBENCH_PENDING_INVOICES = KeySpec(
        "WORKBENCH_PENDING_INVOICES",
        CacheNamespace.WORKBENCH_PENDING_INVOICES,
        "workbench_pending_invoices_{limit}",
        frozenset({EntityType.INVOICE}),
    )
    OPEN_SRS = KeySpec(
        "OPEN_SRS",
        CacheNamespace.OPEN_SRS,
        "open_srs_org_{organization_id}",
        frozenset({EntityType.SERVICE_REQUEST}),
    )
    WORKBENCH_OPEN_SRS = KeySpec(
        "WORKBENCH_OPEN_SRS",
        CacheNamespace.WORKBENCH_OPEN_SRS,
        "workbench_open_srs_{limit}",
        frozenset({EntityType.SERVICE_REQUEST}),
    )
    REPORT_HOURS = KeySpec(
        "REPORT_HOURS",
        CacheNamespace.REQUESTS_SUMMARY,
        "requests_summary_report_{report_id}_{kind}",
        frozenset(
            {EntityType.TIME_ENTRY, EntityType.SERVICE_REQUEST, EntityType.MONTHLY_REPORT}
        ),
    )

    @classmethod
    def all(cls) -> tuple[KeySpec, ...]:
        return tuple(v for v in vars(cls).values() if isinstance(v, KeySpec))
