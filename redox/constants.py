"""Canonical constants for pipeline stages, gates, and artifact names."""

from __future__ import annotations

PRIMITIVE_STAGES = ("extract", "synthesize", "render", "check", "review")

PROFILES = ("dev", "user", "audit", "all")

COMPOSITE_STAGES: dict[str, tuple[tuple[str, str], ...]] = {
    "dev": (("extract", ""), ("synthesize", "dev"), ("render", ""), ("check", "")),
    "user": (("extract", ""), ("synthesize", "user"), ("render", ""), ("check", "")),
    "audit": (("extract", ""), ("synthesize", "audit"), ("render", ""), ("check", "")),
    "all": (
        ("extract", ""),
        ("synthesize", "dev"),
        ("synthesize", "user"),
        ("synthesize", "audit"),
        ("render", ""),
        ("check", ""),
    ),
}

STAGES = PRIMITIVE_STAGES + tuple(COMPOSITE_STAGES)

RESUMABLE_STAGES = ("extract", "synthesize", "render")

GATES = (
    "schema",
    "coverage",
    "traceability",
    "evidence",
    "build",
    "rbac",
    "compliance",
)

FACT_FILES: dict[str, str] = {
    "api-map": "api-map.json",
    "use-cases": "use-cases.json",
    "coverage-matrix": "coverage-matrix.json",
    "rbac": "rbac.json",
    "lgpd-map": "lgpd-map.json",
    "fp-appendix": "fp-appendix.json",
    "stack-profile": "stack-profile.json",
    "dep-graph": "dep-graph.json",
    "db-model": "db-model.json",
    "reviews": "reviews.json",
}

ROUTE_FRAMEWORKS = (
    "angular",
    "angularjs",
    "react",
    "nextjs",
    "remix",
    "vue",
    "blade",
)

EVIDENCE_LEDGER = "evidence.jsonl"
USAGE_LEDGER = "usage.jsonl"
RUN_LOG = "run.log"

DDL_FILE = "database.sql"
ERD_FILE = "erd.mmd"

NARRATIVE_DOCUMENTS: dict[str, tuple[str, ...]] = {
    "dev": (
        "Overview.md",
        "Software Stack.md",
        "Architecture Guide.md",
        "Database Reference.md",
        "API Map.md",
        "Frontend Routes Map.md",
        "Development Styleguide.md",
        "Test Strategy.md",
        "Build, CI & Deploy Guide.md",
    ),
    "user": (
        "User Guide.md",
        "Use Cases.md",
        "Feature Catalog.md",
        "Troubleshooting Guide.md",
        "Glossary.md",
    ),
    "audit": (
        "Function Point Report.md",
        "RBAC Matrix.md",
        "Security Threat Model.md",
        "Observability Guide.md",
        "Runbooks.md",
        "Disaster Recovery.md",
        "Compliance (LGPD).md",
        "Integration Catalog.md",
        "Configuration Reference.md",
    ),
}

REVIEW_INPUTS: dict[str, tuple[str, ...]] = {
    "architecture": ("Architecture Guide.md", "Overview.md", "api-map", "coverage-matrix"),
    "qa": ("Test Strategy.md", "Function Point Report.md", "coverage-matrix"),
    "ops": ("Build, CI & Deploy Guide.md", "Architecture Guide.md"),
    "security": ("Architecture Guide.md", "api-map", "rbac", "lgpd-map"),
    "docs": ("Overview.md", "User Guide.md", "Use Cases.md"),
}

DEFAULT_POSTGRES_IMAGE = "postgres:16-alpine"
DEFAULT_READY_TIMEOUT_SECONDS = 20.0
