"""Coverage & traceability matrix: routes x endpoints x use cases."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable

from .framework import read_json, utc_now

if TYPE_CHECKING:
    from .artifacts import ArtifactStore

SCHEMA_VERSION = "1.0"


@dataclass
class FactSources:
    """Fact documents the builder joins; any of them may be absent."""

    api_map: dict[str, Any] | None = None
    routes: dict[str, dict[str, Any]] = field(default_factory=dict)
    use_cases: dict[str, Any] | None = None
    extra_routes: list[dict[str, Any]] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return (
            self.api_map is None
            and not self.routes
            and self.use_cases is None
            and not self.extra_routes
        )

    def route_documents(self) -> list[dict[str, Any]]:
        return [*self.routes.values(), *self.extra_routes]


@dataclass(frozen=True)
class CoverageLink:
    route_id: str
    endpoint_id: str
    use_case_id: str

    def to_dict(self) -> dict[str, str]:
        return {
            "routeId": self.route_id,
            "endpointId": self.endpoint_id,
            "useCaseId": self.use_case_id,
        }


@dataclass
class CoverageMatrix:
    routes: list[str]
    endpoints: list[str]
    use_cases: list[dict[str, str]]
    links: list[CoverageLink]
    unmapped_routes: list[str]
    unmapped_endpoints: list[str]
    generated_at: str = field(default_factory=utc_now)

    @property
    def stats(self) -> dict[str, int]:
        return {
            "routeCount": len(self.routes),
            "endpointCount": len(self.endpoints),
            "useCaseCount": len(self.use_cases),
            "linkCount": len(self.links),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": SCHEMA_VERSION,
            "generatedAt": self.generated_at,
            "routes": list(self.routes),
            "endpoints": list(self.endpoints),
            "useCases": [dict(item) for item in self.use_cases],
            "links": [link.to_dict() for link in self.links],
            "unmapped": {
                "routes": list(self.unmapped_routes),
                "endpoints": list(self.unmapped_endpoints),
            },
            "stats": self.stats,
        }


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _add_unique(target: list[str], seen: set[str], value: str) -> None:
    if value and value not in seen:
        seen.add(value)
        target.append(value)


def endpoint_id(endpoint: dict[str, Any]) -> str:
    explicit = endpoint.get("id")
    if isinstance(explicit, str) and explicit:
        return explicit
    return f"{endpoint.get('method') or ''} {endpoint.get('path') or ''}".strip()


def route_id(route: dict[str, Any]) -> str:
    explicit = route.get("id")
    if isinstance(explicit, str) and explicit:
        return explicit
    path = route.get("path")
    return str(path) if path is not None else ""


def collect_use_case_refs(use_case: dict[str, Any]) -> tuple[list[str], list[str]]:
    """Route and endpoint ids referenced anywhere in a use case.

    Walks the top-level refs, every main-flow step, and every step of every
    alternate flow. First-seen order is kept.
    """
    route_ids: list[str] = []
    endpoint_ids: list[str] = []
    seen_routes: set[str] = set()
    seen_endpoints: set[str] = set()

    def _add(refs: Any) -> None:
        if not isinstance(refs, dict):
            return
        for value in _list(refs.get("routeIds")):
            if isinstance(value, str):
                _add_unique(route_ids, seen_routes, value)
        for value in _list(refs.get("endpointIds")):
            if isinstance(value, str):
                _add_unique(endpoint_ids, seen_endpoints, value)

    _add(use_case.get("refs"))
    for step in _list(use_case.get("mainFlow")):
        if isinstance(step, dict):
            _add(step.get("refs"))
    for flow in _list(use_case.get("alternateFlows")):
        if not isinstance(flow, dict):
            continue
        for step in _list(flow.get("steps")):
            if isinstance(step, dict):
                _add(step.get("refs"))
    return route_ids, endpoint_ids


def build_coverage_matrix(sources: FactSources) -> CoverageMatrix:
    endpoints: list[str] = []
    seen_endpoints: set[str] = set()
    if sources.api_map is not None:
        for endpoint in _list(sources.api_map.get("endpoints")):
            if isinstance(endpoint, dict):
                _add_unique(endpoints, seen_endpoints, endpoint_id(endpoint))

    routes: list[str] = []
    seen_routes: set[str] = set()
    for document in sources.route_documents():
        for route in _list(document.get("routes")):
            if isinstance(route, dict):
                _add_unique(routes, seen_routes, route_id(route))

    use_cases: list[dict[str, str]] = []
    links: list[CoverageLink] = []
    if sources.use_cases is not None:
        for case in _list(sources.use_cases.get("cases")):
            if not isinstance(case, dict):
                continue
            case_id = case.get("id")
            if not isinstance(case_id, str) or not case_id:
                continue
            summary = {"id": case_id}
            if isinstance(case.get("title"), str):
                summary["title"] = case["title"]
            use_cases.append(summary)

            case_routes, case_endpoints = collect_use_case_refs(case)
            # every referenced route is joined with every referenced endpoint
            for rid in case_routes:
                for eid in case_endpoints:
                    links.append(CoverageLink(route_id=rid, endpoint_id=eid, use_case_id=case_id))

    linked_routes = {link.route_id for link in links}
    linked_endpoints = {link.endpoint_id for link in links}
    return CoverageMatrix(
        routes=routes,
        endpoints=endpoints,
        use_cases=use_cases,
        links=links,
        unmapped_routes=[rid for rid in routes if rid not in linked_routes],
        unmapped_endpoints=[eid for eid in endpoints if eid not in linked_endpoints],
    )


def _read_optional(path: Path) -> dict[str, Any] | None:
    if not path.is_file():
        return None
    payload = read_json(path)
    if not isinstance(payload, dict):
        raise ValueError(f"fact artifact root must be an object: {path}")
    return payload


def load_fact_sources(store: "ArtifactStore", extra_route_paths: Iterable[Path] = ()) -> FactSources:
    sources = FactSources(
        api_map=_read_optional(store.fact_path("api-map")),
        use_cases=_read_optional(store.fact_path("use-cases")),
    )
    for framework, path in store.route_artifacts().items():
        document = _read_optional(path)
        if document is not None:
            sources.routes[framework] = document
    for path in extra_route_paths:
        document = _read_optional(path)
        if document is not None:
            sources.extra_routes.append(document)
    return sources


def write_coverage_matrix(store: "ArtifactStore", matrix: CoverageMatrix) -> Path:
    return store.write_fact("coverage-matrix", matrix.to_dict())
