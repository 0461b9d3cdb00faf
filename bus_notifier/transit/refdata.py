"""Static transit reference data: valid services and the stops they serve.

Loaded once at startup from a YAML document::

    services: ["157", "506"]
    routes:
      "157": ["43411", "43419"]
    stops:
      "43411": "Opp Blk 123"
"""
from collections.abc import Iterable, Mapping
from pathlib import Path

import yaml
from loguru import logger

logger = logger.bind(module="transit.refdata")


class ReferenceData:
    """Route allow-list and route -> stops lookup."""

    def __init__(
        self,
        services: Iterable[str],
        routes: Mapping[str, Iterable[str]] | None = None,
        stops: Mapping[str, str] | None = None,
    ):
        self._services = {str(s).strip().upper(): str(s).strip() for s in services}
        self._routes: dict[str, set[str]] = {
            str(service).strip().upper(): {str(stop).strip() for stop in stop_codes}
            for service, stop_codes in (routes or {}).items()
        }
        self._stops = {str(code).strip(): str(desc) for code, desc in (stops or {}).items()}

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ReferenceData":
        path = Path(path).expanduser()
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        routes = data.get("routes") or {}
        # Services with a route but no explicit allow-list entry are still valid
        services = list(data.get("services") or []) + list(routes.keys())
        refdata = cls(services=services, routes=routes, stops=data.get("stops") or {})
        logger.info(
            f"Loaded reference data from {path}: {len(refdata._services)} services, "
            f"{len(refdata._stops)} stops"
        )
        return refdata

    def canonical_service(self, text: str) -> str | None:
        """Canonical service id for user input, or None if not a known service."""
        return self._services.get((text or "").strip().upper())

    def serves(self, service_id: str, stop_id: str) -> bool:
        """Whether ``service_id`` calls at ``stop_id`` in either direction."""
        return (stop_id or "").strip() in self._routes.get(service_id.strip().upper(), set())

    def stop_description(self, stop_id: str) -> str:
        """Human-readable stop name, falling back to the code itself."""
        return self._stops.get(stop_id, stop_id)
