"""
Relationship Graph — NetworkX knowledge graph of entities and typed relations.

Two tiers: a local ``MultiDiGraph`` that is always authoritative, and an
optional remote backend that is mirrored on a best-effort basis. Writes always
land locally; reads return the local view merged with whatever the remote
answers. An unreachable remote is logged and otherwise invisible to callers.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import httpx
import networkx as nx

from hybrid_memory.collaborators import RemoteGraph, call_with_timeout
from hybrid_memory.exceptions import InvalidInputError, RemoteGraphError
from hybrid_memory.models import Entity, RelatedEntity, Relation

__all__ = ["GraphStore", "HttpGraphClient", "MEMORY_ENTITY_TYPE", "UNKNOWN_ENTITY_TYPE"]

logger = logging.getLogger(__name__)

MEMORY_ENTITY_TYPE = "Memory"
UNKNOWN_ENTITY_TYPE = "unknown"


def _entity_from_dict(data: Dict[str, Any]) -> Entity:
    return Entity(
        name=str(data["name"]),
        entity_type=str(data.get("entityType") or data.get("entity_type") or UNKNOWN_ENTITY_TYPE),
        observations=[str(o) for o in data.get("observations") or []],
    )


class GraphStore:
    """Entity/relation store backed by ``networkx.MultiDiGraph``.

    Args:
        remote: Optional remote backend to mirror writes to and merge reads from.
        remote_timeout: Seconds to wait for any single remote call.
        graph_path: Optional node-link JSON snapshot to load on start-up.
    """

    def __init__(
        self,
        remote: Optional[RemoteGraph] = None,
        remote_timeout: Optional[float] = 3.0,
        graph_path: Optional[str] = None,
    ) -> None:
        self.remote = remote
        self.remote_timeout = remote_timeout
        self.graph_path = os.path.abspath(graph_path) if graph_path else None
        self._lock = threading.Lock()
        self.graph: nx.MultiDiGraph = nx.MultiDiGraph()
        if self.graph_path:
            self.load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self, path: Optional[str] = None) -> None:
        """Load graph from JSON (node-link format). A missing file is ignored."""
        path = path or self.graph_path
        if not path or not os.path.exists(path):
            return
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        # NetworkX 3.4+ changed node_link_graph API
        try:
            graph = nx.node_link_graph(data, directed=True, multigraph=True, edges="links")
        except TypeError:
            graph = nx.node_link_graph(data, directed=True, multigraph=True)
        with self._lock:
            self.graph = graph

    def save(self, path: Optional[str] = None) -> None:
        """Persist graph to JSON."""
        path = path or self.graph_path
        if not path:
            raise InvalidInputError("no graph path configured")
        with self._lock:
            try:
                data = nx.node_link_data(self.graph, edges="links")
            except TypeError:
                data = nx.node_link_data(self.graph)
        os.makedirs(os.path.dirname(os.path.abspath(path)) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)

    # ------------------------------------------------------------------
    # Remote tier
    # ------------------------------------------------------------------

    def _remote_call(self, method: str, *args: Any) -> Any:
        if self.remote is None:
            return None
        try:
            return call_with_timeout(getattr(self.remote, method), self.remote_timeout, *args)
        except Exception as e:
            logger.warning("Remote graph %s failed, using local graph only: %s", method, e)
            return None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _node_entity(self, name: str) -> Entity:
        attrs = self.graph.nodes[name]
        return Entity(
            name=name,
            entity_type=attrs.get("entity_type", UNKNOWN_ENTITY_TYPE),
            observations=list(attrs.get("observations", [])),
        )

    def create_entity(
        self,
        name: str,
        entity_type: str = "concept",
        observations: Iterable[str] = (),
    ) -> Entity:
        """Insert *name*, or overwrite it if it already exists (last write wins).

        Overwriting replaces the type and observations; existing edges stay.
        """
        if not name:
            raise InvalidInputError("entity name must not be empty")
        observations = [str(o) for o in observations]
        with self._lock:
            if name in self.graph:
                attrs = self.graph.nodes[name]
                attrs.clear()
                attrs.update(entity_type=entity_type, observations=observations)
            else:
                self.graph.add_node(name, entity_type=entity_type, observations=observations)
        self._remote_call("create_entity", name, entity_type, list(observations))
        return Entity(name, entity_type, list(observations))

    def create_relation(self, source: str, target: str, relation_type: str = "related_to") -> Relation:
        """Append a directed edge. Duplicates are kept; unknown endpoints become placeholders."""
        if not source or not target:
            raise InvalidInputError("relation endpoints must not be empty")
        if not relation_type:
            raise InvalidInputError("relation_type must not be empty")
        with self._lock:
            for node in (source, target):
                if node not in self.graph:
                    self.graph.add_node(node, entity_type=UNKNOWN_ENTITY_TYPE, observations=[])
            self.graph.add_edge(source, target, relation=relation_type)
        self._remote_call("create_relation", source, target, relation_type)
        return Relation(source, target, relation_type)

    def remove_entity(self, name: str) -> bool:
        with self._lock:
            if name not in self.graph:
                return False
            self.graph.remove_node(name)
            return True

    def replace_entities(self, old_names: Sequence[str], new_name: str) -> int:
        """Re-point every edge touching *old_names* at *new_name*, then drop the old nodes.

        Edges between two of the old nodes disappear with them. Returns the
        number of edges rewritten.
        """
        olds = {n for n in old_names if n != new_name}
        rewritten = 0
        with self._lock:
            if new_name not in self.graph:
                self.graph.add_node(new_name, entity_type=UNKNOWN_ENTITY_TYPE, observations=[])
            for old in olds:
                if old not in self.graph:
                    continue
                for _, target, data in list(self.graph.out_edges(old, data=True)):
                    if target in olds or target == new_name:
                        continue
                    self.graph.add_edge(new_name, target, relation=data.get("relation", "related_to"))
                    rewritten += 1
                for source, _, data in list(self.graph.in_edges(old, data=True)):
                    if source in olds or source == new_name:
                        continue
                    self.graph.add_edge(source, new_name, relation=data.get("relation", "related_to"))
                    rewritten += 1
            self.graph.remove_nodes_from([n for n in olds if n in self.graph])
        return rewritten

    def clear(self) -> None:
        with self._lock:
            self.graph.clear()

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    def get_entity(self, name: str) -> Optional[Entity]:
        with self._lock:
            if name not in self.graph:
                return None
            return self._node_entity(name)

    def related_entities(self, name: str, relation_type: Optional[str] = None) -> List[RelatedEntity]:
        """Entities connected to *name* in either direction, outbound edges first."""
        related: List[RelatedEntity] = []
        with self._lock:
            if name in self.graph:
                for _, nb, data in self.graph.out_edges(name, data=True):
                    rel = data.get("relation", "related_to")
                    if relation_type is None or rel == relation_type:
                        related.append(RelatedEntity(self._node_entity(nb), rel, "outbound"))
                for nb, _, data in self.graph.in_edges(name, data=True):
                    rel = data.get("relation", "related_to")
                    if relation_type is None or rel == relation_type:
                        related.append(RelatedEntity(self._node_entity(nb), rel, "inbound"))

        remote_rows = self._remote_call("related_entities", name, relation_type)
        if remote_rows:
            seen: Set[Tuple[str, str, str]] = {(r.name, r.relation_type, r.direction) for r in related}
            for row in remote_rows:
                try:
                    rel = str(row.get("relationType") or row.get("relation_type") or "related_to")
                    direction = "inbound" if row.get("direction") in ("in", "inbound") else "outbound"
                    entity = _entity_from_dict(row)
                except (KeyError, AttributeError, TypeError) as e:
                    logger.warning("Ignoring malformed remote relation row %r: %s", row, e)
                    continue
                if relation_type is not None and rel != relation_type:
                    continue
                if (entity.name, rel, direction) in seen:
                    continue
                seen.add((entity.name, rel, direction))
                related.append(RelatedEntity(entity, rel, direction))
        return related

    def search(self, query: str) -> List[Entity]:
        """Entities whose name or any observation contains *query* (case-insensitive)."""
        needle = query.lower()
        with self._lock:
            results = [
                self._node_entity(n)
                for n, attrs in self.graph.nodes(data=True)
                if needle in str(n).lower()
                or any(needle in o.lower() for o in attrs.get("observations", []))
            ]

        remote_rows = self._remote_call("search", query)
        if remote_rows:
            names = {e.name for e in results}
            for row in remote_rows:
                try:
                    entity = _entity_from_dict(row)
                except (KeyError, AttributeError, TypeError) as e:
                    logger.warning("Ignoring malformed remote entity %r: %s", row, e)
                    continue
                if entity.name not in names:
                    names.add(entity.name)
                    results.append(entity)
        return results

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"nodes": self.graph.number_of_nodes(), "edges": self.graph.number_of_edges()}


class HttpGraphClient:
    """:class:`RemoteGraph` adapter for a knowledge-graph server speaking JSON over HTTP."""

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        timeout: float = 3.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RemoteGraphError(f"{method} {path} failed: {e}") from e
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteGraphError(f"{method} {path} returned invalid JSON") from e

    def is_available(self) -> bool:
        try:
            return self._client.get("/status").status_code == 200
        except httpx.HTTPError:
            return False

    def create_entity(self, name: str, entity_type: str, observations: Sequence[str]) -> None:
        payload = {"entities": [{"name": name, "entityType": entity_type, "observations": list(observations)}]}
        self._request("POST", "/entities", json=payload)

    def create_relation(self, source: str, target: str, relation_type: str) -> None:
        payload = {"relations": [{"from": source, "to": target, "relationType": relation_type}]}
        self._request("POST", "/relations", json=payload)

    def related_entities(self, name: str, relation_type: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"query": name}
        if relation_type:
            params["relationType"] = relation_type
        data = self._request("GET", "/graph", params=params) or {}
        return list(data.get("related", [])) if isinstance(data, dict) else list(data)

    def search(self, query: str) -> List[Dict[str, Any]]:
        data = self._request("GET", "/search", params={"query": query}) or {}
        return list(data.get("entities", [])) if isinstance(data, dict) else list(data)

    def close(self) -> None:
        self._client.close()
