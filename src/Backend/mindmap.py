from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field as dc_field
from typing import Any

import numpy as np

from hierarchy import (
	chain_key, field, item_key, resolve_label, resolve_parent,
)

"""
Mind-map layout engine
----------------------
Three columns: level-1 labels → level-2 labels → topics ("stacks").

  1. Topics get one row each, in (level-2 item, level-1 item, own item)
     order, at y = i * row_pitch.
  2. A level-2 label sits on the row of its first topic; a childless one is
     appended below everything placed so far.
  3. A level-1 label sits on the row of its first level-2 child; a childless
     one is appended the same way.

So every parent is aligned with its first child.  The engine only produces
positions and edge descriptors; pixels are the template's business.

An empty level-1 list yields EmptyResult, never a zero-row layout.
"""

log = logging.getLogger(__name__)

ROW_PITCH = 120

L1_PREFIX = "node-l1-"
L2_PREFIX = "node-l2-"
TOPIC_PREFIX = "stack-"

# Column geometry used by the SVG connectors (px).
COLUMN_X: tuple[int, int, int] = (0, 340, 680)
NODE_WIDTH = 260
NODE_HEIGHT = 96


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class Edge:
	source: str
	target: str
	kind: str             # "l1-l2" or "l2-stack"

	def as_tuple(self) -> tuple[str, str]:
		return self.source, self.target


@dataclass(slots=True, frozen=True)
class EmptyResult:
	"""No level-1 labels at all; rendered as an empty state, not an error."""
	reason: str = "No level 1 labels found"

	def to_dict(self) -> dict[str, Any]:
		return {"empty": True, "reason": self.reason}


@dataclass(slots=True)
class MindMapLayout:
	level1: list[Any]
	level2: list[Any]
	topics: list[Any]
	positions: dict[str, int]
	edges: list[Edge]
	total_height: int
	row_pitch: int = ROW_PITCH
	node_ids: dict[int, str] = dc_field(default_factory=dict)   # id(row) → DOM id

	def node_id(self, node: Any) -> str:
		return self.node_ids[id(node)]

	def position(self, node: Any) -> int:
		return self.positions[self.node_id(node)]

	def children(self, node_id: str) -> list[str]:
		return [e.target for e in self.edges if e.source == node_id]

	def parent(self, node_id: str) -> str | None:
		for e in self.edges:
			if e.target == node_id:
				return e.source
		return None

	def to_dict(self) -> dict[str, Any]:
		return {
			"empty": False,
			"positions": dict(self.positions),
			"edges": [{"from": e.source, "to": e.target, "type": e.kind} for e in self.edges],
			"totalHeight": self.total_height,
			"columns": {
				"level1": [self.node_id(n) for n in self.level1],
				"level2": [self.node_id(n) for n in self.level2],
				"topics": [self.node_id(n) for n in self.topics],
			},
		}


def _dom_id(prefix: str, node: Any, idx: int) -> str:
	node_id = field(node, "id")
	return f"{prefix}{node_id if node_id is not None else idx}"


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------
def compute_layout(
	level1_labels: Sequence[Any],
	level2_labels: Sequence[Any],
	topics: Sequence[Any],
	row_pitch: int = ROW_PITCH,
) -> MindMapLayout | EmptyResult:
	"""Positions + deduplicated parent→child edges for the three columns."""
	if not level1_labels:
		return EmptyResult()

	H = row_pitch
	level1 = sorted(level1_labels, key=item_key)

	# level-2 → level-1 ancestor, resolved against the sorted level-1 list
	l2_parent = {id(n): resolve_parent(n, level1) for n in level2_labels}
	level2 = sorted(level2_labels, key=lambda n: chain_key(l2_parent[id(n)], n))

	# topic → level-2 label → level-1 ancestor
	t_l2 = {id(t): resolve_label(t, level2) for t in topics}

	def _topic_key(t: Any):
		l2 = t_l2[id(t)]
		l1 = l2_parent[id(l2)] if l2 is not None else None
		return chain_key(l2, l1, t)

	ordered_topics = sorted(topics, key=_topic_key)

	node_ids: dict[int, str] = {}
	for i, n in enumerate(level1):
		node_ids[id(n)] = _dom_id(L1_PREFIX, n, i)
	for i, n in enumerate(level2):
		node_ids[id(n)] = _dom_id(L2_PREFIX, n, i)
	for i, t in enumerate(ordered_topics):
		node_ids[id(t)] = _dom_id(TOPIC_PREFIX, t, i)

	positions: dict[str, int] = {}

	# ── column 3: topics drive everything ───────────────────────────
	for i, t in enumerate(ordered_topics):
		positions.setdefault(node_ids[id(t)], i * H)
	cursor = len(ordered_topics) * H

	# ── column 2: align with first topic ────────────────────────────
	for n in level2:
		first = next((t for t in ordered_topics if t_l2[id(t)] is n), None)
		if first is not None:
			positions.setdefault(node_ids[id(n)], positions[node_ids[id(first)]])
		elif node_ids[id(n)] not in positions:
			positions[node_ids[id(n)]] = cursor
			cursor += H

	# ── column 1: align with first level-2 child ────────────────────
	for n in level1:
		first = next((c for c in level2 if l2_parent[id(c)] is n), None)
		if first is not None:
			positions.setdefault(node_ids[id(n)], positions[node_ids[id(first)]])
		elif node_ids[id(n)] not in positions:
			positions[node_ids[id(n)]] = cursor
			cursor += H

	# ── edges (deduplicated, first occurrence order) ────────────────
	edges: list[Edge] = []
	seen: set[tuple[str, str]] = set()

	def _add(src: str, dst: str, kind: str) -> None:
		if (src, dst) not in seen:
			seen.add((src, dst))
			edges.append(Edge(src, dst, kind))

	for n in level2:
		parent = l2_parent[id(n)]
		if parent is not None:
			_add(node_ids[id(parent)], node_ids[id(n)], "l1-l2")
	for t in ordered_topics:
		parent = t_l2[id(t)]
		if parent is not None:
			_add(node_ids[id(parent)], node_ids[id(t)], "l2-stack")

	total_height = max(positions.values()) + H

	log.info(
		"mindmap  connections=%d  l1-l2=%d  l2-stack=%d",
		len(edges),
		sum(1 for e in edges if e.kind == "l1-l2"),
		sum(1 for e in edges if e.kind == "l2-stack"),
	)

	return MindMapLayout(
		level1=level1,
		level2=level2,
		topics=ordered_topics,
		positions=positions,
		edges=edges,
		total_height=total_height,
		row_pitch=H,
		node_ids=node_ids,
	)


# ---------------------------------------------------------------------------
# Progress roll-up
# ---------------------------------------------------------------------------
def progress_by_topic(topic_progress: Sequence[Mapping[str, Any]]) -> dict[str, float]:
	"""``topic_id`` (as str) → percent; a null percent counts as 0."""
	out: dict[str, float] = {}
	for row in topic_progress or []:
		tid = field(row, "topic_id")
		if tid is None:
			continue
		out[str(tid)] = float(field(row, "progress_percent", 0) or 0)
	return out


def node_progress(
	layout: MindMapLayout,
	topic_progress: Sequence[Mapping[str, Any]],
) -> dict[str, int]:
	"""
	Percent complete for every node in the layout.

	Topics read their own row; a label is the mean over the topics beneath it
	(level-1 averages all topics of its level-2 children).  Labels without
	topics show 0.
	"""
	by_topic = progress_by_topic(topic_progress)
	values: dict[str, float] = {}
	for t in layout.topics:
		tid = field(t, "id")
		values[layout.node_id(t)] = by_topic.get(str(tid), 0.0) if tid is not None else 0.0

	def _mean(ids: list[str]) -> float:
		if not ids:
			return 0.0
		return float(np.mean(np.fromiter((values[i] for i in ids), dtype=np.float64, count=len(ids))))

	out: dict[str, int] = {k: int(round(v)) for k, v in values.items()}
	for n in layout.level2:
		nid = layout.node_id(n)
		out[nid] = int(round(_mean(layout.children(nid))))
	for n in layout.level1:
		nid = layout.node_id(n)
		topic_ids = [tid for child in layout.children(nid) for tid in layout.children(child)]
		out[nid] = int(round(_mean(topic_ids)))
	return out


# ---------------------------------------------------------------------------
# Connector geometry (consumed by templates/data.html)
# ---------------------------------------------------------------------------
_COLUMN_OF = {L1_PREFIX: 0, L2_PREFIX: 1, TOPIC_PREFIX: 2}


def _column(node_id: str) -> int:
	for prefix, col in _COLUMN_OF.items():
		if node_id.startswith(prefix):
			return col
	raise ValueError(f"unknown node id {node_id!r}")


def connector_path(layout: MindMapLayout, edge: Edge) -> str:
	"""Cubic SVG path from the right edge of *source* to the left edge of *target*."""
	x1 = COLUMN_X[_column(edge.source)] + NODE_WIDTH
	x2 = COLUMN_X[_column(edge.target)]
	y1 = layout.positions[edge.source] + NODE_HEIGHT // 2
	y2 = layout.positions[edge.target] + NODE_HEIGHT // 2
	mid = (x1 + x2) // 2
	return f"M {x1},{y1} C {mid},{y1} {mid},{y2} {x2},{y2}"


def display_name(node: Any, fallback: str = "Unnamed", keys: tuple[str, ...] = ("name", "topic", "title")) -> str:
	for key in keys:
		value = field(node, key)
		if value:
			return str(value)
	return fallback


def topic_name(topic: Any) -> str:
	return display_name(topic, "Unnamed Stack", ("topic", "name", "title"))


def column_views(
	layout: MindMapLayout,
	topic_progress: Sequence[Mapping[str, Any]] = (),
) -> dict[str, Any]:
	"""Template-ready dicts for the three columns plus connector paths."""
	progress = node_progress(layout, topic_progress)

	def _view(node: Any, name: str) -> dict[str, Any]:
		nid = layout.node_id(node)
		return {
			"dom_id": nid,
			"id": field(node, "id"),
			"name": name,
			"description": field(node, "description", ""),
			"top": layout.positions[nid],
			"progress": progress.get(nid, 0),
		}

	return {
		"level1": [_view(n, display_name(n)) for n in layout.level1],
		"level2": [_view(n, display_name(n)) for n in layout.level2],
		"topics": [_view(t, topic_name(t)) for t in layout.topics],
		"connectors": [
			{"source": e.source, "target": e.target, "kind": e.kind, "d": connector_path(layout, e)}
			for e in layout.edges
		],
		"height": layout.total_height,
	}
