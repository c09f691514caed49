from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from errors import NotFound
from hierarchy import (
	field, id_equals, item_key, parent_ref, parse_int, resolve_label, sort_by_item,
)
from mindmap import topic_name

"""
Topic sequencer
---------------
Decides which topic the Learn page offers after a quiz is finished.

  1. siblings = topics whose label shares the current label's parent
     reference; the first one after the current topic whose item is strictly
     greater wins
  2. otherwise move to the next level-2 label (strictly greater item) under
     the same parent and return its lowest-id topic
  3. otherwise the course is finished → None

Ids are compared with id_equals() throughout, so "12" and 12 are the same
topic.
"""

log = logging.getLogger(__name__)


def topic_label(topic: Any, level2_labels: Sequence[Any]) -> Any:
	"""The joined label row of *topic*, falling back to a lookup by label_id."""
	for key in ("label", "labels"):
		value = field(topic, key)
		if isinstance(value, Mapping):
			return value
	return resolve_label(topic, level2_labels)


def _id_key(topic: Any) -> tuple[int, int, str]:
	tid = field(topic, "id")
	as_int = parse_int(tid)
	if as_int is not None and str(as_int) == str(tid).strip():
		return 0, as_int, ""
	return 1, 0, "" if tid is None else str(tid)


def _sibling_topics(
	label: Any,
	all_topics: Sequence[Any],
	level2_labels: Sequence[Any],
) -> list[Any]:
	ref = parent_ref(label)
	out = []
	for t in all_topics:
		other = topic_label(t, level2_labels)
		if other is None:
			continue
		if ref is None:
			# orphan label: only its own topics are siblings
			if id_equals(field(other, "id"), field(label, "id")):
				out.append(t)
		elif id_equals(parent_ref(other), ref):
			out.append(t)
	return out


def topics_under(label: Any, all_topics: Sequence[Any], level2_labels: Sequence[Any]) -> list[Any]:
	"""Topics of *label*, lowest id first."""
	label_id = field(label, "id")
	found = []
	for t in all_topics:
		lbl = topic_label(t, level2_labels)
		if lbl is not None and id_equals(field(lbl, "id"), label_id):
			found.append(t)
	return sorted(found, key=_id_key)


def next_topic(
	current_topic_id: Any,
	all_topics: Sequence[Any],
	level2_labels: Sequence[Any],
) -> Any:
	"""
	Next topic to present after *current_topic_id*, or None at end of course.

	Raises NotFound when the current topic or its label cannot be resolved.
	"""
	current = next((t for t in all_topics if id_equals(field(t, "id"), current_topic_id)), None)
	if current is None:
		raise NotFound(f"topic {current_topic_id!r} not found")
	label = topic_label(current, level2_labels)
	if label is None:
		raise NotFound(f"label for topic {current_topic_id!r} not found")

	# ── 1. next sibling by item ─────────────────────────────────────
	siblings = sort_by_item(_sibling_topics(label, all_topics, level2_labels))
	idx = next((i for i, t in enumerate(siblings) if t is current), -1)
	current_key = item_key(current)
	for t in siblings[idx + 1:]:
		if item_key(t) > current_key:
			log.info("next-topic  current=%r  next=%r  via=sibling", current_topic_id, field(t, "id"))
			return t

	# ── 2. first topic of the next level-2 label ────────────────────
	ref = parent_ref(label)
	if ref is not None:
		pool = sort_by_item(lbl for lbl in level2_labels if id_equals(parent_ref(lbl), ref))
		label_key = item_key(label)
		for candidate in pool:
			if id_equals(field(candidate, "id"), field(label, "id")):
				continue
			if item_key(candidate) <= label_key:
				continue
			# an empty label is passed over rather than ending the course
			topics = topics_under(candidate, all_topics, level2_labels)
			if topics:
				log.info(
					"next-topic  current=%r  next=%r  via=label %r",
					current_topic_id, field(topics[0], "id"), field(candidate, "id"),
				)
				return topics[0]

	log.info("next-topic  current=%r  next=None  (end of course)", current_topic_id)
	return None


def next_topic_summary(topic: Any) -> dict[str, Any]:
	"""What the completion screen needs: ``{nextTopicId, nextTopicName}``."""
	if topic is None:
		return {"nextTopicId": None, "nextTopicName": None}
	return {"nextTopicId": field(topic, "id"), "nextTopicName": topic_name(topic)}
