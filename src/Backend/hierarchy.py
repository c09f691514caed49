from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Callable

from pyuca import Collator

"""
Label hierarchy helpers
-----------------------
Rows come straight out of Supabase as dicts, and the label table has been
edited by several tools over time, so the parent reference of a level-2
label can live under any of six column names and hold either the parent's
numeric id or its name.

  • PARENT_FIELDS is the priority-ordered selector table for that reference
  • MATCH_RULES is the ordered table of ways a reference can hit a candidate
  • id_equals() is the single place where mixed int/str ids are compared
  • item_key() / compare() give the sibling order used by the mind map and
    the topic sequencer (Unicode collation, case-insensitive, stable on ties)

Everything here is pure; nothing mutates the rows it is handed.
"""


# ---------------------------------------------------------------------------
# Field access (works on dict rows and on plain objects)
# ---------------------------------------------------------------------------
def field(node: Any, name: str, default: Any = None) -> Any:
	if node is None:
		return default
	if isinstance(node, Mapping):
		value = node.get(name, default)
	else:
		value = getattr(node, name, default)
	return default if value is None else value


def id_equals(a: Any, b: Any) -> bool:
	"""Equality first, then string-form fallback (``2 == "2"``)."""
	if _strict_eq(a, b):
		return True
	if a is None or b is None:
		return False
	return str(a) == str(b)


def _strict_eq(a: Any, b: Any) -> bool:
	# True == 1 in Python; a boolean is never an identifier here.
	if isinstance(a, bool) or isinstance(b, bool):
		return a is b
	return a == b


_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int(value: Any) -> int | None:
	"""Leading-integer parse: ``"12"`` → 12, ``" 7b"`` → 7, ``"x"`` → None."""
	if isinstance(value, bool) or value is None:
		return None
	if isinstance(value, int):
		return value
	if isinstance(value, float):
		return int(value) if value == value and abs(value) != float("inf") else None
	m = _LEADING_INT.match(str(value))
	return int(m.group(1)) if m else None


# ---------------------------------------------------------------------------
# Hierarchy Resolver
# ---------------------------------------------------------------------------
# Priority order matters: only the first non-null alias is consulted.
PARENT_FIELDS: tuple[str, ...] = (
	"parent_node",
	"parent_node_id",
	"parent_id",
	"parent",
	"parent_label_id",
	"parent_label",
)

# Topics point at their label by id; joined rows may carry the label object.
LABEL_FIELDS: tuple[str, ...] = ("label_id", "label", "labels")


def _candidate_name(candidate: Any) -> Any:
	return field(candidate, "name")


MATCH_RULES: tuple[tuple[str, Callable[[Any, Any], bool]], ...] = (
	("id", lambda ref, c: _strict_eq(ref, field(c, "id"))),
	("int-id", lambda ref, c: parse_int(ref) is not None and _strict_eq(parse_int(ref), field(c, "id"))),
	("str-id", lambda ref, c: field(c, "id") is not None and str(ref) == str(field(c, "id"))),
	("name", lambda ref, c: _candidate_name(c) is not None and _strict_eq(ref, _candidate_name(c))),
	("str-name", lambda ref, c: _candidate_name(c) is not None and str(ref) == _candidate_name(c)),
)

# A topic's label_id hits a label by id or by name only; no leading-int parse.
LABEL_MATCH_RULES = tuple(r for r in MATCH_RULES if r[0] in ("id", "str-id", "name"))


def parent_ref(node: Any) -> Any:
	"""The raw parent reference of *node*, or None when no alias is set."""
	for name in PARENT_FIELDS:
		value = field(node, name)
		if value is not None:
			return value
	return None


def parent_field(node: Any) -> str | None:
	"""Which alias carries the parent reference (for diagnostics)."""
	for name in PARENT_FIELDS:
		if field(node, name) is not None:
			return name
	return None


def label_ref(topic: Any) -> Any:
	"""The label reference of a topic row (id, or the id of a joined label)."""
	for name in LABEL_FIELDS:
		value = field(topic, name)
		if value is None:
			continue
		if isinstance(value, Mapping):
			value = value.get("id")
			if value is None:
				continue
		return value
	return None


def match_rule(ref: Any, candidate: Any, rules=MATCH_RULES) -> str | None:
	"""Name of the first rule under which *ref* points at *candidate*."""
	if ref is None:
		return None
	for name, rule in rules:
		if rule(ref, candidate):
			return name
	return None


def find_by_ref(ref: Any, candidates: Iterable[Any], rules=MATCH_RULES) -> Any:
	"""First candidate (in the given order) that *ref* matches under any rule."""
	if ref is None:
		return None
	for candidate in candidates:
		if match_rule(ref, candidate, rules) is not None:
			return candidate
	return None


def resolve_parent(node: Any, candidate_parents: Iterable[Any]) -> Any:
	"""
	Parent label of *node* among *candidate_parents*, or None for an orphan.

	An orphan is a valid state: it renders without an incoming edge.
	"""
	return find_by_ref(parent_ref(node), candidate_parents)


def resolve_label(topic: Any, candidate_labels: Iterable[Any]) -> Any:
	"""Label (normally level-2) a topic hangs under, or None."""
	return find_by_ref(label_ref(topic), candidate_labels, LABEL_MATCH_RULES)


# ---------------------------------------------------------------------------
# Sibling Orderer
# ---------------------------------------------------------------------------
def item_text(node: Any) -> str:
	value = field(node, "item")
	return "" if value is None else str(value)


_COLLATOR = Collator()


def item_key(node: Any) -> tuple[tuple[int, ...], str]:
	"""
	Dictionary-order sort key for the free-text ``item`` code.

	Primary: the Unicode Collation Algorithm key of the lower-cased text, so
	punctuation sorts before digits before letters and ``"é"`` sits between
	``"e"`` and ``"f"``.  Secondary: the lower-cased text itself, so distinct
	spellings never tie.  No numeric collation: ``"10"`` sorts before ``"2"``.
	"""
	text = item_text(node).lower()
	return tuple(_COLLATOR.sort_key(text)), text


def compare(a: Any, b: Any) -> int:
	"""-1 / 0 / 1 by item; missing items compare as the empty string."""
	ka, kb = item_key(a), item_key(b)
	return (ka > kb) - (ka < kb)


def sort_by_item(nodes: Iterable[Any]) -> list[Any]:
	"""Stable sort by item; equal items keep their input order."""
	return sorted(nodes, key=item_key)


def chain_key(*nodes: Any) -> tuple[tuple[tuple[int, ...], str], ...]:
	"""Composite key over several nodes' items (None counts as empty)."""
	return tuple(item_key(n) for n in nodes)


def index_of(nodes: Sequence[Any], node_id: Any) -> int:
	"""Position of the node whose id matches *node_id*, or -1."""
	for i, n in enumerate(nodes):
		if id_equals(field(n, "id"), node_id):
			return i
	return -1
