"""
workwear_engines.categories -- Category alias resolution.

Responsibility:
    Map a product's category label onto the set of labels that refer to
    the same entitlement bucket.  Catalogue labels and entitlement keys
    drift ("Trousers" vs "pant", "Accessories" vs "belt"), so every
    entitlement comparison goes through ``resolve_aliases``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - The input category (normalised) is always in its own alias set.
    - Synonyms are symmetric: ``b in resolve_aliases(a)`` implies
      ``a in resolve_aliases(b)`` for every synonym pair.
    - Resolution is total; an empty or unknown label resolves to a set
      containing just itself.
"""

from __future__ import annotations

from collections.abc import Iterable

from workwear_kernel.domain.entitlement import normalize_category

# Known synonym pairs.  Each entry is symmetric once expanded below.
_SYNONYM_PAIRS: tuple[tuple[str, str], ...] = (
    ("belt", "accessory"),
    ("belt", "accessories"),
    ("pant", "trouser"),
    ("jacket", "blazer"),
)

# Plural spellings the catalogue and legacy ledgers use interchangeably.
_PLURAL_PAIRS: tuple[tuple[str, str], ...] = (
    ("shirt", "shirts"),
    ("pant", "pants"),
    ("trouser", "trousers"),
    ("shoe", "shoes"),
    ("jacket", "jackets"),
    ("blazer", "blazers"),
    ("accessory", "accessories"),
)


def _build_synonyms() -> dict[str, frozenset[str]]:
    table: dict[str, set[str]] = {}
    for left, right in _SYNONYM_PAIRS:
        table.setdefault(left, set()).add(right)
        table.setdefault(right, set()).add(left)
    return {key: frozenset(values) for key, values in table.items()}


SYNONYMS: dict[str, frozenset[str]] = _build_synonyms()


def resolve_aliases(category: str | None, known_keys: Iterable[str] = ()) -> frozenset[str]:
    """Return the alias set for ``category``.

    Args:
        category: Raw category label; trimmed and lowercased here.
        known_keys: Ledger keys to absorb when they match the category as
            a substring in either direction ("pants" picks up "pant").

    Returns:
        Frozen set of normalised labels, always containing the input.
    """
    norm = normalize_category(category)
    aliases = {norm}
    if not norm:
        return frozenset(aliases)

    aliases.update(SYNONYMS.get(norm, ()))

    for key in known_keys:
        key_norm = normalize_category(key)
        if key_norm and (key_norm in norm or norm in key_norm):
            aliases.add(key_norm)

    return frozenset(aliases)


def _build_buckets() -> dict[str, str]:
    members: dict[str, set[str]] = {}
    for left, right in _SYNONYM_PAIRS + _PLURAL_PAIRS:
        merged = members.get(left, {left}) | members.get(right, {right})
        for label in merged:
            members[label] = merged
    return {label: min(group) for label, group in members.items()}


# Cart labels are bucketed by synonyms and plural spellings only; "shirt"
# and "sweatshirt" are different buckets.  Substring matching is for ledger
# keys (``resolve_aliases``).
_BUCKET_KEY: dict[str, str] = _build_buckets()


def bucket_key(category: str | None) -> str:
    """Canonical label of the cart bucket ``category`` counts towards."""
    norm = normalize_category(category)
    return _BUCKET_KEY.get(norm, norm)


def same_bucket(left: str | None, right: str | None) -> bool:
    """True when two cart labels draw on the same entitlement bucket."""
    return bucket_key(left) == bucket_key(right)


def group_categories(categories: Iterable[str]) -> list[tuple[str, ...]]:
    """Partition labels into alias buckets, keeping first-appearance order.

    Each returned tuple lists the normalised labels of one bucket in the
    order they were first seen.
    """
    groups: dict[str, list[str]] = {}
    for raw in categories:
        label = normalize_category(raw)
        group = groups.setdefault(bucket_key(label), [])
        if label not in group:
            group.append(label)
    return [tuple(group) for group in groups.values()]
