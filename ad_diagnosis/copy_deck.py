#!/usr/bin/env python3
"""Copy deck: the root-cause rule table and the fixed copy blocks.

The wording the Composer renders lives in knowledge/copy_deck.yaml so it can be
edited without touching code. This module turns that file into an immutable
CopyDeck that is injected into the Composer.

Loading is strict. Every RootCause member must have an entry, so adding a new
root cause without writing its copy fails at load time instead of silently
rendering the fallback block for real users.

Usage (import):
    from ad_diagnosis.copy_deck import default_copy_deck, load_copy_deck
    deck = default_copy_deck()                 # shipped deck, loaded once
    deck = load_copy_deck("my_copy_deck.yaml") # alternate rule set
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from loguru import logger

from ad_diagnosis.schema import MetricKind, RootCause


KNOWLEDGE_DIR = Path(__file__).resolve().parent / "knowledge"
DEFAULT_COPY_DECK_PATH = KNOWLEDGE_DIR / "copy_deck.yaml"

# Upper bound on actions shown to the user
MAX_ACTIONS = 3


class CopyDeckError(ValueError):
    """Raised when a copy deck is malformed or incomplete."""


# ──────────────────────────────────────────────────
# Deck structure
# ──────────────────────────────────────────────────

@dataclass(frozen=True)
class RootCauseEntry:
    headline: str
    base_reason: str
    metric_preference: Optional[MetricKind]
    actions: Tuple[str, ...]
    creative_brief: Optional[str] = None


@dataclass(frozen=True)
class ScaleReadyCopy:
    headline: str
    actions: Tuple[str, ...]


@dataclass(frozen=True)
class FallbackCopy:
    headline: str
    reason: str
    actions: Tuple[str, ...]


@dataclass(frozen=True)
class CopyDeck:
    """Immutable copy configuration. Safe to share across calls and threads."""

    root_causes: Mapping[RootCause, RootCauseEntry]
    scale_ready: ScaleReadyCopy
    fallback: FallbackCopy

    def entry_for(self, root_cause: Optional[str]) -> Optional[RootCauseEntry]:
        """Look up the entry for a root-cause key; None for unknown keys."""
        if root_cause is None:
            return None
        try:
            key = RootCause(root_cause)
        except ValueError:
            return None
        return self.root_causes.get(key)

    def headlines(self) -> frozenset:
        """Every headline the deck can produce."""
        found = {entry.headline for entry in self.root_causes.values()}
        found.add(self.scale_ready.headline)
        found.add(self.fallback.headline)
        return frozenset(found)


# ──────────────────────────────────────────────────
# Validation helpers
# ──────────────────────────────────────────────────

def _require_text(block: Mapping[str, Any], key: str, where: str) -> str:
    value = block.get(key)
    if not isinstance(value, str) or not value.strip():
        raise CopyDeckError(f"{where}: '{key}' must be a non-empty string")
    return value


def _parse_actions(raw: Any, where: str) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list) or not all(isinstance(a, str) and a.strip() for a in raw):
        raise CopyDeckError(f"{where}: 'actions' must be a list of non-empty strings")
    return tuple(raw)


def _parse_bounded_actions(raw: Any, where: str) -> Tuple[str, ...]:
    """Fixed blocks are rendered as-is, so they must already hold 1-3 actions."""
    actions = _parse_actions(raw, where)
    if not 1 <= len(actions) <= MAX_ACTIONS:
        raise CopyDeckError(f"{where}: needs 1-{MAX_ACTIONS} actions, found {len(actions)}")
    return actions


def _parse_preference(raw: Any, where: str) -> Optional[MetricKind]:
    if raw is None:
        return None
    try:
        return MetricKind(str(raw).lower())
    except ValueError:
        allowed = ", ".join(k.value for k in MetricKind)
        raise CopyDeckError(f"{where}: 'metric_preference' must be one of {allowed}, got {raw!r}")


def _parse_entry(key: str, block: Any) -> RootCauseEntry:
    where = f"root_causes.{key}"
    if not isinstance(block, Mapping):
        raise CopyDeckError(f"{where}: expected a mapping")
    brief = block.get("creative_brief")
    if brief is not None and not isinstance(brief, str):
        raise CopyDeckError(f"{where}: 'creative_brief' must be a string")
    return RootCauseEntry(
        headline=_require_text(block, "headline", where),
        base_reason=_require_text(block, "base_reason", where),
        metric_preference=_parse_preference(block.get("metric_preference"), where),
        actions=_parse_actions(block.get("actions"), where),
        creative_brief=brief or None,
    )


# ──────────────────────────────────────────────────
# Builders and loaders
# ──────────────────────────────────────────────────

def build_copy_deck(data: Mapping[str, Any]) -> CopyDeck:
    """Validate a parsed deck document and build a CopyDeck.

    Raises:
        CopyDeckError: on unknown or missing root-cause keys, empty text,
            a bad metric preference, or fixed blocks without 1-3 actions.
    """
    if not isinstance(data, Mapping):
        raise CopyDeckError("copy deck must be a mapping at the top level")

    raw_root_causes = data.get("root_causes")
    if not isinstance(raw_root_causes, Mapping):
        raise CopyDeckError("'root_causes' must be a mapping")

    entries: Dict[RootCause, RootCauseEntry] = {}
    unknown: List[str] = []
    for key, block in raw_root_causes.items():
        try:
            member = RootCause(key)
        except ValueError:
            unknown.append(str(key))
            continue
        entries[member] = _parse_entry(member.value, block)
    if unknown:
        raise CopyDeckError(f"unknown root causes in copy deck: {', '.join(sorted(unknown))}")

    missing = [m.value for m in RootCause if m not in entries]
    if missing:
        raise CopyDeckError(f"copy deck has no entry for: {', '.join(missing)}")

    scale_block = data.get("scale_ready")
    if not isinstance(scale_block, Mapping):
        raise CopyDeckError("'scale_ready' must be a mapping")
    fallback_block = data.get("fallback")
    if not isinstance(fallback_block, Mapping):
        raise CopyDeckError("'fallback' must be a mapping")

    return CopyDeck(
        root_causes=MappingProxyType(entries),
        scale_ready=ScaleReadyCopy(
            headline=_require_text(scale_block, "headline", "scale_ready"),
            actions=_parse_bounded_actions(scale_block.get("actions"), "scale_ready"),
        ),
        fallback=FallbackCopy(
            headline=_require_text(fallback_block, "headline", "fallback"),
            reason=_require_text(fallback_block, "reason", "fallback"),
            actions=_parse_bounded_actions(fallback_block.get("actions"), "fallback"),
        ),
    )


def load_copy_deck(path: Optional[Union[str, Path]] = None) -> CopyDeck:
    """Load and validate a copy deck YAML file (the shipped one by default)."""
    import yaml

    yaml_path = Path(path) if path is not None else DEFAULT_COPY_DECK_PATH
    with open(yaml_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise CopyDeckError(f"invalid YAML in {yaml_path}: {exc}") from exc

    deck = build_copy_deck(data)
    logger.debug("Loaded copy deck from {} ({} root causes)", yaml_path, len(deck.root_causes))
    return deck


@lru_cache(maxsize=1)
def default_copy_deck() -> CopyDeck:
    """The shipped copy deck, loaded on first use and shared afterwards."""
    return load_copy_deck()
