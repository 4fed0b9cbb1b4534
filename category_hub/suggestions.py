"""
AI-assisted mapping suggestions.

Before the AI is asked anything, every canonical category still lacking a
confirmed mapping gets a small ranked list of plausible storefront candidates
(fuzzy name/path similarity plus keyword overlap, filtered by depth). The AI
may only pick from that list; everything it returns is validated against
local identifiers before it reaches the mapping store.
"""

import re
import logging
import unicodedata
from typing import Any, Callable, Dict, List, Optional

from rapidfuzz.distance import Levenshtein

from . import ai_provider
from .config import log_and_status
from .mapping_store import MappingStore
from .models import Shop, STATUS_CONFIRMED, STATUS_SUGGESTED, SOURCE_AI
from .paths import PathResolver
from .repository import CategoryRepository

# Candidate scoring weights (tunable)
NAME_WEIGHT = 0.55
PATH_WEIGHT = 0.35
KEYWORD_WEIGHT = 0.20
DEPTH_PENALTY = 0.15
MAX_DEPTH_DIFF = 2
MIN_SCORE = 0.15

MAX_CANDIDATES = 6
MAX_TARGETS = 220
MAX_CANONICAL = 120
MAX_KEYWORDS = 6
TEXT_LIMIT = 160
DEFAULT_CONFIDENCE = 0.5

INSTRUCTION_LINES = [
    "Match canonical categories to target categories.",
    "Respect hierarchy depth: prefer matches with depth difference <= 1.",
    "Only map if meaning is very close even across languages (translate mentally).",
    "If no suitable match exists, return null for target_id.",
    "Never suggest categories conflicting with user instructions.",
    "Use the candidates array for each canonical category as the allowed target list.",
    "Provide a short reason referencing matching keywords, hierarchy, or instructions.",
]
SKIP_MAPPED_LINE = "Skip canonical categories that already have confirmed mapping unless the mapping is null."

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_NON_WORD = re.compile(r"[\W_]+")


def normalize_text(value: Optional[str]) -> str:
    """Lowercase, strip diacritics and drop everything but [a-z0-9]."""
    if not value:
        return ""
    text = unicodedata.normalize("NFKD", str(value).strip().lower())
    text = "".join(c for c in text if not unicodedata.combining(c))
    return _NON_ALNUM.sub("", text)


def similarity(a: str, b: str) -> float:
    """1 - edit distance / longer length; 0.0 when either side is empty."""
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return max(0.0, 1 - Levenshtein.distance(a, b) / max(len(a), len(b)))


def keywords(value: Optional[str], limit: int = MAX_KEYWORDS) -> List[str]:
    """Unique lowercase tokens of at least 3 characters, in order of appearance."""
    if not value:
        return []

    tokens = _NON_WORD.sub(" ", str(value).lower()).split()
    unique = []
    for token in tokens:
        if len(token) >= 3 and token not in unique:
            unique.append(token)
    return unique[:limit]


def truncate(value: Optional[str], limit: int = TEXT_LIMIT) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    if len(value) <= limit:
        return value
    return value[:limit - 1].rstrip() + "…"


def keyword_overlap(source: List[str], target: List[str]) -> float:
    """Share of the source keywords also present in the target."""
    if not source or not target:
        return 0.0
    return len(set(source) & set(target)) / max(len(source), 1)


def score_candidate(entry: Dict[str, Any], target: Dict[str, Any]) -> Optional[float]:
    """
    Weighted similarity of one canonical entry and one storefront entry.

    Returns:
        Rounded score, or None when the pair is filtered out by depth or score
    """
    depth_diff = abs((target.get("depth") or 0) - (entry.get("depth") or 0))
    if depth_diff > MAX_DEPTH_DIFF:
        return None

    score = (
        similarity(entry["normalized_name"], target["normalized_name"]) * NAME_WEIGHT
        + similarity(entry["normalized_path"], target["normalized_path"]) * PATH_WEIGHT
        + keyword_overlap(entry["keywords"], target["keywords"]) * KEYWORD_WEIGHT
    )

    if depth_diff > 1:
        score -= DEPTH_PENALTY * (depth_diff - 1)

    if score < MIN_SCORE:
        return None

    return round(max(score, 0.0), 4)


def build_candidates(
    entry: Dict[str, Any],
    targets: List[Dict[str, Any]],
    limit: int = MAX_CANDIDATES
) -> List[Dict[str, Any]]:
    """Top storefront candidates for one canonical entry, best first."""
    candidates = []
    for target in targets:
        score = score_candidate(entry, target)
        if score is None:
            continue
        candidates.append({
            "id": target["id"],
            "name": target["name"],
            "path": target["path"],
            "depth": target["depth"],
            "score": score,
        })

    candidates.sort(key=lambda c: c["score"], reverse=True)
    return candidates[:limit]


def _describe(node, path: Optional[str], depth: int) -> Dict[str, Any]:
    path = truncate(path)
    return {
        "id": node.id,
        "name": truncate(node.name),
        "path": path,
        "depth": depth,
        "parent_id": node.parent_id,
        "normalized_name": normalize_text(node.name),
        "normalized_path": normalize_text(path),
        "keywords": keywords(f"{node.name or ''} {path or ''}"),
    }


class SuggestionReconciler:
    """
    Builds the candidate payload, asks the AI collaborator and folds valid
    suggestions into the mapping store.

    Args:
        repo: Repository
        cfg: Configuration dict (limits, AI provider settings)
        request_fn: Collaborator callable (payload, cfg, timeout) -> {"mappings": [...]};
            defaults to ai_provider.request_category_suggestions
        store: MappingStore to write through
    """

    def __init__(
        self,
        repo: CategoryRepository,
        cfg: Optional[Dict] = None,
        request_fn: Optional[Callable] = None,
        store: Optional[MappingStore] = None
    ):
        self.repo = repo
        self.cfg = cfg or {}
        self.request_fn = request_fn
        self.store = store or MappingStore(repo)

    def _limit(self, key: str, default: int) -> int:
        try:
            return int(self.cfg.get(key) or default)
        except (TypeError, ValueError):
            return default

    def build_payload(
        self,
        master_shop: Shop,
        target_shop: Shop,
        include_mapped: bool = False,
        instructions: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Assemble the request payload sent to the AI.

        Returns:
            {canonical_categories, target_categories, instructions}; both
            category lists are empty when either tree is empty
        """
        canonical_nodes = sorted(
            self.repo.list_canonical(master_shop.id),
            key=lambda n: (n.parent_id is not None, n.parent_id or "", n.position or 0, n.name or "")
        )
        shop_nodes = sorted(
            self.repo.list_shop_nodes(target_shop.id),
            key=lambda n: (n.path or "", n.name or "")
        )

        lines = list(INSTRUCTION_LINES)
        if not include_mapped:
            lines.append(SKIP_MAPPED_LINE)
        if instructions:
            lines.append(f"User instructions: {instructions}")

        if not canonical_nodes or not shop_nodes:
            return {"canonical_categories": [], "target_categories": [], "instructions": lines}

        canonical_resolver = PathResolver({n.id: n for n in canonical_nodes})
        shop_resolver = PathResolver(self.repo.shop_nodes)

        targets = [
            _describe(node, node.path, shop_resolver.depth(node))
            for node in shop_nodes[:self._limit("SUGGESTION_MAX_TARGETS", MAX_TARGETS)]
        ]
        for target in targets:
            target["remote_guid"] = self.repo.shop_nodes[target["id"]].remote_guid

        max_candidates = self._limit("SUGGESTION_MAX_CANDIDATES", MAX_CANDIDATES)
        canonical_entries = []
        for node in canonical_nodes:
            confirmed = self._has_confirmed_mapping(node.id, target_shop.id)
            if confirmed and not include_mapped:
                continue

            entry = _describe(node, canonical_resolver.path(node) or node.name, canonical_resolver.depth(node))
            entry["guid"] = node.guid
            entry["already_mapped"] = confirmed
            entry["candidates"] = build_candidates(entry, targets, max_candidates)
            canonical_entries.append(entry)

            if len(canonical_entries) >= self._limit("SUGGESTION_MAX_CANONICAL", MAX_CANONICAL):
                break

        return {
            "canonical_categories": [
                {k: v for k, v in e.items() if not k.startswith("normalized_")}
                for e in canonical_entries
            ],
            "target_categories": [
                {k: v for k, v in t.items() if not k.startswith("normalized_")}
                for t in targets
            ],
            "instructions": lines,
        }

    def _has_confirmed_mapping(self, category_node_id: str, shop_id: int) -> bool:
        mapping = self.store.get(category_node_id, shop_id)
        return mapping is not None and mapping.status == STATUS_CONFIRMED

    def validate(
        self,
        decoded: Dict[str, Any],
        payload: Dict[str, Any],
        target_shop: Shop,
        include_mapped: bool = False
    ) -> List[Dict[str, Any]]:
        """
        Keep only suggestions that reference known canonical entries and one
        of their precomputed candidates.

        Args:
            decoded: AI reply {"mappings": [...]}
            payload: The payload that was sent
            target_shop: Shop being mapped into
            include_mapped: Allow re-suggesting confirmed canonical categories

        Returns:
            Accepted suggestions (canonical, suggested, similarity, reason)
        """
        canonical_map = {e["id"]: e for e in payload["canonical_categories"]}
        target_map = {t["id"]: t for t in payload["target_categories"]}
        accepted = []

        for item in decoded.get("mappings", []):
            if not isinstance(item, dict):
                logging.debug(f"Dropped AI suggestion (not an object): {item!r}")
                continue

            canonical_id = item.get("canonical_id")
            target_id = item.get("target_id")

            if not isinstance(canonical_id, str) or not (target_id is None or isinstance(target_id, str)):
                logging.debug(f"Dropped AI suggestion with malformed ids: {canonical_id!r} -> {target_id!r}")
                continue

            if not canonical_id or canonical_id not in canonical_map:
                logging.debug(f"Dropped AI suggestion for unknown canonical id {canonical_id!r}")
                continue

            canon = canonical_map[canonical_id]

            if target_id:
                if target_id not in target_map:
                    logging.debug(f"Dropped AI suggestion {canonical_id} -> unknown target {target_id!r}")
                    continue
                if not any(str(c["id"]) == str(target_id) for c in canon.get("candidates", [])):
                    logging.debug(f"Dropped AI suggestion {canonical_id} -> {target_id} (not a candidate)")
                    continue

            if not include_mapped and self._has_confirmed_mapping(canonical_id, target_shop.id):
                logging.debug(f"Dropped AI suggestion for already confirmed {canonical_id}")
                continue

            if not target_id:
                continue

            target = target_map[target_id]
            reason = item.get("reason")
            accepted.append({
                "canonical": {
                    "id": canon["id"],
                    "guid": canon["guid"],
                    "name": canon["name"],
                    "path": canon["path"],
                },
                "suggested": {
                    "id": target["id"],
                    "name": target["name"],
                    "path": target["path"],
                    "remote_guid": target["remote_guid"],
                },
                "similarity": _clamp_confidence(item.get("confidence")),
                "reason": reason if isinstance(reason, str) else None,
            })

        return accepted

    def suggest(
        self,
        master_shop: Shop,
        target_shop: Shop,
        include_mapped: bool = False,
        instructions: Optional[str] = None,
        apply: bool = True,
        status_fn=None
    ) -> List[Dict[str, Any]]:
        """
        Ask the AI for mappings of unconfirmed canonical categories.

        Args:
            master_shop: Master shop owning the canonical tree
            target_shop: Shop to map into
            include_mapped: Also re-suggest confirmed canonical categories
            instructions: Free-text instructions appended to the prompt
            apply: Write accepted suggestions to the mapping store
            status_fn: Optional status callback

        Returns:
            Accepted suggestions, each with an `applied` flag

        Raises:
            SuggestionServiceError: The collaborator failed; nothing is applied
        """
        payload = self.build_payload(master_shop, target_shop, include_mapped, instructions)
        if not payload["canonical_categories"] or not payload["target_categories"]:
            log_and_status(status_fn, f"Nothing to suggest for shop {target_shop.id}")
            return []

        log_and_status(
            status_fn,
            f"Requesting AI suggestions for {len(payload['canonical_categories'])} canonical categories "
            f"against {len(payload['target_categories'])} categories of shop {target_shop.id}"
        )

        request_fn = self.request_fn or ai_provider.request_category_suggestions

        decoded = request_fn(payload, self.cfg, self.cfg.get("AI_TIMEOUT"))
        suggestions = self.validate(decoded, payload, target_shop, include_mapped)

        for suggestion in suggestions:
            suggestion["applied"] = False
            if not apply:
                continue

            canonical = self.repo.get_canonical(suggestion["canonical"]["id"])
            shop_node = self.repo.get_shop_node(suggestion["suggested"]["id"])
            mapping = self.store.upsert(canonical, shop_node, STATUS_SUGGESTED, suggestion["similarity"], SOURCE_AI)
            suggestion["applied"] = mapping is not None

        applied = sum(1 for s in suggestions if s["applied"])
        log_and_status(
            status_fn,
            f"AI returned {len(decoded.get('mappings', []))} mappings, "
            f"{len(suggestions)} valid, {applied} applied"
        )
        return suggestions


def _clamp_confidence(value) -> float:
    if value is None:
        return DEFAULT_CONFIDENCE
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    return round(max(min(confidence, 1.0), 0.0), 4)
