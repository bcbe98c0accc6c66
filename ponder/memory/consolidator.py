"""Belief consolidation: turning many thoughts into few long-lived beliefs.

Two operations back the belief phase of a consolidation sweep:

consolidate(thoughts)
    Extracts beliefs from aged, high-confidence thoughts. The evaluator is
    asked for a JSON array of beliefs; when it is missing, fails, or returns
    nothing usable, a rule-based pass groups thoughts by category instead.
    Each extracted belief either reinforces a sufficiently similar existing
    belief or becomes a new one.

merge_similar_beliefs(threshold)
    Bounds the growth of the belief set by collapsing clusters of
    near-duplicate beliefs into one.

Diversity is protected when matching: heavily reinforced beliefs and
categories that already hold strong beliefs demand a higher similarity
before absorbing a new one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from ponder.evaluator import run_evaluator
from ponder.memory.schemas import CoreBelief, SignificantThought
from ponder.memory.similarity import jaccard, text_similarity, tokenize, top_keywords
from ponder.parsing import extract_json, parse_labeled_text
from ponder.utils import utc_now

if TYPE_CHECKING:
    from ponder.evaluator import Evaluator
    from ponder.memory.repository import Repository

logger = logging.getLogger(__name__)

# Base Jaccard similarity needed to fold a new belief into an existing one
BASE_SIMILARITY_THRESHOLD = 0.6

# Extra similarity demanded from beliefs that are already heavily reinforced
REINFORCEMENT_PENALTY = 0.15
HEAVY_REINFORCEMENT = 100

# Extra similarity demanded when the category already has strong beliefs
CATEGORY_PENALTY = 0.1
STRONG_BELIEF_REINFORCEMENT = 50

# Rule-based extraction needs this many thoughts per category
RULE_MIN_THOUGHTS = 3
RULE_MIN_CONFIDENCE = 0.6

PROMPT_THOUGHT_LIMIT = 20
PROMPT_BELIEF_LIMIT = 10

SYSTEM_PROMPT = (
    "You maintain the long-term memory of a reflective system. "
    "Answer only in the requested format."
)


@dataclass
class ConsolidationOutcome:
    """What a consolidate() call did."""
    beliefs_created: int = 0
    beliefs_updated: int = 0
    thoughts_processed: int = 0
    method: str = "none"  # "evaluator", "rule_based" or "none"

    @property
    def changed(self) -> int:
        return self.beliefs_created + self.beliefs_updated

    @property
    def compression_ratio(self) -> float:
        return self.thoughts_processed / max(1, self.changed)


@dataclass
class MergeOutcome:
    """What a merge_similar_beliefs() call did."""
    merged: int = 0    # Beliefs absorbed into another
    clusters: int = 0
    kept: int = 0      # Beliefs remaining afterwards


class BeliefConsolidator:
    """Extracts, reinforces and merges core beliefs.

    Args:
        repository: Storage for beliefs
        evaluator: Optional text evaluator for extraction and merged wording
        timeout: Seconds allowed per evaluator call
        belief_limit: How many existing beliefs to compare against
    """

    def __init__(
        self,
        repository: "Repository",
        evaluator: Optional["Evaluator"] = None,
        timeout: float = 60.0,
        belief_limit: int = 100,
    ):
        self._repository = repository
        self._evaluator = evaluator
        self._timeout = timeout
        self._belief_limit = belief_limit

    async def consolidate(
        self,
        thoughts: list[SignificantThought],
        min_confidence: float = 0.75,
    ) -> ConsolidationOutcome:
        """Fold qualifying thoughts into the belief set.

        Args:
            thoughts: Candidate thoughts, typically the oldest retained ones
            min_confidence: Thoughts below this confidence are ignored

        Returns:
            ConsolidationOutcome with created/updated counts
        """
        qualified = [t for t in thoughts if t.confidence >= min_confidence]
        if not qualified:
            return ConsolidationOutcome()

        existing = await self._repository.get_core_beliefs(self._belief_limit)

        candidates: list[CoreBelief] = []
        method = "rule_based"
        if self._evaluator is not None:
            candidates = await self._extract_with_evaluator(qualified, existing)
            if candidates:
                method = "evaluator"
            else:
                logger.warning("Evaluator belief extraction produced nothing, using rule-based pass")

        if method == "rule_based":
            outcome = await self._rule_based_extraction(qualified, existing)
        else:
            outcome = await self._apply_candidates(candidates, existing)
        outcome.thoughts_processed = len(qualified)
        outcome.method = method

        logger.info(
            f"Consolidated {len(qualified)} thoughts via {method}: "
            f"{outcome.beliefs_created} created, {outcome.beliefs_updated} reinforced "
            f"(ratio {outcome.compression_ratio:.1f}:1)"
        )
        return outcome

    def find_similar_belief(
        self,
        content: str,
        category: str,
        existing: list[CoreBelief],
    ) -> Optional[CoreBelief]:
        """Return the existing belief a new one should reinforce, if any."""
        words = tokenize(content)
        best: Optional[CoreBelief] = None
        best_similarity = 0.0
        for belief in existing:
            similarity = jaccard(words, tokenize(belief.content))
            if similarity > best_similarity:
                best, best_similarity = belief, similarity
        if best is None:
            return None

        threshold = BASE_SIMILARITY_THRESHOLD
        if best.reinforcement_count > HEAVY_REINFORCEMENT:
            threshold += REINFORCEMENT_PENALTY
        has_strong_peers = any(
            b.category == category and b.reinforcement_count > STRONG_BELIEF_REINFORCEMENT
            for b in existing
        )
        if has_strong_peers and best.category == category:
            threshold += CATEGORY_PENALTY

        if best_similarity > threshold:
            return best
        logger.debug(
            f"No belief close enough to '{content[:40]}' "
            f"(best {best_similarity:.2f} <= {threshold:.2f})"
        )
        return None

    async def merge_similar_beliefs(self, threshold: float = 0.90) -> MergeOutcome:
        """Collapse clusters of near-duplicate beliefs.

        Clusters are formed greedily from the strongest belief down. A merged
        belief keeps the highest confidence, the mean strength and the summed
        reinforcement count of its members. It is saved before the members
        are deleted.
        """
        beliefs = await self._repository.get_core_beliefs(self._belief_limit)
        if len(beliefs) < 2:
            return MergeOutcome(kept=len(beliefs))

        tokens = {b.id: tokenize(b.content) for b in beliefs}
        assigned: set[str] = set()
        clusters: list[list[CoreBelief]] = []
        for belief in beliefs:
            if belief.id in assigned:
                continue
            cluster = [belief]
            assigned.add(belief.id)
            for other in beliefs:
                if other.id in assigned:
                    continue
                if jaccard(tokens[belief.id], tokens[other.id]) >= threshold:
                    cluster.append(other)
                    assigned.add(other.id)
            if len(cluster) > 1:
                clusters.append(cluster)

        merged = 0
        for cluster in clusters:
            content = await self._merged_wording(cluster)
            combined = CoreBelief(
                content=content,
                category=cluster[0].category,
                confidence=max(b.confidence for b in cluster),
                strength=sum(b.strength for b in cluster) / len(cluster),
                reinforcement_count=sum(b.reinforcement_count for b in cluster),
                source_thought_ids=_unique(
                    tid for b in cluster for tid in b.source_thought_ids
                ),
                created_at=min(b.created_at for b in cluster),
            )
            await self._repository.save_core_belief(combined)
            await self._repository.delete_core_beliefs([b.id for b in cluster])
            merged += len(cluster) - 1

        kept = len(beliefs) - merged
        if clusters:
            logger.info(f"Merged {merged} similar beliefs in {len(clusters)} clusters, {kept} remain")
        return MergeOutcome(merged=merged, clusters=len(clusters), kept=kept)

    async def _extract_with_evaluator(
        self,
        thoughts: list[SignificantThought],
        existing: list[CoreBelief],
    ) -> list[CoreBelief]:
        prompt = self._build_extraction_prompt(thoughts, existing)
        result = await run_evaluator(self._evaluator, prompt, SYSTEM_PROMPT, self._timeout)
        if not result.usable:
            return []

        data = extract_json(result.content)
        if isinstance(data, dict):
            data = data.get("beliefs", [])
        if not isinstance(data, list):
            logger.warning("Belief extraction response held no JSON array")
            return []

        shown = thoughts[:PROMPT_THOUGHT_LIMIT]
        candidates = []
        for item in data:
            belief = self._candidate_from_item(item, shown)
            if belief is not None:
                candidates.append(belief)
        return candidates

    def _candidate_from_item(
        self, item: Any, shown: list[SignificantThought]
    ) -> Optional[CoreBelief]:
        if not isinstance(item, dict):
            return None
        content = item.get("belief_content") or item.get("belief")
        if not isinstance(content, str) or not content.strip():
            return None

        source_ids = []
        for index in item.get("source_indices") or []:
            if isinstance(index, int) and 1 <= index <= len(shown):
                source_ids.append(shown[index - 1].id)

        return CoreBelief(
            content=content.strip(),
            category=str(item.get("category") or "general"),
            confidence=_unit(item.get("confidence"), 0.5),
            strength=_unit(item.get("strength"), 0.5),
            source_thought_ids=source_ids,
        )

    async def _apply_candidates(
        self,
        candidates: list[CoreBelief],
        existing: list[CoreBelief],
    ) -> ConsolidationOutcome:
        outcome = ConsolidationOutcome()
        pool = list(existing)
        for candidate in candidates:
            similar = self.find_similar_belief(candidate.content, candidate.category, pool)
            if similar is not None:
                reinforced = self._reinforce(similar, candidate.source_thought_ids, candidate.confidence)
                await self._repository.save_core_belief(reinforced)
                pool = [reinforced if b.id == similar.id else b for b in pool]
                outcome.beliefs_updated += 1
            else:
                await self._repository.save_core_belief(candidate)
                pool.append(candidate)
                outcome.beliefs_created += 1
        return outcome

    async def _rule_based_extraction(
        self,
        thoughts: list[SignificantThought],
        existing: list[CoreBelief],
    ) -> ConsolidationOutcome:
        by_category: dict[str, list[SignificantThought]] = {}
        for thought in thoughts:
            by_category.setdefault(thought.category or "general", []).append(thought)

        outcome = ConsolidationOutcome()
        for category, group in by_category.items():
            if len(group) < RULE_MIN_THOUGHTS:
                continue
            avg_confidence = sum(t.confidence for t in group) / len(group)
            if avg_confidence < RULE_MIN_CONFIDENCE:
                continue

            source_ids = [t.id for t in group]
            match = next((b for b in existing if b.category == category), None)
            if match is not None:
                await self._repository.save_core_belief(
                    self._reinforce(match, source_ids, avg_confidence)
                )
                outcome.beliefs_updated += 1
                continue

            keywords = top_keywords(t.content for t in group)
            if len(keywords) >= 2:
                content = f"In {category} thought, {keywords[0]} and {keywords[1]} keep recurring together"
            elif keywords:
                content = f"In {category} thought, {keywords[0]} keeps recurring"
            else:
                content = f"A settled understanding of {category} questions"
            await self._repository.save_core_belief(CoreBelief(
                content=content,
                category=category,
                confidence=avg_confidence,
                strength=min(1.0, len(group) * 0.15),
                source_thought_ids=source_ids,
            ))
            outcome.beliefs_created += 1
        return outcome

    def _reinforce(
        self, belief: CoreBelief, source_ids: list[str], confidence: float
    ) -> CoreBelief:
        return belief.model_copy(update={
            "reinforcement_count": belief.reinforcement_count + 1,
            "confidence": max(belief.confidence, min(1.0, confidence)),
            "strength": min(1.0, belief.strength + 0.05),
            "source_thought_ids": _unique([*belief.source_thought_ids, *source_ids]),
            "updated_at": utc_now(),
        })

    async def _merged_wording(self, cluster: list[CoreBelief]) -> str:
        fallback = cluster[0].content
        if self._evaluator is None:
            return fallback
        listing = "\n".join(f"- {b.content}" for b in cluster)
        prompt = (
            "These beliefs say nearly the same thing:\n"
            f"{listing}\n\n"
            "Write one belief that preserves their meaning.\n"
            "Merged belief: <text>"
        )
        result = await run_evaluator(self._evaluator, prompt, SYSTEM_PROMPT, self._timeout)
        wording = parse_labeled_text(result.content, "Merged belief") if result.usable else None
        if not wording or len(wording) < 10:
            return fallback
        # Reject rewrites that drift away from every member
        if max(text_similarity(wording, b.content) for b in cluster) < 0.3:
            return fallback
        return wording

    def _build_extraction_prompt(
        self,
        thoughts: list[SignificantThought],
        existing: list[CoreBelief],
    ) -> str:
        listing = "\n".join(
            f"{i}. [{t.agent_id or 'unknown'}] {t.content} (confidence {t.confidence:.2f})"
            for i, t in enumerate(thoughts[:PROMPT_THOUGHT_LIMIT], start=1)
        )
        top = sorted(existing, key=lambda b: b.reinforcement_count, reverse=True)
        known = "\n".join(f"- {b.content}" for b in top[:PROMPT_BELIEF_LIMIT])
        known_section = f"\nExisting beliefs (do not duplicate):\n{known}\n" if known else ""
        return (
            f"Consolidate these {len(thoughts)} thoughts into a few core beliefs.\n\n"
            f"Thoughts:\n{listing}\n{known_section}\n"
            "Return a JSON array of objects with keys "
            '"belief_content", "category", "confidence", "strength", "source_indices".'
        )


def _unit(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))


def _unique(items) -> list[str]:
    return list(dict.fromkeys(items))
