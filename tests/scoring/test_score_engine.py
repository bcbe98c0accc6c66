"""Tests for the score engine."""

import pytest

from ponder.config import ScoringConfig
from ponder.events import EventKind
from ponder.memory.schemas import QuestionCategory, Trigger, TriggerSource
from ponder.scoring.engine import ScoreEngine
from ponder.scoring.heuristics import blend
from ponder.scoring.schemas import (
    Axis,
    AxisScores,
    AxisWeights,
    Critique,
    DeliberationArtifacts,
    Statement,
)


def sample_artifacts(cycle_id="cycle:1"):
    return DeliberationArtifacts(
        cycle_id=cycle_id,
        statements=[
            Statement(agent_id="a", content="I understand the fear of being replaced", confidence=0.8,
                      emotional_tone="tender"),
            Statement(agent_id="b", content="Replacement is a moral question, not a technical one",
                      confidence=0.5),
        ],
        critiques=[
            Critique(reviewer_id="a", target_agent_id="b", criticism="This is too abstract",
                     agreement_level=-0.2),
        ],
        synthesis="Both fear and principle matter.",
    )


def make_trigger(source=TriggerSource.MANUAL):
    return Trigger(
        question="Should I fear being replaced?",
        category=QuestionCategory.EXISTENTIAL,
        importance=0.8,
        source=source,
    )


def axis_routes(empathy="0.8", coherence="0.7", dissonance="0.3"):
    return {
        "Empathy score": f"Empathy score: {empathy}\nReason: attentive to feelings",
        "Coherence score": f"Coherence score: {coherence}\nReason: consistent",
        "Dissonance score": f"Dissonance score: {dissonance}\nReason: some tension",
    }


class TestAxisScoring:
    """Tests for per-axis evaluation."""

    @pytest.mark.asyncio
    async def test_heuristics_without_evaluator(self):
        """Without an evaluator every axis uses the heuristic blend."""
        engine = ScoreEngine()

        assessment = await engine.score(sample_artifacts(), AxisWeights())

        assert assessment.methods == {"empathy": "heuristic", "coherence": "heuristic", "dissonance": "heuristic"}
        scores = assessment.scores
        for value in scores.as_tuple():
            assert 0.0 <= value <= 1.0

    @pytest.mark.asyncio
    async def test_evaluator_scores_accepted(self, routing):
        """Valid evaluator answers are used directly."""
        engine = ScoreEngine(evaluator=routing(axis_routes()))

        assessment = await engine.score(sample_artifacts(), AxisWeights())

        assert assessment.scores.empathy == pytest.approx(0.8)
        assert assessment.scores.coherence == pytest.approx(0.7)
        assert assessment.scores.dissonance == pytest.approx(0.3)
        assert assessment.evaluations[Axis.EMPATHY].rationale == "attentive to feelings"
        assert set(assessment.methods.values()) == {"evaluator"}

    @pytest.mark.asyncio
    async def test_weighted_total_is_dot_product(self, routing):
        """The weighted total combines scores with the current weights."""
        engine = ScoreEngine(evaluator=routing(axis_routes()))
        weights = AxisWeights(empathy=0.5, coherence=0.3, dissonance=0.2)

        assessment = await engine.score(sample_artifacts(), weights)

        assert assessment.scores.weighted_total == pytest.approx(0.8 * 0.5 + 0.7 * 0.3 + 0.3 * 0.2)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer", ["1.4", "-0.2"])
    async def test_out_of_range_falls_back(self, routing, answer):
        """Out-of-range numbers are rejected, not clamped."""
        engine = ScoreEngine(evaluator=routing(axis_routes(empathy=answer)))

        assessment = await engine.score(sample_artifacts(), AxisWeights())

        evaluation = assessment.evaluations[Axis.EMPATHY]
        assert evaluation.method == "heuristic"
        assert evaluation.score == pytest.approx(
            blend(evaluation.signals, ScoringConfig().empathy_weights)
        )
        assert assessment.evaluations[Axis.COHERENCE].method == "evaluator"

    @pytest.mark.asyncio
    async def test_prose_falls_back(self, routing):
        """An answer without the labeled score uses heuristics."""
        routes = axis_routes()
        routes["Coherence score"] = "The reasoning was quite good overall."
        engine = ScoreEngine(evaluator=routing(routes))

        assessment = await engine.score(sample_artifacts(), AxisWeights())

        assert assessment.evaluations[Axis.COHERENCE].method == "heuristic"

    @pytest.mark.asyncio
    async def test_evaluator_exception_falls_back(self, scripted):
        """Evaluator errors never reach the caller."""
        evaluator = scripted(*[RuntimeError("boom")] * 3)
        engine = ScoreEngine(evaluator=evaluator)

        assessment = await engine.score(sample_artifacts(), AxisWeights())

        assert set(assessment.methods.values()) == {"heuristic"}

    @pytest.mark.asyncio
    async def test_evaluator_can_be_disabled(self, routing):
        """use_evaluator=False ignores a configured evaluator."""
        evaluator = routing(axis_routes())
        engine = ScoreEngine(evaluator=evaluator, config=ScoringConfig(use_evaluator=False))

        await engine.score(sample_artifacts(), AxisWeights())

        evaluator.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_emits_one_event_per_axis(self, sink):
        """Each axis evaluation is announced."""
        engine = ScoreEngine(event_sink=sink)

        await engine.score(sample_artifacts(), AxisWeights())

        events = sink.of_kind(EventKind.EVALUATION_COMPLETED)
        assert [e.payload["axis"] for e in events] == ["empathy", "coherence", "dissonance"]

    @pytest.mark.asyncio
    async def test_context_records_system_state(self):
        """The score context carries provenance and system state."""
        engine = ScoreEngine()
        trigger = make_trigger(TriggerSource.BACKLOG)

        assessment = await engine.score(
            sample_artifacts(), AxisWeights(version=4), trigger, system_state={"energy": 42.0}
        )

        context = assessment.scores.context
        assert context["trigger_id"] == trigger.id
        assert context["system_state"] == {"energy": 42.0}
        assert context["weights_version"] == 4
        assert context["emotional_state"]["dominant_tone"] == "tender"


class TestImpact:
    """Tests for paradigm shift detection."""

    @pytest.mark.asyncio
    async def test_only_manual_triggers_assessed(self, routing):
        """Non-manual triggers get no impact assessment."""
        engine = ScoreEngine(evaluator=routing(axis_routes()))

        assessment = await engine.score(sample_artifacts(), AxisWeights(), make_trigger(TriggerSource.BACKLOG))

        assert assessment.impact is None

    @pytest.mark.asyncio
    async def test_dissonance_spike_is_paradigm_shift(self, routing):
        """A manual deliberation whose dissonance jumps by more than 0.25 shifts paradigms."""
        routes = axis_routes(dissonance="0.2")
        engine = ScoreEngine(evaluator=routing(routes))
        await engine.score(sample_artifacts("cycle:1"), AxisWeights())

        routes.update(axis_routes(dissonance="0.6"))
        routes["Controversy"] = "Controversy: 0.1"
        assessment = await engine.score(sample_artifacts("cycle:2"), AxisWeights(), make_trigger())

        impact = assessment.impact
        assert impact is not None
        assert impact.dissonance_spike == pytest.approx(0.4)
        assert impact.is_paradigm_shift
        assert impact.controversy_method == "evaluator"

    @pytest.mark.asyncio
    async def test_calm_manual_deliberation_is_not_a_shift(self, routing):
        """Small changes with low controversy do not count."""
        routes = axis_routes(dissonance="0.3")
        routes["Controversy"] = "Controversy: 0.1"
        engine = ScoreEngine(evaluator=routing(routes))
        await engine.score(sample_artifacts("cycle:1"), AxisWeights())

        assessment = await engine.score(sample_artifacts("cycle:2"), AxisWeights(), make_trigger())

        assert assessment.impact.dissonance_spike == pytest.approx(0.0)
        assert not assessment.impact.is_paradigm_shift

    @pytest.mark.asyncio
    async def test_extreme_dissonance_is_shift(self, routing):
        """Dissonance above 0.8 is a shift even without history."""
        engine = ScoreEngine(evaluator=routing(axis_routes(dissonance="0.9")))

        assessment = await engine.score(sample_artifacts(), AxisWeights(), make_trigger())

        assert assessment.impact.is_paradigm_shift
        assert any("dissonance at" in r for r in assessment.impact.reasons)

    @pytest.mark.asyncio
    async def test_heuristic_controversy(self):
        """Without an evaluator controversy comes from critique language."""
        engine = ScoreEngine()
        artifacts = sample_artifacts()
        artifacts.critiques.append(
            Critique(reviewer_id="b", target_agent_id="a", criticism="I reject this framing entirely")
        )

        assessment = await engine.score(artifacts, AxisWeights(), make_trigger())

        assert assessment.impact.controversy_method == "heuristic"
        assert assessment.impact.controversy == pytest.approx(0.5)


class TestTrajectory:
    """Tests for analysis and score history."""

    @pytest.mark.asyncio
    async def test_previous_scores_window(self):
        """Only the last five score sets are remembered."""
        engine = ScoreEngine()

        for i in range(7):
            await engine.score(sample_artifacts(f"cycle:{i}"), AxisWeights())

        assert len(engine.previous_scores) == 5
        assert engine.previous_scores[-1].context["source_id"] == "cycle:6"

    def test_analyze_strengths_and_weaknesses(self):
        """Axes above 0.7 are strengths, below 0.5 weaknesses."""
        engine = ScoreEngine()
        scores = AxisScores(empathy=0.9, coherence=0.6, dissonance=0.2, weighted_total=0.5)

        analysis = engine.analyze(scores)

        assert analysis.strengths == ["empathy"]
        assert analysis.weaknesses == ["dissonance"]

    def test_recommendations_for_lagging_axes(self):
        """Each lagging axis gets one suggestion."""
        engine = ScoreEngine()
        scores = AxisScores(empathy=0.9, coherence=0.4, dissonance=0.3, weighted_total=0.5)

        advice = engine.recommendations(scores)

        assert len(advice) == 2
