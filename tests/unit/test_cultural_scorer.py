from tests.helpers import make_submission
from trust_safety.scoring.cultural import CulturalSensitivityScorer
from trust_safety.scoring.models import ProviderKind, ScoringContext


def _analyze(
    title: str = "",
    description: str = "",
    tags: list[str] | None = None,
    background: list[str] | None = None,
):
    return CulturalSensitivityScorer().analyze(
        title=title,
        description=description,
        cultural_tags=tags or [],
        seller_background=background or [],
    )


class TestSignals:
    def test_sacred_item_without_connection_is_capped_at_one(self) -> None:
        result = _analyze(title="Sacred ceremonial mask", tags=["Yoruba"], background=[])

        assert result.risk_score == 1.0
        assert "Seller may not have direct cultural connection" in result.flags
        assert "Item may have sacred or ceremonial significance" in result.flags

    def test_no_signals_is_zero(self) -> None:
        result = _analyze(title="Blue ceramic bowl", tags=[], background=[])

        assert result.risk_score == 0.0
        assert result.flags == ()
        assert result.recommendations == ()

    def test_no_connection_alone(self) -> None:
        result = _analyze(title="Beaded necklace", tags=["Maasai"], background=["Irish"])

        assert result.risk_score == 0.4
        assert result.metadata["has_connection"] is False

    def test_connection_matches_substring_either_direction(self) -> None:
        assert _analyze(tags=["Yoruba beadwork"], background=["yoruba"]).risk_score == 0.0
        assert _analyze(tags=["Navajo"], background=["Navajo Nation"]).risk_score == 0.0

    def test_blank_background_does_not_count_as_connection(self) -> None:
        result = _analyze(tags=["Zulu"], background=[""])

        assert result.risk_score == 0.4

    def test_mass_produced_without_authenticity(self) -> None:
        result = _analyze(title="Tribal print scarf", description="Wholesale lot, factory made")

        assert result.risk_score == 0.3
        assert "Item appears to be mass-produced" in result.flags

    def test_authenticity_term_cancels_mass_produced_signal(self) -> None:
        result = _analyze(title="Handmade rug", description="Sold wholesale to shops")

        assert result.risk_score == 0.0
        assert result.metadata["has_authenticity_terms"] is True

    def test_no_connection_plus_mass_produced_reaches_threshold(self) -> None:
        result = _analyze(description="replica", tags=["Maori"], background=[])

        assert result.risk_score == 0.7
        assert result.exceeds_threshold

    def test_each_signal_adds_its_own_recommendations(self) -> None:
        result = _analyze(title="Sacred bulk beads", tags=["Hopi"])

        assert len(result.flags) == 3
        assert len(result.recommendations) == 4


class TestScore:
    def test_uses_context_background_and_tags(self) -> None:
        submission = make_submission(
            payload={"title": "Ritual drum", "description": ""},
            cultural_tags=("Ashanti",),
        )
        context = ScoringContext(
            submitter_id="seller-1",
            declared_cultural_tags=("Ashanti",),
            cultural_background=("Ashanti",),
        )

        result = CulturalSensitivityScorer().score(submission, context)

        assert result.provider == ProviderKind.CULTURAL
        assert result.risk_score == 0.6

    def test_is_deterministic(self) -> None:
        scorer = CulturalSensitivityScorer()
        first = scorer.analyze(
            title="Holy relic", description="", cultural_tags=["Tibetan"], seller_background=[]
        )
        second = scorer.analyze(
            title="Holy relic", description="", cultural_tags=["Tibetan"], seller_background=[]
        )

        assert first == second
