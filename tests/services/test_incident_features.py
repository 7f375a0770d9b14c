from __future__ import annotations

from datetime import datetime, timezone

import pytest

from vigia.services import incident_features as feats
from vigia.services.incident_features import TextFeatures


def test_firearm_with_spoken_victim_count() -> None:
    f = feats.extract_text_features("Dois feridos após tiros no mercado")
    assert f.hasWeapon is True
    assert f.violence == 3
    assert f.victimCount == 2
    assert f.highFootfall is True


def test_blade_is_violence_two_and_bare_hands_one() -> None:
    assert feats.extract_text_features("homem com faca ameaçou").violence == 2
    bare = feats.extract_text_features("levou um soco na saída")
    assert bare.isBareHands is True
    assert bare.violence == 1


@pytest.mark.parametrize(
    "text, victim",
    [
        ("uma criança e uma mulher foram atropeladas", "child"),
        ("bebê chorando sozinho", "baby"),
        ("idosa caiu na calçada", "elderly"),
        ("cachorro atropelado", "animal"),
        ("roubaram a loja da esquina", "shop"),
        ("alguém gritou", "generic"),
    ],
)
def test_victim_kind_prefers_most_vulnerable(text: str, victim: str) -> None:
    assert feats.extract_text_features(text).victim == victim


@pytest.mark.parametrize(
    "text, count",
    [
        ("3 vítimas no local", 3),
        ("três feridos", 3),
        ("deux personnes blessées", 2),
        ("nenhum detalhe", 0),
    ],
)
def test_parse_victim_count(text: str, count: int) -> None:
    assert feats.parse_victim_count(text) == count


def test_incident_type_flags() -> None:
    assert feats.extract_text_features("incêndio no prédio").isFire is True
    assert feats.extract_text_features("briga generalizada").isAggression is True
    assert feats.extract_text_features("colisão entre dois carros").isTrafficIncident is True
    assert feats.extract_text_features("criança se afogando na praia").isDrowning is True
    assert feats.extract_text_features("ciclista com perna quebrada").isFracture is True
    assert feats.extract_text_features("assalto no ônibus").isRobbery is True


def test_identical_empty_features_score() -> None:
    assert feats.features_similarity(TextFeatures(), TextFeatures()) == pytest.approx(0.95)


def test_missing_side_is_neutral() -> None:
    assert feats.features_similarity(None, TextFeatures()) == 0.5
    assert feats.context_similarity(None, None) == 0.5


def test_fire_versus_aggression_is_penalized() -> None:
    fire = feats.extract_text_features("incendio na casa")
    fight = feats.extract_text_features("briga com agressao")
    same = feats.features_similarity(fire, feats.extract_text_features("fogo na casa"))
    clash = feats.features_similarity(fire, fight)
    assert same == 1.0
    assert clash == pytest.approx(0.65)
    assert clash < same


def test_weapon_disagreement_lowers_score() -> None:
    armed = feats.extract_text_features("assalto com faca")
    unarmed = feats.extract_text_features("assalto sem violencia")
    assert feats.features_similarity(armed, unarmed) < feats.features_similarity(armed, armed)


def test_similarity_is_clamped() -> None:
    a = TextFeatures(isFire=True, isDrowning=True, isFracture=True, victim="child", victimCount=2)
    assert feats.features_similarity(a, a) == 1.0
    b = TextFeatures(hasWeapon=True, violence=3, victim="shop", isTrafficIncident=True, isAggression=True)
    c = TextFeatures(victim="woman", victimCount=5, isFire=True, highFootfall=True)
    assert feats.features_similarity(b, c) == 0.0


def test_time_context() -> None:
    # 2025-03-15 is a Saturday
    ctx = feats.extract_time_context(datetime(2025, 3, 15, 23, 0, tzinfo=timezone.utc))
    assert ctx.dayPart == "evening"
    assert ctx.isWeekend is True
    assert feats.extract_time_context(datetime(2025, 3, 10, 3, 0)).dayPart == "night"
    assert feats.extract_time_context(datetime(2025, 3, 10, 9, 0)).dayPart == "morning"
    assert feats.extract_time_context(datetime(2025, 3, 10, 15, 0)).dayPart == "afternoon"


def test_time_context_accepts_epoch_ms_and_iso() -> None:
    ms = int(datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc).timestamp() * 1000)
    assert feats.extract_time_context(ms).dayPart == "afternoon"
    assert feats.extract_time_context("2025-03-10T03:00:00Z").dayPart == "night"


def test_context_overrides() -> None:
    ctx = feats.build_context_features(
        datetime(2025, 3, 10, 9, 0),
        high_frequency_zone=True,
        neighbourhood_risk=0.7,
        overrides={"isHoliday": True, "weather": "rain"},
    )
    d = ctx.to_dict()
    assert d["isHoliday"] is True
    assert d["highFrequencyZone"] is True
    assert d["neighbourhoodRisk"] == 0.7
    assert d["weather"] == "rain"
    assert "extra" not in d


def test_context_similarity() -> None:
    a = feats.build_context_features(datetime(2025, 3, 10, 9, 0))
    assert feats.context_similarity(a, a) == pytest.approx(0.83)
    b = feats.build_context_features(datetime(2025, 3, 15, 23, 0), overrides={"isSocialUnrest": True})
    assert feats.context_similarity(a, b) < 0.5


def test_similarity_split_policy() -> None:
    policy = feats.similarity_split_policy(threshold=0.8)
    existing = {"payload": {"description": "incendio na casa"}, "createdAt": 1_741_600_000_000}
    assert policy(existing, {"description": "fogo na casa", "reportedAt": 1_741_600_600_000}) is False
    assert policy(existing, {"description": "briga com agressao", "reportedAt": 1_741_600_600_000}) is True
