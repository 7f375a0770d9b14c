# vigia/services/incident_features.py
"""
Structured signals extracted from a free-text report, plus hand-tuned
similarity scores between two reports and between two time/place contexts.

Nothing here touches storage. The dedup store merges every same-bucket
report unless it is given a split policy; `similarity_split_policy` builds
one from these scores.
"""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from vigia.services.text_norm import fold

# ---------------- Lexicons (PT/FR) ----------------
WEAPONS = (
    "arma", "arma branca", "faca", "facada", "punhal", "canivete", "revolver",
    "pistola", "machete", "arma de fogo", "tiros",
    "arme", "arme blanche", "couteau", "coup de couteau", "pistolet", "tirs",
    "bastao", "porrete", "garrafa", "bottle", "baton",
)
BARE_HANDS = (
    "soco", "socos", "mao", "maos", "empurrao", "murro", "tapa",
    "poings", "coups de poing", "gifle", "bousculade",
)
ROBBERY = (
    "assalto", "roubo", "furto", "arrastao", "celular roubado",
    "vol", "braquage", "arrachage", "pickpocket",
)
# first match wins, most vulnerable first
VICTIMS = (
    ("baby", ("bebe", "nourrisson")),
    ("child", ("crianca", "menino", "menina", "enfant", "garcon")),
    ("woman", ("mulher", "moca", "garota", "femme", "dame", "fille")),
    ("elderly", ("idoso", "idosa", "pessoa idosa", "vieux", "vieille", "age")),
    ("man", ("homem", "rapaz", "garoto", "homme")),
    ("animal", ("cachorro", "cao", "gato", "animal", "chien", "chat")),
    ("property", ("carro", "veiculo", "moto", "bicicleta", "bike", "voiture", "velo", "objet")),
    ("shop", ("loja", "lojas", "comerciante", "lojista", "vendedor", "commerce", "commercant")),
)
VULNERABLE_VICTIMS = frozenset({"baby", "child", "elderly", "woman"})
HIGH_FOOTFALL_PLACES = (
    "mercado", "feira", "shopping", "centro", "terminal", "rodoviaria",
    "estacao", "praca", "praia", "beira mar", "calcadao",
    "escola", "universidade", "estadio", "igreja",
    "marche", "centre", "gare", "place", "plage",
)
AGGRESSION = ("agressao", "violencia", "briga", "conflito", "agression", "violence")
FIRE = ("incendio", "fogo", "queimando", "queimada", "incendie", "feu")
TRAFFIC = (
    "acidente", "colisao", "batida", "choque", "capotamento", "capotagem",
    "acidente de transito", "transito", "trafego", "chauffard", "motorista",
    "alcoolizado", "ultrapassagem", "excesso de velocidade", "velocidade",
)
DROWNING = ("afogamento", "afogado", "noyade", "se afogou", "se afogando")
FRACTURES = (
    "perna quebrada", "braco quebrado", "perna fraturada", "braco fraturado",
    "fratura", "osso quebrado", "membro quebrado", "jambe cassee", "bras casse",
    "fracture",
)

RE_FIREARM = re.compile(r"tiro|tiros|disparo|arma de fogo|tirs")

_COUNT_NOUN = r"(?:vitim\w*|victim\w*|feridos?|pessoas?|personnes?)"
RE_VICTIM_DIGITS = re.compile(rf"(\d{{1,3}})\s*{_COUNT_NOUN}")
NUMBER_WORDS: Dict[str, int] = {
    "um": 1, "uma": 1, "dois": 2, "duas": 2, "tres": 3, "quatro": 4,
    "cinco": 5, "seis": 6, "sete": 7, "oito": 8, "nove": 9, "dez": 10,
    "un": 1, "une": 1, "deux": 2, "trois": 3, "quatre": 4, "cinq": 5,
}
RE_VICTIM_WORDS = re.compile(rf"\b({'|'.join(NUMBER_WORDS)})\b\s+{_COUNT_NOUN}")

CONTEXT_FLAGS = ("isHoliday", "isHolidayEve", "isSchoolVacation", "isElectionPeriod", "isSocialUnrest")


def _has_any(folded: str, terms: Iterable[str]) -> bool:
    return any(t in folded for t in terms)


def _has_word(folded: str, terms: Iterable[str]) -> bool:
    return any(re.search(rf"\b{re.escape(t)}\b", folded) for t in terms)


# ---------------- Text features ----------------
@dataclass
class TextFeatures:
    hasWeapon: bool = False
    isBareHands: bool = False
    isRobbery: bool = False
    violence: int = 0
    victim: str = "generic"
    highFootfall: bool = False
    isAggression: bool = False
    isFire: bool = False
    isTrafficIncident: bool = False
    isDrowning: bool = False
    isFracture: bool = False
    victimCount: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_victim_count(text: Optional[str]) -> int:
    """'3 feridos' -> 3, 'dois feridos' -> 2, nothing found -> 0."""
    folded = fold(text or "")
    m = RE_VICTIM_DIGITS.search(folded)
    if m:
        return max(0, int(m.group(1)))
    m = RE_VICTIM_WORDS.search(folded)
    if m:
        return NUMBER_WORDS[m.group(1)]
    return 0


def _victim_kind(folded: str) -> str:
    for kind, words in VICTIMS:
        if _has_word(folded, words):
            return kind
    return "generic"


def extract_text_features(text: Optional[str]) -> TextFeatures:
    t = fold(text or "")
    has_weapon = _has_any(t, WEAPONS)
    bare_hands = _has_any(t, BARE_HANDS)

    violence = 0
    if has_weapon:
        violence = 3 if RE_FIREARM.search(t) else 2
    elif bare_hands:
        violence = 1

    return TextFeatures(
        hasWeapon=has_weapon,
        isBareHands=bare_hands,
        isRobbery=_has_any(t, ROBBERY),
        violence=violence,
        victim=_victim_kind(t),
        highFootfall=_has_word(t, HIGH_FOOTFALL_PLACES),
        isAggression=_has_word(t, AGGRESSION),
        isFire=_has_word(t, FIRE),
        isTrafficIncident=_has_any(t, TRAFFIC),
        isDrowning=_has_any(t, DROWNING),
        isFracture=_has_any(t, FRACTURES),
        victimCount=parse_victim_count(text),
    )


# ---------------- Context ----------------
@dataclass
class ContextFeatures:
    dayPart: str = "morning"
    isWeekend: bool = False
    isHoliday: bool = False
    isHolidayEve: bool = False
    isSchoolVacation: bool = False
    isElectionPeriod: bool = False
    isSocialUnrest: bool = False
    highFrequencyZone: bool = False
    neighbourhoodRisk: float = 0.0
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out.update(out.pop("extra"))
        return out


def _to_datetime(value: Any) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        # epoch ms, as stored on records
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return datetime.now(timezone.utc)
    return datetime.now(timezone.utc)


def day_part(hour: int) -> str:
    if hour < 6:
        return "night"
    if hour < 12:
        return "morning"
    if hour < 18:
        return "afternoon"
    return "evening"


def extract_time_context(when: Any = None) -> ContextFeatures:
    """
    Day part and weekend flag, read in the timezone the value carries.
    Calendar flags (holiday, vacation, elections, unrest) have no local data
    source and default to False; callers pass them as overrides.
    """
    dt = _to_datetime(when)
    return ContextFeatures(dayPart=day_part(dt.hour), isWeekend=dt.weekday() >= 5)


def build_context_features(
    created_at: Any = None,
    high_frequency_zone: bool = False,
    neighbourhood_risk: float = 0.0,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ContextFeatures:
    ctx = extract_time_context(created_at)
    ctx.highFrequencyZone = bool(high_frequency_zone)
    ctx.neighbourhoodRisk = float(neighbourhood_risk or 0.0)
    for key, value in (overrides or {}).items():
        if key != "extra" and hasattr(ctx, key):
            setattr(ctx, key, value)
        else:
            ctx.extra[key] = value
    return ctx


# ---------------- Similarity ----------------
def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def features_similarity(a: Optional[TextFeatures], b: Optional[TextFeatures]) -> float:
    if a is None or b is None:
        return 0.5
    s = 0.5

    s += 0.18 if a.hasWeapon == b.hasWeapon else -0.25

    dv = abs((a.violence or 0) - (b.violence or 0))
    s += 0.12 if dv == 0 else 0.03 if dv == 1 else -0.10

    va, vb = a.victimCount or 0, b.victimCount or 0
    if va == vb and va > 0:
        s += 0.12
    elif va > 0 or vb > 0:
        s += 0.03 if abs(va - vb) == 1 else -0.08

    if a.victim == b.victim:
        s += 0.16 if a.victim in VULNERABLE_VICTIMS else 0.09
    elif {a.victim, b.victim} == {"shop", "woman"}:
        s -= 0.15
    else:
        s -= 0.05

    if a.isTrafficIncident and b.isTrafficIncident:
        s += 0.15
        if va + vb >= 2:
            s += 0.06
    elif a.isTrafficIncident != b.isTrafficIncident:
        s -= 0.18

    if a.isDrowning and b.isDrowning:
        s += 0.20
    if a.isFracture and b.isFracture:
        s += 0.15
    s += 0.06 if a.highFootfall == b.highFootfall else -0.03
    if a.isAggression and b.isAggression:
        s += 0.10
    if a.isFire and b.isFire:
        s += 0.16
    # fire vs aggression are different events
    if (a.isAggression and b.isFire) or (a.isFire and b.isAggression):
        s -= 0.30
    return _clamp01(s)


def context_similarity(a: Optional[ContextFeatures], b: Optional[ContextFeatures]) -> float:
    if a is None or b is None:
        return 0.5
    s = 0.5
    s += 0.12 if a.dayPart == b.dayPart else -0.05
    s += 0.08 if a.isWeekend == b.isWeekend else -0.04
    s += 0.08 if a.highFrequencyZone == b.highFrequencyZone else -0.04
    for flag in CONTEXT_FLAGS:
        fa, fb = bool(getattr(a, flag)), bool(getattr(b, flag))
        if fa and fb:
            s += 0.06
        elif fa != fb:
            s -= 0.06
    diff_risk = abs((a.neighbourhoodRisk or 0) - (b.neighbourhoodRisk or 0))
    if diff_risk < 0.15:
        s += 0.05
    elif diff_risk > 0.5:
        s -= 0.05
    return _clamp01(s)


# ---------------- Split policy ----------------
SplitPolicy = Callable[[Dict[str, Any], Dict[str, Any]], bool]


def similarity_split_policy(threshold: float = 0.5, context_weight: float = 0.3) -> SplitPolicy:
    """
    Policy for IncidentStore(split_policy=...): given the stored incident item
    and the incoming report `{description, reportedAt}`, return True when the
    blended similarity falls below `threshold`, i.e. the report describes a
    different event and gets its own sibling record.
    """
    context_weight = _clamp01(context_weight)

    def policy(existing: Dict[str, Any], incoming: Dict[str, Any]) -> bool:
        payload = existing.get("payload") or {}
        fa = extract_text_features(payload.get("description", ""))
        fb = extract_text_features(incoming.get("description", ""))
        ca = build_context_features(existing.get("createdAt"))
        cb = build_context_features(incoming.get("reportedAt"))
        score = (1 - context_weight) * features_similarity(fa, fb) + context_weight * context_similarity(ca, cb)
        return score < threshold

    return policy
