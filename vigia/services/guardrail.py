# vigia/services/guardrail.py
"""
Content guardrail for public incident descriptions.

Blocks names of law-enforcement bodies and criminal organizations (and
their slang), PII (CPF, CNPJ, phone, e-mail, plates, proper names) and
insults. Rejections carry an anonymized suggestion and a neutral message
that never says which rule fired.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from vigia.db.strikes import AbuseStrikeStore
from vigia.errors import PrivacyBlockedError
from vigia.services.lexicon import (
    INSTITUTION_PHRASES,
    ORG_PHRASES,
    ORG_TOKENS,
    POLICE_TOKENS,
    PROFANITY,
    SHORT_TERM_MAX,
    SLANG_TOKENS,
)
from vigia.services.runtime_config import RuntimeConfig, RuntimeConfigProvider
from vigia.services.text_norm import replace_folded, tight_form, tokens
from vigia.services.tracing import mask_token

log = logging.getLogger(__name__)

KNOWN_PLACE_MASK = " localconhecido "
REDACTED = "[removido]"

# ---------------- PII patterns ----------------
_UPPER = "A-ZÁÃÂÀÉÊÍÓÔÕÚÇ"
_LOWER = "a-záãâàéêíóôõúç"

RE_CNPJ = re.compile(r"(?<!\d)\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2}(?!\d)")
RE_CPF = re.compile(r"(?<!\d)\d{3}\.?\d{3}\.?\d{3}-?\d{2}(?!\d)")
RE_EMAIL = re.compile(r"\b[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}\b", re.IGNORECASE)
RE_PHONE = re.compile(r"(?<![\d])(?:\+?55\s?)?(?:\(?\d{2}\)?\s?)?9?\d{4}[-.\s]?\d{4}(?!\d)")
# old (ABC-1234) and Mercosul (ABC1D23) plates, uppercase only
RE_PLATE = re.compile(r"\b[A-Z]{3}[- ]?\d[A-Z0-9]\d{2}\b")
RE_PROPER_NAME = re.compile(rf"\b[{_UPPER}][{_LOWER}]+(?:\s+[{_UPPER}][{_LOWER}]+)+\b")

PII_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("cnpj", RE_CNPJ),
    ("cpf", RE_CPF),
    ("email", RE_EMAIL),
    ("phone", RE_PHONE),
    ("plate", RE_PLATE),
    ("proper_name", RE_PROPER_NAME),
)


@dataclass(frozen=True)
class ForbiddenSignals:
    has_forbidden: bool
    terms: Tuple[str, ...] = ()

    @property
    def score(self) -> int:
        return 1 if self.has_forbidden else 0


@dataclass
class GuardrailResult:
    ok: bool
    code: Optional[str] = None
    suggestion: str = ""
    message: str = ""
    # detector families that fired; logged, never returned to the client
    signals: Tuple[str, ...] = field(default=(), repr=False)

    def to_dict(self) -> Dict[str, object]:
        if self.ok:
            return {"ok": True}
        return {"ok": False, "code": self.code, "message": self.message, "suggestion": self.suggestion}


# ---------------- Term tables ----------------
def _term_tables(extra_aliases: Iterable[str] = ()) -> Tuple[Dict[str, str], Dict[str, str]]:
    """(phrases, tokens) as {tight form: display term}."""
    phrases: Dict[str, str] = {}
    toks: Dict[str, str] = {}
    for raw in INSTITUTION_PHRASES + ORG_PHRASES:
        phrases.setdefault(tight_form(raw), raw)
    for raw in POLICE_TOKENS | ORG_TOKENS | SLANG_TOKENS:
        toks.setdefault(tight_form(raw), raw)
    for raw in extra_aliases or ():
        t = tight_form(raw)
        if not t:
            continue
        if len(t) <= SHORT_TERM_MAX:
            toks.setdefault(t, raw)
        else:
            phrases.setdefault(t, raw)
    return phrases, toks


def _candidate_tokens(text: str) -> Set[str]:
    """Tokens plus spelled-out acronyms ("p.c.c.", "c v" -> pcc, cv)."""
    toks = tokens(text)
    out = set(toks)
    run: List[str] = []
    for tok in toks + [""]:
        if len(tok) == 1:
            run.append(tok)
            continue
        if len(run) > 1:
            out.add("".join(run))
        run = []
    return out


def forbidden_term_signals(text: str, extra_aliases: Sequence[str] = ()) -> ForbiddenSignals:
    phrases, toks = _term_tables(extra_aliases)
    tight = tight_form(text)
    hits: List[str] = []
    for t, raw in phrases.items():
        if t in tight:
            hits.append(raw)
    for tok in sorted(_candidate_tokens(text)):
        if tok in toks:
            hits.append(tok.upper())
    return ForbiddenSignals(has_forbidden=bool(hits), terms=tuple(dict.fromkeys(hits)))


def pii_signals(text: str) -> List[str]:
    s = str(text or "")
    return [name for name, pattern in PII_PATTERNS if pattern.search(s)]


def has_profanity(text: str) -> bool:
    bad = {tight_form(w) for w in PROFANITY}
    return any(tok in bad for tok in tokens(text))


def mask_known_places(text: str, places: Iterable[str] = ()) -> str:
    """
    Replace whitelisted place names before any forbidden-term matching, so
    e.g. an avenue named after a police body is not read as a mention of it.
    """
    if not text or not places:
        return text
    ordered = sorted((str(p) for p in places if p), key=len, reverse=True)
    return replace_folded(text, ordered, KNOWN_PLACE_MASK)


def anonymize(text: str, extra_aliases: Sequence[str] = ()) -> str:
    out = str(text or "")
    out = RE_CNPJ.sub("[cnpj]", out)
    out = RE_CPF.sub("[cpf]", out)
    out = RE_EMAIL.sub("[email]", out)
    out = RE_PHONE.sub("[telefone]", out)
    out = RE_PLATE.sub("[placa]", out)

    phrases, toks = _term_tables(extra_aliases)
    long_terms = sorted(set(phrases.values()), key=len, reverse=True)
    out = replace_folded(out, long_terms, REDACTED)
    short_terms = sorted(set(toks.values()) | set(PROFANITY), key=len, reverse=True)
    out = replace_folded(out, short_terms, REDACTED, whole_word=True)

    out = RE_PROPER_NAME.sub("[nome]", out)
    return out


class Guardrail:
    """
    Gate run on every description before it reaches storage.

    The strike store is consulted first: a blocked user gets the same
    generic rejection as a content violation. Each content rejection adds a
    strike for the user.
    """

    def __init__(
        self,
        config_provider: Optional[RuntimeConfigProvider] = None,
        strikes: Optional[AbuseStrikeStore] = None,
    ):
        self.config_provider = config_provider
        self.strikes = strikes

    def _config(self) -> RuntimeConfig:
        if self.config_provider is None:
            return RuntimeConfig()
        return self.config_provider.get()

    def _reject(self, text: str, cfg: RuntimeConfig, signals: Tuple[str, ...]) -> GuardrailResult:
        return GuardrailResult(
            ok=False,
            code=PrivacyBlockedError.code,
            message=PrivacyBlockedError.message,
            suggestion=anonymize(text, cfg.forbidden_aliases),
            signals=signals,
        )

    def check(
        self, text: Optional[str], user_id: Optional[str] = None, *, record_strike: bool = True
    ) -> GuardrailResult:
        """
        Screen `text`. A rejection adds a strike for `user_id` unless
        `record_strike` is False (dry runs that must not count against anyone).
        """
        text = str(text or "")
        if user_id and self.strikes is not None and self.strikes.is_blocked(user_id):
            log.warning("guardrail: blocked user %s", mask_token(user_id))
            return self._reject(text, self._config(), ("blocked",))

        cfg = self._config()
        masked = mask_known_places(text, cfg.known_places)

        signals: List[str] = []
        if forbidden_term_signals(masked, cfg.forbidden_aliases).has_forbidden:
            signals.append("forbidden")
        signals.extend(pii_signals(masked))
        if has_profanity(masked):
            signals.append("profanity")

        if not signals:
            return GuardrailResult(ok=True)

        strike = None
        if record_strike and user_id and self.strikes is not None:
            strike = self.strikes.add_strike(user_id)
        log.warning(
            "guardrail: rejected len=%d signals=%s user=%s blocked_until=%s",
            len(text),
            signals,
            mask_token(user_id),
            strike.blocked_until if strike else None,
        )
        return self._reject(text, cfg, tuple(signals))

    def enforce(self, text: Optional[str], user_id: Optional[str] = None) -> None:
        """check() that raises PrivacyBlockedError on rejection."""
        result = self.check(text, user_id)
        if not result.ok:
            raise PrivacyBlockedError(suggestion=result.suggestion)
