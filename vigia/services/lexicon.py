# vigia/services/lexicon.py
"""
Built-in term lists for the content guardrail.

Phrases are matched on the tight form (spacing, punctuation, accents and
leet spellings removed), so they also hit inside longer words
("policial", "milicianos"). Tokens are short or ambiguous words that only
count as a whole token or as a spelled-out acronym ("p.c.c.", "c v").
The remote config can extend both through `forbiddenAliases`.
"""
from __future__ import annotations

from typing import FrozenSet, Tuple

# law-enforcement bodies and militias
INSTITUTION_PHRASES: Tuple[str, ...] = (
    "policia", "polícia", "policia civil", "policia militar", "policia federal",
    "milicia", "milícia", "miliciano", "milicianos",
    "faccao", "facção", "faccoes", "facções",
)

# criminal organizations (national and regional)
ORG_PHRASES: Tuple[str, ...] = (
    "comando vermelho",
    "primeiro comando da capital",
    "primeiro comando",
    "terceiro comando puro",
    "terceiro comando",
    "amigos dos amigos",
    "familia do norte",
    "família do norte",
    "guardioes do estado",
    "guardiões do estado",
    "bonde dos 40",
    "primeiro grupo catarinense",
    "bala na cara",
    "okaida",
    "al qaeda",
    "sindicato do crime",
    "crime organizado",
)

POLICE_TOKENS: FrozenSet[str] = frozenset({
    "pm", "pf", "pc", "prf", "bope", "rota", "rotam", "choque", "bpchoque",
    "bop", "gate", "cotar", "bpm", "viatura", "farda",
})

ORG_TOKENS: FrozenSet[str] = frozenset({
    "pcc", "cv", "tcp", "ada", "fdn", "gde", "pgc", "b40",
})

SLANG_TOKENS: FrozenSet[str] = frozenset({"gambe", "gambé", "cana", "verme"})

# insults and slurs; kept short, the real list lives in remote config
PROFANITY: FrozenSet[str] = frozenset({
    "otario", "otaria", "idiota", "burro", "burra", "imbecil",
    "viado", "bicha", "traveco", "macaco", "porca", "vagabunda", "vagabundo",
})

# Tight forms at or under this length are too ambiguous for substring hits.
SHORT_TERM_MAX = 4

# Minimal list used when remote config has never loaded.
DEFAULT_FORBIDDEN_ALIASES: Tuple[str, ...] = ()
DEFAULT_KNOWN_PLACES: Tuple[str, ...] = ()
