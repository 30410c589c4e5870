"""
Deterministic fallback rewrite.

Used when no generative backend produced a rewrite. Four independent steps,
applied in order:

1. detect_intent: lexical detection of insults, profanity, dismissal, blame
2. rewrite_clauses: hostile clauses become a calm paraphrase (a leading
   greeting survives); other clauses get casual -> formal vocabulary
3. mask_contacts: phone numbers and email addresses become placeholders
4. normalize_text: de-shout, collapse punctuation/whitespace, capitalise,
   ensure terminal punctuation

Every step is a pure function of its input.
"""

import re
from dataclasses import dataclass, field

PHONE_PLACEHOLDER = "[contact number hidden]"
EMAIL_PLACEHOLDER = "mailto:[email hidden]"
PERSONAL_EMAIL_PLACEHOLDER = "mailto:[personal email hidden]"

FREE_MAIL_DOMAINS = {
    "gmail.com",
    "googlemail.com",
    "yahoo.com",
    "yahoo.co.uk",
    "hotmail.com",
    "outlook.com",
    "live.com",
    "msn.com",
    "aol.com",
    "icloud.com",
    "me.com",
    "proton.me",
    "protonmail.com",
    "gmx.com",
    "mail.com",
    "yandex.com",
}


def _words(*words: str) -> re.Pattern:
    alternatives = "|".join(sorted(words, key=len, reverse=True))
    return re.compile(rf"(?<![\w'])(?:{alternatives})(?![\w'])", re.IGNORECASE)


# Category -> pattern, in paraphrase priority order
INTENT_PATTERNS: dict[str, re.Pattern] = {
    "insult": _words(
        r"idiots?",
        r"stupid",
        r"morons?",
        r"dumb(?:ass)?",
        r"fools?",
        r"incompetent",
        r"useless",
        r"losers?",
        r"clowns?",
        r"pathetic",
        r"jerks?",
        r"imbeciles?",
    ),
    "blame": _words(
        r"(?:it'?s|this is) (?:all )?your fault",
        r"your fault",
        r"you always",
        r"you never",
        r"you ruined",
        r"you screwed(?: up)?",
        r"you messed(?: up)?",
        r"you broke",
    ),
    "dismissal": _words(
        r"shut up",
        r"who cares",
        r"whatever",
        r"get lost",
        r"go away",
        r"(?:i )?(?:don'?t|do not) care",
        r"nobody asked",
        r"leave me alone",
    ),
    "profanity": _words(
        r"damn(?:ed|it)?",
        r"hell",
        r"crap(?:py)?",
        r"wtf",
        r"shit\w*",
        r"bullshit",
        r"fuck\w*",
        r"piss(?:ed)?(?: off)?",
        r"bloody",
        r"bastards?",
        r"screw (?:you|this|that)",
    ),
}

PARAPHRASES: dict[str, str] = {
    "insult": "I have some concerns about this",
    "blame": "I think we should review what went wrong",
    "dismissal": "I would prefer to revisit this later",
    "profanity": "I am frustrated with this situation",
}

GREETING = re.compile(
    r"^\s*((?:hello|hi|hey|good (?:morning|afternoon|evening))"
    r"(?:\s+(?:team|all|everyone|guys|folks))?)\b[\s,!]*",
    re.IGNORECASE,
)

# Casual -> formal vocabulary and plain upgrades (phrases before single words)
VOCABULARY: dict[str, str] = {
    "gonna": "going to",
    "wanna": "want to",
    "gotta": "have to",
    "dunno": "do not know",
    "idk": "I do not know",
    "kinda": "somewhat",
    "sorta": "somewhat",
    "yeah": "yes",
    "yep": "yes",
    "nope": "no",
    "thx": "thank you",
    "ty": "thank you",
    "pls": "please",
    "plz": "please",
    "u": "you",
    "ur": "your",
    "asap": "as soon as possible",
    "btw": "by the way",
    "fyi": "for your information",
    "hey": "hello",
    "guys": "everyone",
    "lots of": "many",
    "a lot of": "many",
    "check out": "review",
    "figure out": "determine",
    "stuff": "items",
    "fix": "resolve",
    "ain't": "is not",
    "can't": "cannot",
    "won't": "will not",
}

_VOCABULARY_PATTERN = re.compile(
    r"(?<![\w'-])("
    + "|".join(re.escape(k) for k in sorted(VOCABULARY, key=len, reverse=True))
    + r")(?![\w'-])",
    re.IGNORECASE,
)

_CLAUSE_BREAK = re.compile(r"(?<=[.!?;,])\s+")
_TRAILING_PUNCTUATION = re.compile(r"[.!?;,\s]+$")

_EMAIL = re.compile(
    r"(?:mailto:)?[\w.+-]+@((?:[\w-]+\.)+[a-z]{2,})(?![\w.-]*@)",
    re.IGNORECASE,
)
_PHONE_CANDIDATE = re.compile(
    r"(?<![\w@+.-])"
    r"(?:"
    # +country code, optional (area), then digit groups
    r"\+\d{1,3}[\s.-]?(?:\(\d{1,4}\)[\s.-]?)?\d{1,4}(?:[\s.-]?\d{2,4}){1,4}"
    # NANP 3-3-4 with an optional leading 1
    r"|(?:1[\s.-])?(?:\(\d{3}\)\s?|\d{3}[\s.-])\d{3}[\s.-]\d{4}"
    # unseparated national or E.164 digits
    r"|\d{10,15}"
    r")"
    r"(?![\w@]|[.-]\d)"
)


@dataclass
class IntentReport:
    """Hostile-intent categories found in a piece of text."""

    categories: list[str] = field(default_factory=list)
    matches: list[str] = field(default_factory=list)

    @property
    def hostile(self) -> bool:
        return bool(self.categories)

    @property
    def primary(self) -> str | None:
        return self.categories[0] if self.categories else None


def detect_intent(text: str) -> IntentReport:
    """Step 1: pattern-match aggressive intent (categories in priority order)."""
    report = IntentReport()
    for category, pattern in INTENT_PATTERNS.items():
        found = [m.group(0) for m in pattern.finditer(text)]
        if found:
            report.categories.append(category)
            report.matches.extend(found)
    return report


def split_clauses(text: str) -> list[str]:
    """Split at punctuation followed by whitespace (keeps dotted numbers/emails intact)."""
    return [clause for clause in _CLAUSE_BREAK.split(text.strip()) if clause]


def _match_case(source: str, replacement: str) -> str:
    if source.isupper() and len(source) > 1:
        return replacement.upper()
    if source[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def normalize_vocabulary(text: str) -> str:
    """Replace casual vocabulary with formal equivalents, preserving case."""
    return _VOCABULARY_PATTERN.sub(
        lambda m: _match_case(m.group(1), VOCABULARY[m.group(1).lower()]), text
    )


def rewrite_clause(clause: str) -> str:
    """Step 2 for one clause: paraphrase if hostile, else normalize vocabulary."""
    report = detect_intent(clause)
    if not report.hostile:
        return normalize_vocabulary(clause)

    paraphrase = PARAPHRASES[report.primary]
    greeting = GREETING.match(clause)
    if greeting and not detect_intent(greeting.group(1)).hostile:
        return f"{normalize_vocabulary(greeting.group(1))}, {paraphrase}."
    return f"{paraphrase}."


def rewrite_clauses(text: str) -> str:
    """Step 2: rewrite-or-substitute clause by clause."""
    return " ".join(rewrite_clause(clause) for clause in split_clauses(text))


def _mask_email(match: re.Match) -> str:
    domain = match.group(1).lower()
    if domain in FREE_MAIL_DOMAINS:
        return PERSONAL_EMAIL_PLACEHOLDER
    return EMAIL_PLACEHOLDER


def _mask_phone(match: re.Match) -> str:
    candidate = match.group(0)
    digits = sum(ch.isdigit() for ch in candidate)
    if 8 <= digits <= 15:
        return PHONE_PLACEHOLDER
    return candidate


def mask_contacts(text: str) -> str:
    """Step 3: email addresses first (they may contain digits), then phone numbers."""
    masked = _EMAIL.sub(_mask_email, text)
    return _PHONE_CANDIDATE.sub(_mask_phone, masked)


def _is_shouting(text: str) -> bool:
    letters = [ch for ch in text if ch.isalpha()]
    if len(letters) < 4:
        return False
    upper = sum(ch.isupper() for ch in letters)
    return upper / len(letters) >= 0.8


def normalize_text(text: str) -> str:
    """Step 4: capitalization, punctuation and whitespace."""
    normalized = text.strip()
    if _is_shouting(normalized):
        normalized = normalized.lower()

    normalized = re.sub(r"([!?])[!?]+", r"\1", normalized)
    normalized = re.sub(r"\.{2,}", ".", normalized)
    normalized = re.sub(r",{2,}", ",", normalized)
    normalized = re.sub(r"\s+", " ", normalized)
    normalized = re.sub(r"\s+([,.!?;:])", r"\1", normalized)

    # Standalone "i" (also in contractions like i'm)
    normalized = re.sub(r"(?<![\w.'-])i(?=$|[\s,!?;:']|\.(?!\w))", "I", normalized)
    normalized = re.sub(
        r"(^[^\w\[]*|[.!?]\s+)([a-z])",
        lambda m: m.group(1) + m.group(2).upper(),
        normalized,
    )

    if normalized and normalized[-1] not in ".!?":
        normalized = _TRAILING_PUNCTUATION.sub("", normalized) + "."
    return normalized


def deterministic_rewrite(text: str) -> str:
    """
    Apply the four steps in order.

    Never returns an empty string for input with visible characters: if the
    steps yield nothing, the stripped input with contacts masked is returned.
    """
    rewritten = normalize_text(mask_contacts(rewrite_clauses(text)))
    if rewritten.strip(" ."):
        return rewritten
    return mask_contacts(text.strip()) or text
