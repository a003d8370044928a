"""
Tala - Query Vocabulary & Fixed Context Blocks
================================================
Single source of truth for every keyword list and phrase pattern used to
classify queries, plus the fixed text blocks injected into rendered
contexts.  The keyword scorer, the query analyzer and the cache-key
normaliser all read from this module so the lists cannot drift apart.

Exports
-------
INSTITUTION_NAME, INSTITUTION_ALIASES,
IDENTITY_BLOCK, FALLBACK_IDENTITY_BLOCK, SUGGEST_MORE_BLOCK, SCHEDULE_HEADER,
CALENDAR_TERMS_PATTERN, CALENDAR_INTENT_PATTERN, DATE_TERMS_PATTERN,
COMPREHENSIVE_TERMS, PLURAL_TERMS, LISTING_PATTERN, BASIC_QUERY_PATTERN,
EXACT_SECTION_ROUTES, SECTION_KEYWORDS, SEMESTER_PATTERNS,
MONTH_NAMES, MONTH_ABBREVIATIONS, QUERY_SYNONYMS,
CALENDAR_SECTION, CALENDAR_EVENT_TYPE, CALENDAR_CHUNK_TYPES.
"""

import re

# ══════════════════════════════════════════════════════════════════════
#  INSTITUTION IDENTITY
# ══════════════════════════════════════════════════════════════════════

INSTITUTION_NAME: str = "Davao Oriental State University"
INSTITUTION_ALIASES: tuple[str, ...] = ("dorsu", "davao oriental state university")

IDENTITY_BLOCK: str = """## DAVAO ORIENTAL STATE UNIVERSITY (DOrSU)
**Full Name:** Davao Oriental State University
**Type:** State-funded research-based coeducational higher education institution
**Location:** Mati City, Davao Oriental, Philippines
**Founded:** December 13, 1989

"""

# Rendered when ranking produced nothing at all.
FALLBACK_IDENTITY_BLOCK: str = """## DAVAO ORIENTAL STATE UNIVERSITY (DOrSU)
Davao Oriental State University is a state university in Mati City, Davao Oriental, Philippines.
No knowledge-base entries matched this question.
"""

SUGGEST_MORE_BLOCK: str = """

**Would you like to know more about:**
• DOrSU's history and founding
• Academic programs and faculties
• Leadership and organizational structure
• Core values and mission
• Campus locations and enrollment"""

SCHEDULE_HEADER: str = "\n## SCHEDULE EVENTS AND ANNOUNCEMENTS\n\n"


# ══════════════════════════════════════════════════════════════════════
#  CALENDAR INTENT
# ══════════════════════════════════════════════════════════════════════

CALENDAR_TERMS_PATTERN: re.Pattern[str] = re.compile(
    r"\b(date|dates|event|events|announcement|announcements|schedule|schedules|calendar|upcoming"
    r"|this\s+(week|month|year)|deadline|deadlines|holiday|holidays|academic\s+calendar|semester"
    r"|enrollment\s+period|registration|exam\s+schedule|class\s+schedule|timeline|time\s+table)\b",
    re.IGNORECASE,
)

CALENDAR_INTENT_PATTERN: re.Pattern[str] = re.compile(
    r"\b(when\s+(is|are|will|does)|what\s+(date|dates|time|schedule)"
    r"|tell\s+me\s+(about\s+)?(the\s+)?(schedule|dates?|events?))\b",
    re.IGNORECASE,
)

MONTH_NAMES: tuple[str, ...] = ("january", "february", "march", "april", "may", "june", "july", "august", "september", "october", "november", "december")
MONTH_ABBREVIATIONS: tuple[str, ...] = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
_WEEKDAYS: tuple[str, ...] = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DATE_TERMS_PATTERN: re.Pattern[str] = re.compile(
    r"\b(" + "|".join(MONTH_NAMES + MONTH_ABBREVIATIONS + _WEEKDAYS)
    + r"|week|weekend|today|tomorrow|tonight|upcoming|month|year|next|soon|20\d{2})\b",
    re.IGNORECASE,
)

# First matching pattern wins.
SEMESTER_PATTERNS: tuple[tuple[re.Pattern[str], int | str], ...] = (
    (re.compile(r"\b(1st|first)\s+semester\b", re.IGNORECASE), 1),
    (re.compile(r"\b(2nd|second)\s+semester\b", re.IGNORECASE), 2),
    (re.compile(r"\boff\s+semester\b", re.IGNORECASE), "Off"),
    (re.compile(r"\bsemester\s+(1|one)\b", re.IGNORECASE), 1),
    (re.compile(r"\bsemester\s+(2|two)\b", re.IGNORECASE), 2),
    (re.compile(r"\b(1|first)\s+sem\b", re.IGNORECASE), 1),
    (re.compile(r"\b(2|second)\s+sem\b", re.IGNORECASE), 2),
)

CALENDAR_SECTION: str = "schedule_events"
CALENDAR_EVENT_TYPE: str = "calendar_event"
CALENDAR_CHUNK_TYPES: frozenset[str] = frozenset({"calendar_event", "schedule_event", "event", "announcement", "schedule"})


# ══════════════════════════════════════════════════════════════════════
#  COMPREHENSIVE / LISTING
# ══════════════════════════════════════════════════════════════════════

COMPREHENSIVE_TERMS: tuple[str, ...] = (
    "core values", "mission", "missions", "mandate", "objectives",
    "graduate outcomes", "quality commitments", "president", "vice president", "vice presidents",
    "leadership", "chancellor", "board", "governance", "administration",
    "history", "faculties", "faculty", "programs", "programme", "enrollment",
    "campuses", "campus", "deans", "dean", "directors", "director",
    "events", "schedules", "calendar", "announcements", "dates", "deadlines",
)

PLURAL_TERMS: tuple[str, ...] = (
    "faculties", "programs", "courses", "deans", "directors", "campuses",
    "values", "missions", "objectives", "commitments", "outcomes",
    "events", "schedules", "announcements", "dates", "deadlines",
    "presidents", "vice presidents", "chancellors", "executives",
)

LISTING_PATTERN: re.Pattern[str] = re.compile(r"\b(list|all|every|show\s+all|what\s+are\s+the|enumerate)\b", re.IGNORECASE)

BASIC_QUERY_PATTERN: re.Pattern[str] = re.compile(
    r"^(what\s+is|what's|tell\s+me\s+about)\s+(" + "|".join(INSTITUTION_ALIASES) + r")\b",
    re.IGNORECASE,
)

# Keyword → section lookup.  Longer phrases are checked first.
SECTION_KEYWORDS: dict[str, str] = {
    "vice presidents": "leadership",
    "vice president": "leadership",
    "president": "leadership",
    "leadership": "leadership",
    "faculties": "faculties",
    "faculty": "faculties",
    "colleges": "faculties",
    "programs": "programs",
    "programme": "programs",
    "courses": "programs",
    "campuses": "campuses",
    "campus": "campuses",
    "deans": "deans",
    "directors": "offices",
    "offices": "offices",
    "history": "history",
    "core values": "values",
    "graduate outcomes": "values",
    "hymn": "hymn",
}

# Vision / mission fast path: every chunk of the routed section gets the
# same top score.
EXACT_SECTION_ROUTES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b(vision|mission|missions)\b", re.IGNORECASE), "vision_mission"),
    (re.compile(r"\b(mandate|quality\s+policy|charter)\b", re.IGNORECASE), "values"),
)


# ══════════════════════════════════════════════════════════════════════
#  CACHE-KEY SYNONYM FOLDING
# ══════════════════════════════════════════════════════════════════════
# Applied to the *start* of the lower-cased query only.  Longest prefix
# first so "what is the date of" wins over "what is the date".

QUERY_SYNONYMS: tuple[tuple[str, str], ...] = tuple(sorted((
    ("what is the date of", "date"),
    ("what is the date", "date"),
    ("what date is", "date"),
    ("when is the", "date"),
    ("when is", "date"),
    ("when are the", "date"),
    ("when are", "date"),
    ("when will", "date"),
    ("what time is", "time"),
    ("what are the", "list"),
    ("list all the", "list"),
    ("list all", "list"),
    ("show all", "list"),
    ("show me all", "list"),
    ("tell me about", "about"),
    ("what's", "what is"),
    ("who is the", "who is"),
), key=lambda pair: len(pair[0]), reverse=True))
