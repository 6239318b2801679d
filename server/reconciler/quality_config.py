"""
Quality and completeness configuration for record reconciliation
"""

# Fields a citation cannot be formatted without, per item type
REQUIRED_CITATION_FIELDS = {
    "journalArticle": ["title", "creators", "date", "publicationTitle"],
    "book": ["title", "creators", "date", "publisher"],
    "bookSection": ["title", "creators", "date", "bookTitle"],
    "bookChapter": ["title", "creators", "date", "bookTitle"],
    "conferencePaper": ["title", "creators", "date"],
    "thesis": ["title", "creators", "date", "university"],
    "report": ["title", "creators", "date", "institution"],
    "webpage": ["title", "url"],
    "default": ["title", "creators", "date"],
}

# Fields that make a citation complete but whose absence is tolerated
RECOMMENDED_CITATION_FIELDS = {
    "journalArticle": ["volume", "issue", "pages", "DOI", "url", "abstractNote"],
    "book": ["ISBN", "place", "abstractNote"],
    "bookSection": ["pages", "publisher", "ISBN"],
    "bookChapter": ["pages", "publisher", "ISBN"],
    "conferencePaper": ["proceedingsTitle", "pages", "DOI"],
    "thesis": ["place", "abstractNote"],
    "report": ["reportNumber", "url"],
    "webpage": ["websiteTitle", "accessDate"],
    "default": ["abstractNote", "url"],
}

# Cascade thresholds
CASCADE_CONFIG = {
    "min_title_search_length": 10,  # title searches need at least this many chars
    "best_match_prefix": 30,        # chars compared when picking the best candidate
    "min_abstract_length": 20,      # shorter reconstructed abstracts are dropped
}

# Creator names matching any of these are synthetic import artefacts
PLACEHOLDER_AUTHOR_PATTERNS = [
    r"last\d+",
    r"\btest\b",
    r"placeholder",
    r"example",
]

# AI fallback values presumed hallucinated
HALLUCINATION_EXACT_VALUES = {"unknown", "n/a", "none", "null"}
HALLUCINATION_SUBSTRINGS = ["placeholder", "example"]
HALLUCINATION_PREFIX_PATTERN = r"^test\s"
