"""
Constants for the chat corpus store, ranking and consolidation.
"""

# Ranking field weights: title > system > tool payload > body
TITLE_WEIGHT = 3.0
SYSTEM_WEIGHT = 2.0
TOOL_WEIGHT = 1.25
BODY_WEIGHT = 1.0

# Recency boost decays linearly to zero over this many days
RECENCY_WINDOW_DAYS = 180
RECENCY_MAX_BOOST = 0.25
MS_PER_DAY = 86_400_000

# Relationship classification
SIMILAR_THRESHOLD = 0.90
RELATED_THRESHOLD = 0.80
DEFAULT_RELATED_THRESHOLD = 0.70

# Topic extraction
TOPIC_MIN_WORD_LENGTH = 4
TOPICS_PER_BUNDLE = 5
TOPIC_STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "is", "are", "was", "were", "be", "been", "have", "has",
        "had", "do", "does", "did", "will", "would", "could", "should",
    }
)

# Pagination defaults
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
