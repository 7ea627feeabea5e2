"""Application-wide constants and configuration values.

This module centralizes all magic numbers and hardcoded values used throughout
the application, making them easier to maintain and adjust.
"""

# Multiple Choice
DECOY_COUNT = 3
"""Number of incorrect options shown beside the correct answer."""

DECOY_MAX_OFFSET = 20
"""Decoys are drawn as answer +/- offset with offset in [1, DECOY_MAX_OFFSET]."""

MAX_OPTION_ATTEMPTS = 1000
"""Cap on random draws when collecting decoys for one question."""

# Dashboard and History
RECENT_ATTEMPTS_LIMIT = 5
"""Number of recent attempts shown on the dashboard."""

DAILY_USAGE_WINDOW = 7
"""Number of usage days shown on the dashboard."""

WRONG_ANSWER_ATTEMPT_LIMIT = 20
"""Number of recent attempts scanned for repeated mistakes."""

# Assessment
ASSESSMENT_ATTEMPT_LIMIT = 30
"""Number of recent attempts summarized in the assessment prompt."""

ASSESSMENT_MIN_ATTEMPTS = 5
"""Minimum completed attempts before an assessment is requested."""

NOT_ENOUGH_DATA_MESSAGE = (
    "I can't wait to see your results! Complete at least 5 quizzes, "
    "and I'll give you my analysis."
)
"""Returned instead of an assessment when history is too short."""

ASSESSMENT_FALLBACK_MESSAGE = (
    "I couldn't connect to my thoughts right now. Try again in a bit!"
)
"""Returned when the assessment service fails."""

# Rate Limiting
DEFAULT_RATE_LIMIT = "100/minute"
"""Default request budget per client IP."""
