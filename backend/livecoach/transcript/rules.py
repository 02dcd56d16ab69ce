"""
Heuristics used by the aggregator and the session router.
Changing these changes system behavior.
"""

# Question detection
QUESTION_TERMINATORS = ("?",)
QUESTION_LEAD_WORDS = (
    "what",
    "how",
    "why",
    "when",
    "where",
    "who",
    "can",
    "could",
    "would",
    "tell",
    "describe",
    "explain",
)

# Speaker labels
INTERVIEWER_LABEL_MARKERS = ("interviewer",)
CANDIDATE_LABEL_MARKERS = ("interviewee", "candidate")

# Recent finals are kept for this many echo windows
RECENT_FINALS_WINDOW_FACTOR = 2
