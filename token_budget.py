"""Token budget management: per-task generation configs and input truncation.

Provides:
  - Per-task generation settings (temperature, top_p, max_tokens, timeout)
  - Input truncation helpers (resume, JD text)
"""

import logging

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Per-task generation configs
# ---------------------------------------------------------------------------
# Questions want variety, feedback a little less, the score is a single
# number and should be as deterministic as the model allows.

TASK_BUDGETS = {
    'questions': {'max_tokens': 2048, 'temperature': 0.8, 'top_p': 0.95, 'timeout': 30.0},
    'feedback':  {'max_tokens': 2048, 'temperature': 0.7, 'top_p': 0.95, 'timeout': 30.0},
    'score':     {'max_tokens': 10,   'temperature': 0.3, 'top_p': 0.8,  'timeout': 30.0},
}

# ---------------------------------------------------------------------------
# Input size limits (chars)
# ---------------------------------------------------------------------------

INPUT_LIMITS = {
    'resume_text': {
        'questions': 6000,
        'feedback': 4000,
    },
    'jd_text': {
        'questions': 4000,
        'feedback': 4000,
        'score': 3000,
    },
    'answer': 4000,
}


def get_generation_config(task: str) -> dict:
    """Return a copy of the generation config for a task."""
    return dict(TASK_BUDGETS[task])


# ---------------------------------------------------------------------------
# Text truncation helpers
# ---------------------------------------------------------------------------

def truncate_text(text: str, max_chars: int, label: str = 'text') -> str:
    """Truncate text to max_chars. Logs if truncation occurs."""
    if not text:
        return ''
    if len(text) <= max_chars:
        return text
    logger.info('Truncated %s: %d → %d chars', label, len(text), max_chars)
    return text[:max_chars]


def truncate_resume(resume_text: str, task: str) -> str:
    limit = INPUT_LIMITS['resume_text'].get(task, 4000)
    return truncate_text(resume_text, limit, f'resume ({task})')


def truncate_jd(jd_text: str, task: str) -> str:
    limit = INPUT_LIMITS['jd_text'].get(task, 4000)
    return truncate_text(jd_text, limit, f'JD ({task})')


def truncate_answer(answer: str) -> str:
    return truncate_text(answer, INPUT_LIMITS['answer'], 'answer')
