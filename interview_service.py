"""AI Mock Interview Service: session lifecycle and LLM orchestration.

A session is created with a fixed list of generated questions and is then
advanced one answer at a time. Answering the last question triggers feedback
and score generation and moves the session to its terminal, completed state.

Every AI call is a single attempt. When it fails the engine substitutes a
fixed fallback value and logs the substitution, so a flaky model never fails
a user request.
"""

import json
import logging
import re
import threading
import weakref
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, NamedTuple, Optional

import llm_service
import resume_parser
from errors import (CollaboratorError, InvalidResponse, SessionAlreadyCompleted,
                    ValidationError)
from models import DEFAULT_DIFFICULTY, DIFFICULTY_LEVELS
from token_budget import (get_generation_config, truncate_answer, truncate_jd,
                          truncate_resume)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Fallback values
# ---------------------------------------------------------------------------

FALLBACK_QUESTIONS = [
    'Tell me about yourself and your experience relevant to this role.',
    'What interests you most about this position?',
    'Describe a challenging project you worked on and how you overcame obstacles.',
    'How do you stay updated with the latest technologies in your field?',
    'Where do you see yourself in 5 years?',
]

FALLBACK_FEEDBACK = (
    "Thank you for completing the interview! We'll review your responses "
    "and provide detailed feedback shortly."
)

DEFAULT_SCORE = 75
MIN_SCORE = 1
MAX_SCORE = 100

DEFAULT_ROLE = 'software developer'
GENERAL_FOCUS = 'General technical and behavioral questions'
NO_ANSWER = 'No answer provided'

MINUTES_PER_QUESTION = (3, 5)


class LLMResult(NamedTuple):
    """Outcome of a collaborator-backed generation.

    ``value`` is always usable. ``used_fallback`` tells whether it came from
    the model or is the designated substitute, in which case ``error`` holds
    the failure that caused the substitution.
    """
    value: Any
    used_fallback: bool = False
    error: Optional[Exception] = None


class ResumeUpload(NamedTuple):
    """A resume already written to disk by the HTTP layer."""
    path: str
    filename: str
    url: str


def _generate_or_fallback(task: str, call, fallback) -> LLMResult:
    try:
        return LLMResult(call())
    except CollaboratorError as e:
        logger.warning('LLM %s failed, using fallback: %s', task, e)
        return LLMResult(fallback, used_fallback=True, error=e)
    except Exception as e:
        logger.error('LLM %s raised unexpectedly, using fallback: %s', task, e, exc_info=True)
        return LLMResult(fallback, used_fallback=True, error=e)


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------

def build_questions_prompt(jd_text: str, resume_text: str, focus_areas: List[str],
                           difficulty: str, role_type: str = None) -> str:
    resume_block = ''
    if resume_text:
        resume_block = f'Candidate Resume:\n{truncate_resume(resume_text, "questions")}\n'
    focus = ', '.join(focus_areas) or GENERAL_FOCUS

    return f"""Generate 5-8 interview questions for a {role_type or DEFAULT_ROLE} position.

Job Description:
{truncate_jd(jd_text, 'questions')}

{resume_block}
Focus Areas: {focus}
Difficulty Level: {difficulty}

Generate a mix of:
- Technical questions relevant to the role
- Behavioral questions (STAR method)
- Problem-solving scenarios
- Role-specific challenges

Return only the questions as a JSON array of strings."""


def _format_transcript(questions: List[str], answers: List[Optional[str]]) -> str:
    parts = []
    for i, question in enumerate(questions):
        answer = answers[i] if i < len(answers) else None
        answer = truncate_answer(answer) if answer else NO_ANSWER
        parts.append(f'Q{i + 1}: {question}\nA{i + 1}: {answer}')
    return '\n\n'.join(parts)


def build_feedback_prompt(questions: List[str], answers: List[Optional[str]],
                          jd_text: str, resume_text: str = None) -> str:
    resume_block = ''
    if resume_text:
        resume_block = f'Candidate Resume:\n{truncate_resume(resume_text, "feedback")}\n'

    return f"""Provide detailed feedback for this mock interview:

Job Description:
{truncate_jd(jd_text, 'feedback')}

{resume_block}
Questions and Answers:
{_format_transcript(questions, answers)}

Provide feedback covering:
1. Overall performance assessment
2. Strengths demonstrated
3. Areas for improvement
4. Specific suggestions for each answer
5. Recommendations for interview preparation
6. Technical knowledge evaluation
7. Communication skills assessment

Be constructive, specific, and actionable."""


def build_score_prompt(questions: List[str], answers: List[Optional[str]],
                       jd_text: str) -> str:
    return f"""Rate this interview performance on a scale of 1-100:

Job Description:
{truncate_jd(jd_text, 'score')}

Questions and Answers:
{_format_transcript(questions, answers)}

Consider:
- Relevance of answers to questions
- Technical accuracy
- Communication clarity
- Problem-solving approach
- Professional presentation

Return only a number between 1-100."""


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _strip_code_fence(raw: str) -> str:
    """Strip markdown fences if present."""
    raw = raw.strip()
    if raw.startswith('```'):
        lines = raw.split('\n')
        if lines[0].startswith('```'):
            lines = lines[1:]
        if lines and lines[-1].strip() == '```':
            lines = lines[:-1]
        raw = '\n'.join(lines).strip()
    return raw


def parse_questions(raw: str) -> List[str]:
    """Parse a JSON array of question strings.

    Raises InvalidResponse for anything that is not a non-empty array of
    non-blank strings.
    """
    try:
        parsed = json.loads(_strip_code_fence(raw or ''))
    except json.JSONDecodeError as e:
        raise InvalidResponse(f'Questions are not valid JSON: {e}') from e

    if not isinstance(parsed, list):
        raise InvalidResponse('Questions are not a JSON array')
    if not all(isinstance(q, str) for q in parsed):
        raise InvalidResponse('Questions array contains non-string items')

    questions = [q.strip() for q in parsed if q.strip()]
    if not questions:
        raise InvalidResponse('Questions array is empty')
    return questions


def clamp_score(score: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, score))


def parse_score(raw: str) -> int:
    """Take the first integer in the text and clamp it to [1, 100]."""
    match = re.search(r'-?\d+', raw or '')
    if not match:
        raise InvalidResponse(f'No number in score response: {(raw or "")[:50]!r}')
    return clamp_score(int(match.group(0)))


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def generate_questions(jd_text: str, resume_text: str = None, focus_areas: List[str] = None,
                       difficulty: str = DEFAULT_DIFFICULTY, role_type: str = None,
                       text_generator=None) -> LLMResult:
    """Generate the session's question list, falling back to FALLBACK_QUESTIONS."""
    generate = text_generator or llm_service.generate_text
    prompt = build_questions_prompt(jd_text, resume_text, focus_areas or [],
                                    difficulty, role_type)

    def call():
        return parse_questions(generate(prompt, get_generation_config('questions')))

    return _generate_or_fallback('questions', call, list(FALLBACK_QUESTIONS))


def generate_feedback(questions: List[str], answers: List[Optional[str]], jd_text: str,
                      resume_text: str = None, text_generator=None) -> LLMResult:
    generate = text_generator or llm_service.generate_text
    prompt = build_feedback_prompt(questions, answers, jd_text, resume_text)

    def call():
        text = (generate(prompt, get_generation_config('feedback')) or '').strip()
        if not text:
            raise InvalidResponse('Feedback response is empty')
        return text

    return _generate_or_fallback('feedback', call, FALLBACK_FEEDBACK)


def generate_score(questions: List[str], answers: List[Optional[str]], jd_text: str,
                   text_generator=None) -> LLMResult:
    generate = text_generator or llm_service.generate_text
    prompt = build_score_prompt(questions, answers, jd_text)

    def call():
        return parse_score(generate(prompt, get_generation_config('score')))

    return _generate_or_fallback('score', call, DEFAULT_SCORE)


def estimate_duration(question_count: int) -> str:
    low, high = MINUTES_PER_QUESTION
    return f'{question_count * low}-{question_count * high} minutes'


# ---------------------------------------------------------------------------
# Per-session write locks
# ---------------------------------------------------------------------------

_locks_guard = threading.Lock()
# Entries vanish once no request holds a reference to the lock.
_session_locks = weakref.WeakValueDictionary()


def _session_lock(session_id: int) -> threading.Lock:
    with _locks_guard:
        lock = _session_locks.get(session_id)
        if lock is None:
            lock = threading.Lock()
            _session_locks[session_id] = lock
        return lock


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class InterviewEngine:
    """Drives interview sessions from creation through completion.

    Args:
        store: a ``SessionStore`` bound to the current database session.
        text_generator: ``(prompt, generation_config) -> str``; defaults to
            ``llm_service.generate_text``.
        text_extractor: ``(file_path, original_filename) -> str``; defaults
            to ``resume_parser.extract_text``.
    """

    def __init__(self, store, text_generator=None, text_extractor=None):
        self.store = store
        self.text_generator = text_generator or llm_service.generate_text
        self.text_extractor = text_extractor or resume_parser.extract_text

    # -- Start ---------------------------------------------------------------

    def start_session(self, user_id: int, job_description: str,
                      resume_file: ResumeUpload = None, focus_areas: List[str] = None,
                      difficulty: str = DEFAULT_DIFFICULTY, role_type: str = None) -> dict:
        job_description = (job_description or '').strip()
        if not job_description:
            raise ValidationError([{'field': 'jd_text', 'message': 'Job description is required'}])
        difficulty = difficulty or DEFAULT_DIFFICULTY
        if difficulty not in DIFFICULTY_LEVELS:
            raise ValidationError([{'field': 'difficulty', 'message': 'Invalid difficulty level'}])
        focus_areas = list(focus_areas or [])

        resume_text = None
        resume_url = None
        if resume_file is not None:
            resume_text = self.text_extractor(resume_file.path, resume_file.filename)
            resume_url = resume_file.url

        result = generate_questions(job_description, resume_text, focus_areas,
                                    difficulty, role_type, text_generator=self.text_generator)
        questions = result.value
        if result.used_fallback:
            logger.warning('User %d: starting interview with %d fallback questions',
                           user_id, len(questions))

        session = self.store.persist_session(
            user_id,
            jd_text=job_description,
            resume_text=resume_text,
            resume_url=resume_url,
            focus_areas=focus_areas,
            difficulty=difficulty,
            role_type=role_type,
            questions=questions,
            answers=[None] * len(questions),
        )

        return {
            'session_id': session.id,
            'questions': questions,
            'instructions': {
                'total_questions': len(questions),
                'difficulty': difficulty,
                'estimated_duration': estimate_duration(len(questions)),
            },
        }

    # -- Answer --------------------------------------------------------------

    def submit_answer(self, user_id: int, session_id: int, answer: str,
                      question_index: int) -> dict:
        lock = _session_lock(session_id)
        with lock:
            session = self.store.load_session(user_id, session_id, for_update=True)
            if session.is_completed:
                raise SessionAlreadyCompleted()

            questions = session.questions
            total = len(questions)
            if not 0 <= question_index < total:
                raise ValidationError([{
                    'field': 'question_index',
                    'message': f'Question index must be between 0 and {total - 1}',
                }])

            answers = session.answers
            answers[question_index] = answer
            self.store.update_session(session, answers=answers)
            logger.info('Session %d: recorded answer %d/%d', session_id, question_index + 1, total)

            if question_index < total - 1:
                current = question_index + 1
                return {
                    'completed': False,
                    'next_question': questions[current],
                    'progress': {
                        'current': current,
                        'total': total,
                        'percentage': int(current * 100 / total + 0.5),
                    },
                }

            feedback, score = self._evaluate(session, questions, answers)
            if not self.store.mark_completed(session, feedback, score):
                raise SessionAlreadyCompleted()
            logger.info('Session %d completed with score %d', session_id, score)

        return {
            'completed': True,
            'feedback': feedback,
            'score': score,
            'next_question': None,
        }

    def _evaluate(self, session, questions, answers):
        """Generate feedback and score concurrently; neither needs the other."""
        jd_text = session.jd_text
        resume_text = session.resume_text
        with ThreadPoolExecutor(max_workers=2) as executor:
            feedback_future = executor.submit(
                generate_feedback, questions, answers, jd_text, resume_text,
                text_generator=self.text_generator)
            score_future = executor.submit(
                generate_score, questions, answers, jd_text,
                text_generator=self.text_generator)
            feedback = feedback_future.result()
            score = score_future.result()

        if feedback.used_fallback or score.used_fallback:
            logger.warning('Session %d: completed with fallback (feedback=%s, score=%s)',
                           session.id, feedback.used_fallback, score.used_fallback)
        return feedback.value, score.value

    # -- Read ----------------------------------------------------------------

    def get_session(self, user_id: int, session_id: int) -> dict:
        return self.store.load_session(user_id, session_id).to_dict()

    def list_history(self, user_id: int, page: int = 1, limit: int = 10) -> dict:
        total = self.store.count_sessions(user_id)
        sessions = self.store.list_sessions(user_id, page=page, limit=limit)
        return {
            'sessions': [s.to_summary() for s in sessions],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'pages': (total + limit - 1) // limit,
            },
        }
