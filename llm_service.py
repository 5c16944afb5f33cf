"""AI text generation: Google Gemini via its OpenAI-compatible endpoint.

A single entry point, ``generate_text``, sends one prompt and returns the raw
text of the first choice. It makes exactly one attempt: callers decide what to
do on failure, so nothing here retries or substitutes values.
"""

import logging
import os
import time

from errors import CollaboratorUnavailable, InvalidResponse

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

GEMINI_API_KEY = os.environ.get('GEMINI_API_KEY', '')
GEMINI_MODEL = os.environ.get('GEMINI_MODEL', 'gemini-2.5-flash')
GEMINI_BASE_URL = os.environ.get(
    'GEMINI_BASE_URL', 'https://generativelanguage.googleapis.com/v1beta/openai/')

DEFAULT_GENERATION_CONFIG = {
    'temperature': 0.7,
    'top_p': 0.95,
    'max_tokens': 2048,
    'timeout': 30.0,
}

LLM_ENABLED = bool(GEMINI_API_KEY)

if LLM_ENABLED:
    logger.info('LLM backend: Gemini (%s)', GEMINI_MODEL)
else:
    logger.warning('No LLM backend configured, set GEMINI_API_KEY')

_client = None


def _get_client():
    """Lazy-initialise the OpenAI-compatible client."""
    global _client
    if _client is None:
        from openai import OpenAI
        _client = OpenAI(
            base_url=GEMINI_BASE_URL,
            api_key=GEMINI_API_KEY,
            max_retries=0,
        )
        logger.info('Initialised Gemini client')
    return _client


def generate_text(prompt: str, generation_config: dict = None) -> str:
    """Send one prompt to the model and return its text.

    Raises:
        CollaboratorUnavailable: backend not configured, network error,
            timeout or an error status from the API.
        InvalidResponse: the API answered but with no usable text.
    """
    if not LLM_ENABLED:
        raise CollaboratorUnavailable('No LLM backend configured, set GEMINI_API_KEY')

    config = dict(DEFAULT_GENERATION_CONFIG)
    config.update(generation_config or {})

    import openai
    client = _get_client()
    t0 = time.time()
    try:
        response = client.chat.completions.create(
            model=GEMINI_MODEL,
            messages=[{'role': 'user', 'content': prompt}],
            temperature=config['temperature'],
            top_p=config['top_p'],
            max_tokens=config['max_tokens'],
            timeout=config['timeout'],
        )
    except openai.APIError as e:
        logger.warning('[gemini] call failed after %.1fs: %s', time.time() - t0, str(e)[:200])
        raise CollaboratorUnavailable(str(e)[:200]) from e

    elapsed = time.time() - t0
    if not response.choices:
        raise InvalidResponse('Response contained no choices')
    text = response.choices[0].message.content
    if not text or not text.strip():
        raise InvalidResponse('Response contained no text')

    logger.info('[gemini] response in %.1fs: %d chars', elapsed, len(text))
    return text.strip()
