"""Interview HTTP endpoints: request validation and engine wiring.

Requests are normalised here before they reach ``InterviewEngine``: form and
JSON bodies are accepted alike, ``focus_areas`` becomes a list of strings and
integer fields are parsed, so the engine only ever sees typed values.
"""

import json
import logging
import os
import secrets
import time

from flask import Blueprint, current_app, jsonify, request

from auth import current_user, login_required
from errors import UnsupportedFileType, ValidationError
from interview_service import InterviewEngine, ResumeUpload
from models import DIFFICULTY_LEVELS, db
from resume_parser import allowed_file, file_extension
from session_store import SessionStore

logger = logging.getLogger(__name__)

interview_bp = Blueprint('interview', __name__, url_prefix='/api/interview')

MAX_HISTORY_LIMIT = 100


def _engine() -> InterviewEngine:
    return InterviewEngine(
        SessionStore(db.session),
        text_generator=current_app.config.get('TEXT_GENERATOR'),
        text_extractor=current_app.config.get('TEXT_EXTRACTOR'),
    )


def _request_data() -> dict:
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


# ---------------------------------------------------------------------------
# Field normalisation
# ---------------------------------------------------------------------------

def _parse_int(value, field: str, errors: list):
    if isinstance(value, bool):
        value = None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value.strip())
    errors.append({'field': field, 'message': f'Valid {field.replace("_", " ")} required'})
    return None


def normalize_focus_areas(value, errors: list) -> list:
    """Accept a JSON-encoded string, a native list, or repeated form fields."""
    if value is None or value == '':
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            errors.append({'field': 'focus_areas', 'message': 'Focus areas must be an array'})
            return []
    if not isinstance(value, list):
        errors.append({'field': 'focus_areas', 'message': 'Focus areas must be an array'})
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def _focus_areas_from_request(data: dict, errors: list) -> list:
    if not request.is_json:
        values = request.form.getlist('focus_areas')
        if len(values) > 1:
            return normalize_focus_areas(values, errors)
    return normalize_focus_areas(data.get('focus_areas'), errors)


def _save_resume(upload, user_id: int) -> ResumeUpload:
    """Write the uploaded resume to the resume folder."""
    if not allowed_file(upload.filename):
        raise UnsupportedFileType(
            'Invalid file type. Only PDF, DOCX, and TXT files are allowed.')

    folder = current_app.config['RESUME_FOLDER']
    os.makedirs(folder, exist_ok=True)
    ext = file_extension(upload.filename)
    name = f'resume-{user_id}-{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}.{ext}'
    path = os.path.join(folder, name)
    upload.save(path)
    logger.info('Stored resume for user %d as %s', user_id, name)
    return ResumeUpload(path=path, filename=upload.filename, url=f'/uploads/resumes/{name}')


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@interview_bp.route('/start', methods=['POST'])
@login_required
def start_interview():
    user = current_user()
    data = _request_data()
    errors = []

    jd_text = data.get('jd_text')
    if not isinstance(jd_text, str) or not jd_text.strip():
        errors.append({'field': 'jd_text', 'message': 'Job description is required'})

    focus_areas = _focus_areas_from_request(data, errors)

    difficulty = data.get('difficulty') or 'intermediate'
    if difficulty not in DIFFICULTY_LEVELS:
        errors.append({'field': 'difficulty', 'message': 'Invalid difficulty level'})

    role_type = data.get('role_type')
    if role_type is not None and not isinstance(role_type, str):
        errors.append({'field': 'role_type', 'message': 'Role type must be a string'})
    role_type = role_type.strip() if isinstance(role_type, str) and role_type.strip() else None

    if errors:
        raise ValidationError(errors)

    resume = None
    upload = request.files.get('resume')
    if upload and upload.filename:
        resume = _save_resume(upload, user.id)

    try:
        result = _engine().start_session(
            user.id, jd_text,
            resume_file=resume,
            focus_areas=focus_areas,
            difficulty=difficulty,
            role_type=role_type,
        )
    except Exception:
        if resume and os.path.exists(resume.path):
            os.remove(resume.path)
        raise

    return jsonify({'message': 'Interview session started successfully', **result})


@interview_bp.route('/answer', methods=['POST'])
@login_required
def submit_answer():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    errors = []

    session_id = _parse_int(data.get('session_id'), 'session_id', errors)
    question_index = _parse_int(data.get('question_index'), 'question_index', errors)
    answer = data.get('answer')
    if not isinstance(answer, str) or not answer.strip():
        errors.append({'field': 'answer', 'message': 'Answer is required'})

    if errors:
        raise ValidationError(errors)

    result = _engine().submit_answer(current_user().id, session_id, answer.strip(), question_index)
    message = 'Interview completed!' if result['completed'] else 'Answer recorded successfully'
    return jsonify({'message': message, **result})


@interview_bp.route('/session/<int:session_id>', methods=['GET'])
@login_required
def get_session(session_id):
    return jsonify(_engine().get_session(current_user().id, session_id))


@interview_bp.route('/history', methods=['GET'])
@login_required
def history():
    errors = []
    page = _parse_int(request.args.get('page', '1'), 'page', errors)
    limit = _parse_int(request.args.get('limit', '10'), 'limit', errors)
    if page is not None and page < 1:
        errors.append({'field': 'page', 'message': 'Page must be at least 1'})
    if limit is not None and not 1 <= limit <= MAX_HISTORY_LIMIT:
        errors.append({'field': 'limit',
                       'message': f'Limit must be between 1 and {MAX_HISTORY_LIMIT}'})
    if errors:
        raise ValidationError(errors)

    return jsonify(_engine().list_history(current_user().id, page=page, limit=limit))
