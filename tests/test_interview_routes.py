import io
import json
import os

import pytest
from sqlalchemy.exc import SQLAlchemyError

from auth import decode_token, issue_token
from conftest import GENERATED_QUESTIONS, bearer
from interview_service import FALLBACK_QUESTIONS
from models import User, db
from session_store import SessionStore


def _start(client, headers, **form):
    form.setdefault('jd_text', 'Backend engineer role')
    return client.post('/api/interview/start', data=form, headers=headers,
                       content_type='multipart/form-data')


def _answer(client, headers, session_id, index, answer='My answer'):
    return client.post('/api/interview/answer', headers=headers, json={
        'session_id': session_id, 'answer': answer, 'question_index': index,
    })


def test_health_needs_no_auth(client):
    resp = client.get('/health')
    assert resp.status_code == 200
    assert resp.get_json() == {'status': 'ok'}


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def test_missing_token_is_401(client):
    resp = _start(client, {})
    assert resp.status_code == 401
    assert resp.get_json()['message'] == 'Access token required'


def test_garbage_token_is_403(client):
    resp = client.get('/api/interview/history', headers={'Authorization': 'Bearer not-a-jwt'})
    assert resp.status_code == 403
    assert resp.get_json()['message'] == 'Invalid or expired token'


def test_issued_token_carries_user_id_and_expiry(app, user_id):
    with app.app_context():
        claims = decode_token(issue_token(user_id, expires_in=120))
    assert claims['userId'] == user_id
    assert claims['exp'] - claims['iat'] == 120


def test_expired_token_is_403(app, client, user_id):
    with app.app_context():
        token = issue_token(user_id, expires_in=-60)
    resp = client.get('/api/interview/history', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 403


def test_token_signed_with_another_secret_is_403(app, client, user_id):
    with app.app_context():
        app.config['JWT_SECRET'] = 'another-service-signing-secret'
        token = issue_token(user_id)
        app.config['JWT_SECRET'] = 'test-jwt-signing-secret-0123456789'
    resp = client.get('/api/interview/history', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 403


def test_token_for_deleted_user_is_401(app, client, user_id, auth_headers):
    with app.app_context():
        db.session.delete(db.session.get(User, user_id))
        db.session.commit()
    resp = client.get('/api/interview/history', headers=auth_headers)
    assert resp.status_code == 401
    assert resp.get_json()['message'] == 'User not found'


# ---------------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------------

def test_start_returns_session_and_instructions(client, auth_headers):
    resp = _start(client, auth_headers, difficulty='advanced')

    assert resp.status_code == 200
    body = resp.get_json()
    assert isinstance(body['session_id'], int)
    assert body['questions'] == GENERATED_QUESTIONS
    assert body['instructions'] == {
        'total_questions': 6,
        'difficulty': 'advanced',
        'estimated_duration': '18-30 minutes',
    }


def test_start_accepts_json_body(client, auth_headers, fake_llm):
    resp = client.post('/api/interview/start', headers=auth_headers, json={
        'jd_text': 'Data engineer', 'focus_areas': ['Spark', 'Airflow'], 'role_type': 'data engineer',
    })
    assert resp.status_code == 200
    prompt = fake_llm.calls_for('questions')[0]
    assert 'Focus Areas: Spark, Airflow' in prompt
    assert 'data engineer position' in prompt
    assert 'Difficulty Level: intermediate' in prompt


@pytest.mark.parametrize('focus_field', [
    json.dumps(['SQL', 'Caching']),
    ['SQL', 'Caching'],
])
def test_start_normalises_focus_areas_from_form(client, auth_headers, fake_llm, focus_field):
    resp = _start(client, auth_headers, focus_areas=focus_field)
    assert resp.status_code == 200
    assert 'Focus Areas: SQL, Caching' in fake_llm.calls_for('questions')[0]


def test_start_validation_errors_are_field_level(client, auth_headers):
    resp = _start(client, auth_headers, jd_text='  ', difficulty='expert', focus_areas='SQL')

    assert resp.status_code == 400
    fields = {e['field'] for e in resp.get_json()['errors']}
    assert fields == {'jd_text', 'difficulty', 'focus_areas'}


def test_start_rejects_focus_areas_that_are_not_an_array(client, auth_headers):
    resp = _start(client, auth_headers, focus_areas=json.dumps({'area': 'SQL'}))
    assert resp.status_code == 400


def test_start_falls_back_to_generic_questions(client, auth_headers, fake_llm):
    fake_llm.fail('questions')
    resp = _start(client, auth_headers)
    assert resp.status_code == 200
    assert resp.get_json()['questions'] == FALLBACK_QUESTIONS


def test_start_with_text_resume_stores_file_and_text(app, client, auth_headers, fake_llm):
    resp = _start(client, auth_headers,
                  resume=(io.BytesIO(b'Senior Python developer, 6 years'), 'cv.txt'))

    assert resp.status_code == 200
    assert 'Senior Python developer, 6 years' in fake_llm.calls_for('questions')[0]
    stored = os.listdir(app.config['RESUME_FOLDER'])
    assert len(stored) == 1
    assert stored[0].startswith('resume-') and stored[0].endswith('.txt')


def test_start_with_unsupported_resume_fails_without_a_session(client, auth_headers, fake_llm):
    resp = _start(client, auth_headers, resume=(io.BytesIO(b'binary'), 'cv.exe'))

    assert resp.status_code == 500
    body = resp.get_json()
    assert body['message'] == 'Failed to start interview session'
    assert body['error'] == 'Internal server error'
    assert fake_llm.calls_for('questions') == []
    history = client.get('/api/interview/history', headers=auth_headers).get_json()
    assert history['pagination']['total'] == 0


def test_start_with_corrupt_pdf_removes_stored_file(app, client, auth_headers):
    resp = _start(client, auth_headers, resume=(io.BytesIO(b'not really a pdf'), 'cv.pdf'))

    assert resp.status_code == 500
    assert os.listdir(app.config['RESUME_FOLDER']) == []


def test_start_removes_stored_resume_when_saving_the_session_fails(app, client, auth_headers,
                                                                   monkeypatch):
    def failing_persist(self, user_id, **fields):
        raise SQLAlchemyError('database is locked')

    monkeypatch.setattr(SessionStore, 'persist_session', failing_persist)
    resp = _start(client, auth_headers,
                  resume=(io.BytesIO(b'Senior Python developer'), 'cv.txt'))

    assert resp.status_code == 500
    assert resp.get_json()['message'] == 'Something went wrong'
    assert os.listdir(app.config['RESUME_FOLDER']) == []


def test_error_detail_is_exposed_in_development(app, client, auth_headers):
    app.config['APP_ENV'] = 'development'
    resp = _start(client, auth_headers, resume=(io.BytesIO(b'binary'), 'cv.exe'))
    assert 'Invalid file type' in resp.get_json()['error']


# ---------------------------------------------------------------------------
# Answer
# ---------------------------------------------------------------------------

def test_answer_returns_next_question_and_progress(client, auth_headers):
    session_id = _start(client, auth_headers).get_json()['session_id']

    resp = _answer(client, auth_headers, session_id, 2, answer='  trimmed answer  ')

    assert resp.status_code == 200
    body = resp.get_json()
    assert body['completed'] is False
    assert body['next_question'] == GENERATED_QUESTIONS[3]
    assert body['progress'] == {'current': 3, 'total': 6, 'percentage': 50}
    session = client.get(f'/api/interview/session/{session_id}', headers=auth_headers).get_json()
    assert session['answers_given'][2] == 'trimmed answer'


def test_answer_validation(client, auth_headers):
    resp = client.post('/api/interview/answer', headers=auth_headers, json={
        'session_id': 'abc', 'answer': '   ', 'question_index': True,
    })
    assert resp.status_code == 400
    fields = {e['field'] for e in resp.get_json()['errors']}
    assert fields == {'session_id', 'answer', 'question_index'}


def test_answer_with_out_of_range_index_is_400(client, auth_headers):
    session_id = _start(client, auth_headers).get_json()['session_id']
    assert _answer(client, auth_headers, session_id, 6).status_code == 400


def test_answer_to_someone_elses_session_is_404(client, auth_headers, other_auth_headers):
    session_id = _start(client, auth_headers).get_json()['session_id']

    resp = _answer(client, other_auth_headers, session_id, 0)

    assert resp.status_code == 404
    assert resp.get_json() == {'message': 'Interview session not found'}


def test_answer_after_completion_is_409(client, auth_headers, fake_llm):
    fake_llm.responses['questions'] = '["Only question?"]'
    session_id = _start(client, auth_headers).get_json()['session_id']
    assert _answer(client, auth_headers, session_id, 0).get_json()['completed'] is True

    resp = _answer(client, auth_headers, session_id, 0, answer='again')

    assert resp.status_code == 409
    assert len(fake_llm.calls_for('score')) == 1


# ---------------------------------------------------------------------------
# Session and history
# ---------------------------------------------------------------------------

def test_get_session_of_another_user_is_404(client, auth_headers, other_auth_headers):
    session_id = _start(client, auth_headers).get_json()['session_id']
    resp = client.get(f'/api/interview/session/{session_id}', headers=other_auth_headers)
    assert resp.status_code == 404
    assert 'jd_text' not in resp.get_json()


def test_history_pagination_parameters(client, auth_headers):
    for _ in range(3):
        _start(client, auth_headers)

    resp = client.get('/api/interview/history?page=2&limit=2', headers=auth_headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body['pagination'] == {'page': 2, 'limit': 2, 'total': 3, 'pages': 2}
    assert len(body['sessions']) == 1


@pytest.mark.parametrize('query', ['page=0', 'limit=0', 'limit=101', 'page=abc'])
def test_history_rejects_bad_pagination(client, auth_headers, query):
    assert client.get(f'/api/interview/history?{query}', headers=auth_headers).status_code == 400


def test_end_to_end_interview(app, client, user_id):
    headers = bearer(app, user_id)

    start = _start(client, headers, jd_text='Backend engineer role', difficulty='beginner')
    assert start.status_code == 200
    body = start.get_json()
    session_id = body['session_id']
    questions = body['questions']
    assert 5 <= len(questions) <= 8

    for i in range(len(questions) - 1):
        resp = _answer(client, headers, session_id, i, answer=f'Answer to question {i + 1}')
        assert resp.get_json()['next_question'] == questions[i + 1]

    final = _answer(client, headers, session_id, len(questions) - 1).get_json()
    assert final['completed'] is True
    assert final['next_question'] is None
    assert 1 <= final['score'] <= 100
    assert final['feedback']

    session = client.get(f'/api/interview/session/{session_id}', headers=headers).get_json()
    assert session['is_completed'] is True
    assert session['completed_at'] is not None
    assert session['difficulty'] == 'beginner'
    assert session['score'] == final['score']
    assert None not in session['answers_given']
