import json
import threading

import pytest

from app import create_app
from auth import issue_token
from errors import CollaboratorUnavailable
from models import User, db

GENERATED_QUESTIONS = [
    'Walk me through the architecture of a REST API you built.',
    'How do you design a relational schema for a multi-tenant app?',
    'Tell me about a time you handled a production incident.',
    'How would you make a slow SQL query faster?',
    'Describe how you review a teammate\'s pull request.',
    'How do you decide between a queue and a synchronous call?',
]


class FakeTextGenerator:
    """Scripted stand-in for the Gemini client.

    The task is recognised from the prompt's opening line. A response that is
    an exception instance is raised instead of returned.
    """

    def __init__(self):
        self.responses = {
            'questions': json.dumps(GENERATED_QUESTIONS),
            'feedback': 'Clear, structured answers. Add more metrics to your examples.',
            'score': '82',
        }
        self.calls = []
        self._lock = threading.Lock()

    @staticmethod
    def task_for(prompt: str) -> str:
        if prompt.startswith('Generate'):
            return 'questions'
        if prompt.startswith('Provide detailed feedback'):
            return 'feedback'
        if prompt.startswith('Rate this'):
            return 'score'
        raise AssertionError(f'unexpected prompt: {prompt[:40]}')

    def fail(self, *tasks):
        for task in tasks:
            self.responses[task] = CollaboratorUnavailable('gemini timed out')

    def calls_for(self, task: str) -> list:
        return [prompt for t, prompt, _ in self.calls if t == task]

    def __call__(self, prompt, generation_config=None):
        task = self.task_for(prompt)
        with self._lock:
            self.calls.append((task, prompt, generation_config))
        response = self.responses[task]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_llm():
    return FakeTextGenerator()


@pytest.fixture
def app(tmp_path, fake_llm):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SECRET_KEY': 'test-secret',
        'JWT_SECRET': 'test-jwt-signing-secret-0123456789',
        'APP_ENV': 'production',
        'RESUME_FOLDER': str(tmp_path / 'resumes'),
        'TEXT_GENERATOR': fake_llm,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _create_user(app, email: str, name: str) -> int:
    with app.app_context():
        user = User(name=name, email=email, is_verified=True)
        db.session.add(user)
        db.session.commit()
        return user.id


@pytest.fixture
def user_id(app):
    return _create_user(app, 'asha@example.com', 'Asha')


@pytest.fixture
def other_user_id(app):
    return _create_user(app, 'ravi@example.com', 'Ravi')


def bearer(app, uid: int) -> dict:
    with app.app_context():
        return {'Authorization': f'Bearer {issue_token(uid)}'}


@pytest.fixture
def auth_headers(app, user_id):
    return bearer(app, user_id)


@pytest.fixture
def other_auth_headers(app, other_user_id):
    return bearer(app, other_user_id)
