"""
Pytest configuration and shared fixtures.
"""
from datetime import timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from assessments.identity import Enrolled, Guest
from assessments.sessions import start_or_resume
from exams.models import Exam, Invitation, Option, Question
from users.models import User

QT = Question.QuestionType


@pytest.fixture(autouse=True)
def clear_cache():
    """Live feed and platform settings live in the cache"""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def now():
    return timezone.now().replace(microsecond=0)


@pytest.fixture
def make_user(db):
    counter = {'n': 0}

    def _make(role=User.Role.CANDIDATE, **fields):
        counter['n'] += 1
        email = fields.pop('email', f"user{counter['n']}@example.com")
        return User.objects.create_user(
            username=email,
            email=email,
            password='correct-horse-battery',
            first_name='Test',
            last_name=f"User{counter['n']}",
            role=role,
            **fields,
        )

    return _make


@pytest.fixture
def candidate(make_user):
    return make_user(email='candidate@example.com')


@pytest.fixture
def grader(make_user):
    return make_user(role=User.Role.GRADER, email='grader@example.com')


@pytest.fixture
def add_question(db):
    """Create a question; ``options`` is a list of (text, is_correct)."""

    def _add(exam, question_type=QT.MULTIPLE_CHOICE, points=1, options=(), **fields):
        question = Question.objects.create(
            exam=exam,
            text=fields.pop('text', f"Question about {question_type}"),
            question_type=question_type,
            points=points,
            **fields,
        )
        for text, is_correct in options:
            Option.objects.create(question=question, text=text, is_correct=is_correct)
        return question

    return _add


@pytest.fixture
def make_exam(db):
    def _make(**overrides):
        fields = {
            'title': 'Network Fundamentals',
            'duration_minutes': 30,
            'is_active': True,
            'shuffle_questions': False,
        }
        fields.update(overrides)
        return Exam.objects.create(**fields)

    return _make


@pytest.fixture
def proctored_exam(make_exam, add_question):
    """Two single-choice questions, warning limit 3, auto-submit on."""
    exam = make_exam(
        proctoring_enabled=True,
        violation_warning_limit=3,
        auto_submit_on_violation=True,
    )
    add_question(exam, options=[('TCP', True), ('UDP', False)])
    add_question(exam, options=[('80', False), ('443', True)])
    return exam


@pytest.fixture
def start_session(db):
    def _start(exam, candidate, now=None):
        identity = candidate if isinstance(candidate, (Enrolled, Guest)) else Enrolled(candidate.pk)
        session, _ = start_or_resume(exam, identity, now=now)
        return session

    return _start


@pytest.fixture
def session(proctored_exam, candidate, start_session, now):
    return start_session(proctored_exam, candidate, now=now)


@pytest.fixture
def invitation(proctored_exam):
    return Invitation.objects.create(
        exam=proctored_exam,
        email='guest@example.com',
        name='Guest Candidate',
        expires_at=timezone.now() + timedelta(days=3),
    )


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def candidate_client(api_client, candidate):
    api_client.force_authenticate(user=candidate)
    return api_client


@pytest.fixture
def grader_client(grader):
    client = APIClient()
    client.force_authenticate(user=grader)
    return client


@pytest.fixture
def guest_client(invitation):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Invitation {invitation.token}")
    return client
