"""Shared fixtures."""
import pytest
from quickroll import create_app, db
# Register the Socket.IO handlers before the first init_app so that every
# test app (not only the first one) gets them attached.
import quickroll.api.session_events  # noqa: F401
from quickroll.models.user import User, UserRole
from quickroll.services.auth_service import AuthService
from quickroll.services.session_registry import SessionKey

@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()

@pytest.fixture
def key():
    return SessionKey('BTech', '5', 'A1')

@pytest.fixture
def faculty(app):
    return User(
        email='faculty@example.com',
        name='Test Faculty',
        role=UserRole.FACULTY,
        organization_unit='BTech'
    ).save()

@pytest.fixture
def admin(app):
    return User(email='admin@example.com', name='Test Admin', role=UserRole.ADMIN).save()

def make_student(roll_number, group='A1', email=None, cohort_term='5'):
    return User(
        email=email or f'student{roll_number}@example.com',
        name=f'Student {roll_number}',
        role=UserRole.STUDENT,
        roll_number=roll_number,
        organization_unit='BTech',
        cohort_term=cohort_term,
        group=group
    ).save()

@pytest.fixture
def student(app):
    return make_student('07')

@pytest.fixture
def other_student(app):
    return make_student('08')

@pytest.fixture
def token_for(app):
    def issue(user):
        return AuthService.issue_token(user)
    return issue

@pytest.fixture
def auth_headers(token_for):
    def headers(user):
        return {'Authorization': f'Bearer {token_for(user)}'}
    return headers

@pytest.fixture
def services(app):
    return app.extensions['quickroll']

@pytest.fixture
def student_factory(app):
    return make_student
