# File: backend/run.py
"""Application entry point."""
import os
import click
from flask.cli import with_appcontext
from dotenv import load_dotenv

# Load environment variables before the config classes read them
load_dotenv()

from quickroll import create_app, db, socketio

# Create Flask app
app = create_app(os.getenv('FLASK_ENV', 'development'))

@app.cli.command()
@with_appcontext
def reset_db():
    """Reset database completely."""
    if click.confirm('This will delete all data and recreate tables. Continue?'):
        db.drop_all()
        db.create_all()
        click.echo('Database reset complete!')

@app.cli.command()
@with_appcontext
def seed_demo():
    """Create a faculty member and a few students for BTech/5/A1."""
    from quickroll.models.user import User, UserRole

    faculty = User.query.filter_by(email='faculty@quickroll.dev').first()
    if not faculty:
        faculty = User(
            email='faculty@quickroll.dev',
            name='Demo Faculty',
            role=UserRole.FACULTY,
            organization_unit='BTech'
        )
        db.session.add(faculty)

    for roll in range(1, 6):
        email = f'student{roll:02d}@quickroll.dev'
        if User.query.filter_by(email=email).first():
            continue
        db.session.add(User(
            email=email,
            name=f'Demo Student {roll:02d}',
            role=UserRole.STUDENT,
            roll_number=f'{roll:02d}',
            organization_unit='BTech',
            cohort_term='5',
            group='A1'
        ))

    db.session.commit()
    click.echo('Demo users created.')
    click.echo('Use `flask issue-token <email>` to get a bearer token.')

if __name__ == '__main__':
    # Development server
    port = int(os.environ.get('PORT', 5000))
    host = os.environ.get('HOST', '127.0.0.1')
    debug = os.environ.get('FLASK_ENV') == 'development'

    socketio.run(app, host=host, port=port, debug=debug)
