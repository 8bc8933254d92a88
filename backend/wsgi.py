"""WSGI configuration for production deployment."""
# Green the stdlib (threading.Lock included) before anything else imports it
import eventlet
eventlet.monkey_patch()

import os
from dotenv import load_dotenv

load_dotenv()

from quickroll import create_app, socketio

# Create Flask application instance
app = create_app(os.getenv('FLASK_ENV', 'production'))

if __name__ == "__main__":
    socketio.run(app)
