"""
Application entry point.

Usage:
    python run.py

Starts the development server (HTTP and Socket.IO) on http://localhost:5000.
The first account registered becomes the super admin.
"""

from photoselect import create_app
from photoselect.extensions import socketio

app = create_app()

if __name__ == '__main__':
    print('\n  PhotoSelect')
    print('  ===========')
    print('  URL: http://localhost:5000\n')

    socketio.run(
        app,
        host='127.0.0.1',
        port=5000,
        debug=True,
        allow_unsafe_werkzeug=True,
    )
