"""
WSGI entry point.

    gunicorn --config gunicorn.conf.py "app:application"

For local development ``python app.py`` serves on ``PORT`` (default 8000).
"""

import os

from edu_rbac.app import create_app

application = create_app(os.getenv('APP_ENV'))


if __name__ == '__main__':
    application.run(
        host=os.getenv('HOST', '127.0.0.1'),
        port=int(os.getenv('PORT', '8000')),
        debug=application.config['DEBUG']
    )
