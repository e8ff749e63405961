# agora/__main__.py

# Development entry point: `python -m agora`. Production runs the app under a
# WSGI server and the sweeper in one dedicated process.

import os

from agora import app
from agora.routes import mail_sender, sweeper


def main():
    if os.environ.get('RUN_SWEEPER', '1') == '1':
        sweeper.start()
    try:
        app.run(host=os.environ.get('HOST', '0.0.0.0'),
                port=int(os.environ.get('PORT', '5000')),
                threaded=True)
    finally:
        sweeper.stop()
        mail_sender.shutdown()


if __name__ == '__main__':
    main()
