import os

from mulinker_app import create_app

app = create_app()

if __name__ == '__main__':
    host = os.environ.get('FLASK_HOST', '127.0.0.1')
    port = int(os.environ.get('FLASK_PORT', '6767'))
    debug = os.environ.get('FLASK_DEBUG', 'false').lower() in ('true', '1', 'yes')

    app.run(host=host, port=port, debug=debug, use_reloader=False)
