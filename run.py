import os
from familytree import create_app

app = create_app()

if __name__ == '__main__':
    # Settings from environment variables
    debug = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'
    port = int(os.environ.get('FLASK_PORT', 8991))

    app.run(host='0.0.0.0', port=port, debug=debug)
