import os

from agentmarket.app import create_app

# Create the application instance
app = create_app()

# Passenger looks for 'application'; gunicorn and `flask --app` use 'app'
application = app

if __name__ == '__main__':
    # Development server only
    host = os.environ.get('FLASK_HOST', '0.0.0.0')
    port = int(os.environ.get('FLASK_PORT', 5000))
    app.run(debug=app.config['DEBUG'], host=host, port=port)
