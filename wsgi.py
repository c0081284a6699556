"""Gunicorn entry point (``gunicorn wsgi:app``)."""
import os

from tenant_erp import create_app

# FLASK_CONFIG selects the config class, e.g. config.TestingConfig
app = create_app(os.getenv('FLASK_CONFIG', 'config.Config'))

if __name__ == "__main__":
    app.run(host=os.getenv('HOST', '127.0.0.1'), port=int(os.getenv('PORT', '5000')))
