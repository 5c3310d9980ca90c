# backend/wsgi.py
from layaway import create_app

app = create_app()
