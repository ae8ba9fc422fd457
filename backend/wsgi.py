# backend/wsgi.py
from posbridge import create_app

app = create_app()
