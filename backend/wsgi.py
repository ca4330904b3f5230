# backend/wsgi.py
from gasdsr import create_app

app = create_app()
