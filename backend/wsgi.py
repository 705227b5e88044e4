# backend/wsgi.py
from linuspos import create_app

app = create_app()
