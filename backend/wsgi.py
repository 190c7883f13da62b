# backend/wsgi.py
from regcore import create_app

app = create_app()
