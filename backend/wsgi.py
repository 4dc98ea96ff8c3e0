# backend/wsgi.py
from ledgerpos import create_app, start_sync_worker

app = create_app()
start_sync_worker(app)
