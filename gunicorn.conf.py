"""
Gunicorn configuration for the Vuelve API.
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Visit requests are short; a few sync workers suffice
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
timeout = 30
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'vuelve'

# Preload so the scheduler starts once in the master process
preload_app = True

graceful_timeout = 30


def on_starting(server):
    print("[Gunicorn] Starting Vuelve server...")


def on_exit(server):
    print("[Gunicorn] Vuelve server shutting down...")
