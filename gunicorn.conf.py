"""
Gunicorn configuration for production deployment.

Usage:
    gunicorn -c gunicorn.conf.py wsgi:app

CSRF tokens, rate-limit windows, session activity and Socket.IO rooms
live in process memory, so the app runs as ONE worker process with a
thread pool. Scale threads, not workers; more processes would need a
shared store and a Socket.IO message queue.
"""

import os

# --- Bind ---
# Listen on all interfaces inside the container.
# The container's port mapping controls external exposure.
bind = os.environ.get('GUNICORN_BIND', '0.0.0.0:8000')

# --- Workers ---
workers = 1
worker_class = 'gthread'
# Each open WebSocket holds a thread for its lifetime.
threads = int(os.environ.get('GUNICORN_THREADS', '50'))

# --- Timeouts ---
# Uploads of up to 50MB over slow links need more than the default.
timeout = 120
# Graceful shutdown: allow 10s for in-flight requests to complete.
graceful_timeout = 10
keepalive = 5

# --- Security ---
limit_request_line = 4094          # URL limit is 2048; leave headroom for the request line
limit_request_fields = 50          # Max number of headers
limit_request_field_size = 8190    # Max header value length (bytes)

# --- Server Identity ---
# Don't disclose gunicorn version in Server header.
server_software = ''

# --- Logging ---
# Access log format: timestamp, IP, method, path, status, response time.
# Excludes: request bodies, cookies, and authorization headers.
accesslog = '-'
errorlog = '-'
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" %(L)s'
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()

# --- Process Naming ---
proc_name = 'photoselect'

# --- Forwarded Headers ---
# Trust X-Forwarded-* headers from the reverse proxy only.
forwarded_allow_ips = os.environ.get('FORWARDED_ALLOW_IPS', '127.0.0.1')
