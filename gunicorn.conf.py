"""
Gunicorn configuration for the loan-servicing auth API
"""
import multiprocessing
import os

# Server socket
bind = os.getenv("LOANSERVICE_BIND", "127.0.0.1:8000")
backlog = 2048

# Worker processes
workers = int(os.getenv("LOANSERVICE_WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = 60
keepalive = 5

# Logging
accesslog = os.getenv("LOANSERVICE_ACCESS_LOG", "-")
errorlog = os.getenv("LOANSERVICE_ERROR_LOG", "-")
loglevel = "info"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "loanservice-auth"

# Server mechanics
daemon = False
pidfile = None
user = None
group = None

capture_output = True
enable_stdio_inheritance = True

# Each worker runs its own sweep task; the sweep is idempotent
preload_app = False

graceful_timeout = 30
