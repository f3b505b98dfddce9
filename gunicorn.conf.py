# Gunicorn configuration file for production
import os

# Server socket
bind = os.environ.get('GUNICORN_BIND', "0.0.0.0:3560")
backlog = 2048

# Every request blocks on a chain of Shopify calls, so sync workers with a few threads
workers = int(os.environ.get('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
threads = int(os.environ.get('GUNICORN_THREADS', '4'))
max_requests = 500
max_requests_jitter = 50
keepalive = 2

# Limit request sizes to prevent abuse
limit_request_line = 4096
limit_request_fields = 100
limit_request_field_size = 8190

# Worker timeout must outlive the product creation deadline
timeout = int(float(os.environ.get('REQUEST_DEADLINE_SECONDS', '120'))) + 30
graceful_timeout = 30

# Logging
loglevel = os.environ.get('GUNICORN_LOGLEVEL', 'info')
accesslog = '-'
errorlog = '-'
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = 'shopify-product-bridge'

# Application entry point
wsgi_app = 'app:create_app()'

daemon = False
preload_app = True

# Hooks
def when_ready(server):
    server.log.info("Server is ready. Spawning workers")

def worker_int(worker):
    worker.log.info("Worker received INT or QUIT signal")

def pre_fork(server, worker):
    server.log.info("Worker spawned (pid: %s)", worker.pid)
