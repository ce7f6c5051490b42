import multiprocessing, os

# Each worker imports api.risk_api and loads its own read-only copy of the dataset.
wsgi_app = "api.risk_api:app"
bind = os.getenv("ENTHEOGEN_BIND", "0.0.0.0:8000")
workers = int(os.getenv("WEB_CONCURRENCY", min(4, multiprocessing.cpu_count() + 1)))
worker_class = "uvicorn.workers.UvicornWorker"
# Explain/summary requests wait on Gemini inside the handler.
timeout = int(os.getenv("WEB_TIMEOUT", 60))
graceful_timeout = int(os.getenv("WEB_GRACEFUL_TIMEOUT", 30))
keepalive = 5
accesslog = "-"
errorlog = "-"
