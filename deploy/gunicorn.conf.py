import multiprocessing
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from wecarry.cert import ensure_cert, harden  # noqa: E402

wsgi_app = "wecarry.wsgi:app"
bind = os.environ.get("GUNICORN_BIND", f"0.0.0.0:{os.environ.get('PORT', '3000')}")
workers = int(
    os.environ.get("GUNICORN_WORKERS", str(multiprocessing.cpu_count() * 2 + 1))
)
threads = int(os.environ.get("GUNICORN_THREADS", "2"))
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))
worker_class = os.environ.get("GUNICORN_WORKER_CLASS", "gthread")
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("GUNICORN_LOGLEVEL", "info")

if os.environ.get("DISABLE_TLS", "false").lower() not in ("1", "true", "yes"):
    _cert, _key = ensure_cert(
        ROOT / os.environ.get("CERT_FILE", "instance/cert.pem"),
        ROOT / os.environ.get("KEY_FILE", "instance/key.pem"),
    )
    certfile = str(_cert)
    keyfile = str(_key)


def ssl_context(conf, default_ssl_context_factory):
    return harden(default_ssl_context_factory())
