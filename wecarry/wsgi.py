"""WSGI entrypoint for WeCarry."""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure project root is on sys.path when running this file directly
ROOT = Path(__file__).resolve().parent
PARENT = ROOT.parent
if str(PARENT) not in sys.path:
    sys.path.insert(0, str(PARENT))
# Keep wecarry/platform from shadowing the stdlib `platform` module.
if str(ROOT) in sys.path:
    sys.path.remove(str(ROOT))

from wecarry import create_app  # noqa: E402

app = create_app()


def main() -> None:
    """Serve with the Flask server; TLS unless DISABLE_TLS is set."""
    from wecarry.cert import build_ssl_context, ensure_cert

    host = app.config.get("HOST", "0.0.0.0")  # nosec B104
    port = app.config["PORT"]
    if app.config["DISABLE_TLS"]:
        app.logger.info("Serving without TLS on port %s", port)
        app.run(host=host, port=port)
        return

    cert_file, key_file = ensure_cert(app.config["CERT_FILE"], app.config["KEY_FILE"])
    app.logger.info("Serving with TLS on port %s", port)
    app.run(host=host, port=port, ssl_context=build_ssl_context(cert_file, key_file))


if __name__ == "__main__":
    main()
