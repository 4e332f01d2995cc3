"""
=============================================================================
FACIAL EXPRESSION CONTROL — APPLICATION ENTRY POINT (app.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This is the "front door" of the operator API. When you run "python app.py",
a small local web server starts. Through it you (or a dashboard) can:

  1. Start and stop face control (camera → landmarks → actions).
  2. Calibrate your neutral face.
  3. Manage profiles: thresholds, gains, hold times, combos.
  4. Read the live expression values and the actions being fired.
  5. Release a stuck drag at any time (/safety/release-all).

The actual handlers live in routes.py.

HOW TO RUN:
-----------
  - From project root:  python app.py
  - By default the API is at:  http://127.0.0.1:5050
  - Camera support needs the optional extra:  pip install -e .[camera]

CONFIGURATION:
--------------
  - Settings come from the .env file and config.py (see the table there).
=============================================================================
"""

# ---------------------------------------------------------------------------
# Step 1: Load environment variables from .env (before config is imported)
# ---------------------------------------------------------------------------
import logging
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")

# ---------------------------------------------------------------------------
# Step 2: Import the web framework and our own modules
# ---------------------------------------------------------------------------
from flask import Flask
from flask_cors import CORS
from flask_compress import Compress

from routes import register_routes
import config

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def create_app() -> Flask:
    """
    Create and configure the Flask application.

    - CORS so a dashboard served from another origin can call the API.
    - Compression for the state payloads.
    - The API blueprint from routes.py.
    """
    app = Flask(__name__)

    # The API binds to localhost by default; any local origin may call it.
    CORS(app, resources={r"/*": {"origins": "*"}})

    Compress(app)

    register_routes(app)

    return app


app = create_app()


if __name__ == "__main__":
    # Debug: Flask's reloader and debugger. Otherwise: waitress.
    if config.FLASK_DEBUG:
        app.run(
            host=config.FLASK_HOST,
            port=config.FLASK_PORT,
            debug=True,
            use_reloader=False,
        )
    else:
        import waitress
        waitress.serve(app, host=config.FLASK_HOST, port=config.FLASK_PORT, threads=4)
