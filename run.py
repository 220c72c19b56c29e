"""Local development server for the activity tracking API.

Usage:
    python run.py
    PORT=8000 python run.py

Loads .env first, so DATABASE_URL / SECRET_KEY / ACTIVITY_* settings can
live there. Falls back to a local SQLite file (see DevConfig). Deferred
activity workers start inside the app factory; the dev reloader is off so
they are not started twice.

Create the schema with `flask db upgrade`, then `flask seed-demo` for data.
"""

import os

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from activity_app import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(
        debug=True,
        use_reloader=False,
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", 5001)),
    )
