"""Local development entry point.

Usage:
    python run.py
    PORT=8000 python run.py

Loads .env first so SECRET_KEY / DATABASE_URL / AI_API_KEY are picked up
by taskboard.config before the app is built.
"""

import os

from dotenv import load_dotenv

load_dotenv()

from taskboard import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="127.0.0.1", port=int(os.environ.get("PORT", 5001)))
