"""Local development entry point.

Usage:
    python run.py

Loads .env first so PAYSTACK_* and DATABASE_URL are available to the
config classes when they are imported.
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from app import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001)
