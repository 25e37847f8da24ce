"""
Vercel-specific Flask application entry point.
"""

import os
from app import create_app

# Vercel expects the WSGI application to be named 'app'
app = create_app()

if __name__ == "__main__":
    # This won't be called in Vercel, but useful for local testing
    app.run(debug=False, host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
