"""
Blockbrief Backend - FastAPI + Socrata
Modular entry point. All logic is split across:
  config.py, models.py, soda_client.py, brief_modules/, brief.py, routes.py, cache.py
"""

import logging

logging.basicConfig(level=logging.INFO)

from routes import app  # noqa: F401

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
