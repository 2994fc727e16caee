"""
RUN SCRIPT - Start the Workiwi server
=====================================

USAGE:
  python run.py

  Then point the web client at http://localhost:3001/api, or open the API docs
  at http://localhost:3001/docs. HOST and PORT can be set in .env.

NOTE:
  Before running, set GROQ_API_KEY in .env.
"""

import uvicorn

from config import HOST, PORT

# ------------------------------------------------------------------------------
# ENTRY POINT
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=HOST,
        port=PORT,
        reload=True       # Auto-restart when .py files change (useful during development).
    )
