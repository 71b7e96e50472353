#!/usr/bin/env python3
"""
NaOdludzie API - Application Runner

This script starts the FastAPI application with Uvicorn server.
"""

import os
import uvicorn

if __name__ == "__main__":
    # Set environment variable to enable scheduler in the main process
    os.environ["RUN_SCHEDULER"] = "true"

    # Start the FastAPI application
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD") == "true",
        log_level="info"
    )
