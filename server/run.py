#!/usr/bin/env python3
"""Entry point for running the Blog API server."""

import os
import uvicorn
from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(
        "blog_api.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("RELOAD", "").lower() in ("1", "true", "yes"),
    )
