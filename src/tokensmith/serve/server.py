"""Run the gateway API with uvicorn."""
from __future__ import annotations
import os

import uvicorn

def main() -> None:
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    workers = int(os.getenv("API_WORKERS", "1"))

    uvicorn.run(
        "tokensmith.serve.fastapi_app:app",
        host=host,
        port=port,
        workers=workers,
        log_config=None,
    )

if __name__ == "__main__":
    main()
