import os
import uvicorn

from adwizard.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "adwizard.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=not settings.is_production,
        # Sessions live in Postgres, so any worker can serve the OAuth callback
        workers=1 if not settings.is_production else int(os.environ.get("WEB_CONCURRENCY", 2)),
    )
