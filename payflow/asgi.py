"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

- En production, un process manager (ex: gunicorn -k uvicorn.workers.UvicornWorker) importe `payflow.asgi:app`.
- Toute la configuration FastAPI est centralisée dans payflow.app_setup.factory.
"""

from payflow.app import app

if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run(
        "payflow.asgi:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
