"""FastAPI application factory."""

from fastapi import FastAPI

from sonoscribe.web.routes import api

app = FastAPI(title="SonoScribe", docs_url=None, redoc_url=None)

app.include_router(api.router)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}
