import logging
from importlib import resources

from fastapi import FastAPI
from starlette.staticfiles import StaticFiles

from mediaflow_merge.configs import settings
from mediaflow_merge.middleware import UIAccessControlMiddleware
from mediaflow_merge.routes import merge_router

logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
app = FastAPI(title="MediaFlow Merge")
app.add_middleware(UIAccessControlMiddleware)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


app.include_router(merge_router, tags=["merge"])

static_path = resources.files("mediaflow_merge").joinpath("static")
app.mount("/", StaticFiles(directory=str(static_path), html=True), name="static")


def run():
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8888, log_level="info")


if __name__ == "__main__":
    run()
