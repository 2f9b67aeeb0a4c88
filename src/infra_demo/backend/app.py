"""Posts API served from the backend container.

Usage:
    uvicorn infra_demo.backend.app:app --port 4000
"""

import json
import logging
from datetime import date
from typing import Any, Dict

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware

logger = logging.getLogger(__name__)

POSTS = [
    {"id": "1", "content": "TODO: get a DB connection"},
    {"id": "2", "content": "TODO: implement post"},
]


def format_posted_at(day: date) -> str:
    """Render a date as ``Mon Oct 19 2026``."""
    return day.strftime("%a %b %d %Y")


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(title="Posts API", version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/posts")
    async def list_posts() -> Dict[str, Any]:
        return {"data": POSTS}

    @app.get("/posts/{post_id}/detail")
    async def post_detail(post_id: str) -> Dict[str, Any]:
        # Stub record, the id is not looked up
        return {
            "id": "3",
            "content": "TODO: fetch real data",
            "author": "Daniel",
            "postedAt": format_posted_at(date.today()),
        }

    @app.post("/posts", status_code=status.HTTP_201_CREATED)
    async def create_post(request: Request) -> Response:
        raw = await request.body()
        try:
            body: Any = json.loads(raw) if raw else None
        except (ValueError, UnicodeDecodeError):
            body = raw.decode("utf-8", errors="replace")
        logger.info("Received post: %s", body)
        return Response(status_code=status.HTTP_201_CREATED)

    return app


app = create_app()
