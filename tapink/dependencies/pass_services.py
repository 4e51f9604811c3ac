"""
FastAPI dependencies for the wallet pass pipeline.

The image backend and HTTP client are created in the lifespan and read off
app.state; tests swap them with app.dependency_overrides.
"""
import httpx
from fastapi import Request

from tapink.services.pass_assets import ImageBackend


def get_image_backend(request: Request) -> ImageBackend:
    return request.app.state.image_backend


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client
