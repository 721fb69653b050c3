"""MCP resources: the gallery, the configuration summary and image bytes."""

from __future__ import annotations

import asyncio
import json
import logging

from mcp import types
from mcp.server.lowlevel.helper_types import ReadResourceContents
from pydantic import AnyUrl

from imgmcp.core.errors import NotFound
from imgmcp.core.paths import mime_type_for
from imgmcp.core.records import IMAGE_URI_PREFIX

from .state import AppState

logger = logging.getLogger(__name__)

GALLERY_URI = "img://gallery"
CONFIG_URI = "img://config"


def list_resources(state: AppState) -> list[types.Resource]:
    resources = [
        types.Resource(
            uri=AnyUrl(GALLERY_URI),
            name="Image Gallery",
            description="All generated and edited images",
            mimeType="application/json",
        ),
        types.Resource(
            uri=AnyUrl(CONFIG_URI),
            name="Configuration",
            description="Current generation configuration (never includes the API key)",
            mimeType="application/json",
        ),
    ]
    for record in state.store.list(limit=len(state.store)):
        resources.append(
            types.Resource(
                uri=AnyUrl(record.uri),
                name=f"{record.kind.value.capitalize()} image {record.id}",
                description=record.prompt[:100],
                mimeType=f"image/{record.format}",
            )
        )
    return resources


def gallery(state: AppState) -> str:
    images = [
        {
            "id": record.id,
            "uri": record.uri,
            "prompt": record.prompt,
            "type": record.kind.value,
            "timestamp": record.created_at.isoformat(),
            "filePath": record.storage_path,
        }
        for record in state.store.list(limit=len(state.store))
    ]
    return json.dumps({"images": images}, indent=2)


def configuration(state: AppState) -> str:
    settings = state.session.settings
    return json.dumps(
        {
            "configured": state.session.is_configured,
            "model": settings.model or state.config.model,
            "format": settings.format or state.config.default_format,
            "configSource": state.session.config_source,
        },
        indent=2,
    )


async def read_resource(state: AppState, uri: str) -> list[ReadResourceContents]:
    """Read one resource.

    Image resources re-validate the stored path before reading, so a record
    edited by hand to point outside the allowed directories is refused.

    Raises:
        NotFound: For unknown URIs, unknown image ids and missing files.
        PathDenied: If a stored path is no longer allowed.
    """
    if uri == GALLERY_URI:
        return [ReadResourceContents(content=gallery(state), mime_type="application/json")]
    if uri == CONFIG_URI:
        return [ReadResourceContents(content=configuration(state), mime_type="application/json")]

    if uri.startswith(IMAGE_URI_PREFIX):
        record = state.store.get(uri[len(IMAGE_URI_PREFIX) :])
        path = state.validator.validate(record.storage_path)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise NotFound(f"Image file missing for {record.id}") from None
        return [ReadResourceContents(content=data, mime_type=mime_type_for(path))]

    raise NotFound(f"Unknown resource: {uri}")
