"""Shared FastAPI dependencies.

Per-server objects (the message bus and the geocoding cache) live on
app.state and are created in the application lifespan.
"""

from fastapi import Request

from geocoding import AddressGeocoder
from listings import ListingManager
from messages import MessageBus, MessageManager
from tools import ToolManager
from uploads import UploadStore


def get_message_bus(request: Request) -> MessageBus:
    return request.app.state.message_bus


def get_geocoder(request: Request) -> AddressGeocoder:
    return request.app.state.geocoder


def get_tool_manager() -> ToolManager:
    return ToolManager()


def get_upload_store() -> UploadStore:
    return UploadStore()


def get_listing_manager(request: Request) -> ListingManager:
    return ListingManager(geocoder=get_geocoder(request))


def get_message_manager(request: Request) -> MessageManager:
    return MessageManager(bus=get_message_bus(request))
