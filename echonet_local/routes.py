#
# Copyright 2025 The EchonetLocal contributors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""FastAPI route handlers for Echonet Local."""

import asyncio
import json
import logging
import os
import time
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, status
from fastapi.responses import StreamingResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .__version__ import __version__
from .accessory import ACTIVE, COOLING_THRESHOLD, HEATING_THRESHOLD, SWING_MODE, TARGET_STATE

# Configure logging
logger = logging.getLogger(__name__)

# Security
security = HTTPBearer(auto_error=False)

# API key configuration (from environment variable)
# Multiple keys can be specified, space-separated
API_KEYS_RAW = os.environ.get('ECHONET_API_KEYS', '').strip()
API_KEYS = set(key.strip() for key in API_KEYS_RAW.split() if key.strip()) if API_KEYS_RAW else set()

KEEPALIVE_INTERVAL = 90  # seconds, works with most proxies/firewalls


def get_api_key(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[str]:
    """
    Validate API key from Authorization header.

    If API keys are configured (ECHONET_API_KEYS environment variable), checks Bearer token.
    If no API keys are configured, authentication is disabled.

    Returns:
        The validated API key, or None if authentication is disabled

    Raises:
        HTTPException 401 if authentication fails
    """
    if not API_KEYS:
        return None

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if credentials.credentials not in API_KEYS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return credentials.credentials


def create_app():
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Echonet Local",
        description="Local REST API for ECHONET Lite air conditioners",
        version=__version__
    )

    if API_KEYS:
        logger.info(f"API authentication enabled ({len(API_KEYS)} key(s) configured)")
    else:
        logger.info("API authentication disabled (no ECHONET_API_KEYS configured)")

    return app


def register_routes(app: FastAPI, get_echonet_api):
    """Register all API routes.

    Args:
        app: FastAPI application instance
        get_echonet_api: Callable that returns the current EchonetLocalAPI instance
    """

    def require_api():
        echonet_api = get_echonet_api()
        if not echonet_api:
            raise HTTPException(status_code=503, detail="Bridge not initialized")
        if echonet_api.disabled:
            raise HTTPException(status_code=503, detail="Bridge disabled by invalid configuration")
        return echonet_api

    def require_accessory(accessory_id: str):
        accessory = require_api().get_accessory(accessory_id)
        if not accessory:
            raise HTTPException(status_code=404, detail=f"Accessory {accessory_id} not found")
        return accessory

    @app.get("/", tags=["Info"])
    async def root():
        return {
            "service": "Echonet Local",
            "description": "Local REST API for ECHONET Lite air conditioners",
            "version": __version__,
            "documentation": "/docs",
            "endpoints": {
                "status": "/status",
                "accessories": "/accessories",
                "events": "/events",
                "refresh": "/refresh",
            },
        }

    @app.get("/status", tags=["Status"])
    async def get_status(api_key: Optional[str] = Depends(get_api_key)):
        """Get overall system status."""
        echonet_api = get_echonet_api()
        if not echonet_api:
            raise HTTPException(status_code=503, detail="Bridge not initialized")
        return {"version": __version__} | echonet_api.status()

    @app.get("/accessories", tags=["HomeKit"])
    async def get_accessories(api_key: Optional[str] = Depends(get_api_key)):
        """List all active accessories with their characteristics."""
        echonet_api = require_api()
        return {
            "accessories": [a.to_dict() for a in echonet_api.accessories.values()],
            "count": len(echonet_api.accessories),
        }

    @app.get("/accessories/{accessory_id}", tags=["HomeKit"])
    async def get_accessory(accessory_id: str, api_key: Optional[str] = Depends(get_api_key)):
        return require_accessory(accessory_id).to_dict()

    @app.get("/accessories/{accessory_id}/{characteristic}", tags=["HomeKit"])
    async def get_characteristic(accessory_id: str, characteristic: str, api_key: Optional[str] = Depends(get_api_key)):
        """Read one characteristic; always answered from cache."""
        accessory = require_accessory(accessory_id)
        try:
            value = accessory.get(characteristic)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Characteristic {characteristic} not found")
        return {"id": accessory.id, "characteristic": characteristic, "value": value}

    @app.post("/accessories/{accessory_id}/set", tags=["HomeKit"])
    async def set_accessory(
        accessory_id: str,
        active: Optional[int] = None,
        target_state: Optional[int] = None,
        heating_threshold: Optional[float] = None,
        cooling_threshold: Optional[float] = None,
        swing: Optional[int] = None,
        api_key: Optional[str] = Depends(get_api_key)
    ):
        """
        Change accessory settings.

        Args:
            active: 0 = off, 1 = on
            target_state: 0 = Auto, 1 = Heat, 2 = Cool
            heating_threshold: heating setpoint in °C (16-30)
            cooling_threshold: cooling setpoint in °C (16-30)
            swing: 0 = disabled, 1 = enabled (only for appliances that support it)

        The call returns as soon as the change is accepted; the appliance is
        written in the background and the outcome shows up via /events.
        """
        accessory = require_accessory(accessory_id)

        changes = [
            (ACTIVE, active),
            (TARGET_STATE, target_state),
            (HEATING_THRESHOLD, heating_threshold),
            (COOLING_THRESHOLD, cooling_threshold),
            (SWING_MODE, swing),
        ]
        changes = [(name, value) for name, value in changes if value is not None]
        if not changes:
            raise HTTPException(status_code=400, detail="No changes given")

        for name, value in changes:
            if name not in accessory.characteristics:
                raise HTTPException(status_code=400, detail=f"{name} is not supported by this accessory")
            try:
                accessory.validate(name, value)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        applied = {}
        for name, value in changes:
            accessory.set(name, value)
            applied[name] = accessory.get(name)

        return {"success": True, "id": accessory.id, "applied": applied}

    @app.get("/events", tags=["Events"])
    async def get_events(api_key: Optional[str] = Depends(get_api_key)):
        """
        Server-Sent Events (SSE) endpoint for real-time updates.

        Event Types:

        1. Accessory characteristic change:
           {
               "type": "accessory",
               "id": "5f0c...",
               "name": "RAS-X40",
               "characteristic": "CoolingThresholdTemperature",
               "value": 26,
               "timestamp": 1730477890.123
           }

        2. Keepalive (every 90 seconds):
           {
               "type": "keepalive",
               "timestamp": 1730477890.123
           }
        """
        echonet_api = require_api()

        async def event_publisher():
            # Create a queue for this client
            client_queue = asyncio.Queue()
            echonet_api.event_listeners.append(client_queue)
            last_keepalive = time.time()

            try:
                while True:
                    timeout = max(1, KEEPALIVE_INTERVAL - (time.time() - last_keepalive))
                    try:
                        event_data = await asyncio.wait_for(client_queue.get(), timeout=timeout)

                        # Check for shutdown signal
                        if event_data is None:
                            logger.debug("SSE stream received shutdown signal")
                            break

                        yield event_data
                        last_keepalive = time.time()

                    except asyncio.TimeoutError:
                        keepalive_obj = {'type': 'keepalive', 'timestamp': time.time()}
                        yield f"data: {json.dumps(keepalive_obj)}\n\n"
                        last_keepalive = time.time()

            except asyncio.CancelledError:
                logger.debug("SSE stream cancelled")
                raise
            finally:
                # Remove this client's queue
                if client_queue in echonet_api.event_listeners:
                    echonet_api.event_listeners.remove(client_queue)

        return StreamingResponse(
            event_publisher(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Content-Type": "text/event-stream"
            }
        )

    @app.post("/refresh", tags=["Admin"])
    async def refresh_data(api_key: Optional[str] = Depends(get_api_key)):
        """Refresh every appliance's state right away."""
        echonet_api = require_api()
        refreshed = await echonet_api.refresh_all()
        return {"success": True, "refreshed": refreshed}
