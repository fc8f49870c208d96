# eshaafi/services/video_service.py - 100ms room provisioning for virtual bookings

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx
from jose import jwt

from ..config import Settings
from ..exceptions import VideoProvisioningError

logger = logging.getLogger(__name__)

GUEST_ROLE = "guest"
MANAGEMENT_TOKEN_TTL = timedelta(minutes=5)


class VideoRoomProvisioner:
    """Creates a video room and returns the guest join code stored on the booking.

    One instance lives for the lifetime of the app and shares a single
    httpx.AsyncClient. Every failure surfaces as VideoProvisioningError so
    the booking layer can abort before anything is persisted.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.template_id = settings.hms_template_id
        self.client = httpx.AsyncClient(
            base_url=settings.hms_api_base.rstrip("/"),
            timeout=settings.video_timeout_seconds,
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return self.settings.video_enabled

    def _management_token(self) -> str:
        if self.settings.hms_management_token:
            return self.settings.hms_management_token

        now = datetime.now(timezone.utc)
        claims = {
            "access_key": self.settings.hms_access_key,
            "type": "management",
            "version": 2,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "nbf": now,
            "exp": now + MANAGEMENT_TOKEN_TTL,
        }
        return jwt.encode(claims, self.settings.hms_secret, algorithm="HS256")

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._management_token()}"}
        try:
            response = await self.client.post(path, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Video provider timed out on {path}: {e}")
            raise VideoProvisioningError("Video provider timed out")
        except httpx.HTTPStatusError as e:
            logger.error(f"Video provider returned {e.response.status_code} on {path}: {e.response.text[:200]}")
            raise VideoProvisioningError(f"Video provider rejected the request ({e.response.status_code})")
        except httpx.HTTPError as e:
            logger.error(f"Video provider request failed on {path}: {e}")
            raise VideoProvisioningError("Video provider is unreachable")
        except ValueError as e:
            logger.error(f"Video provider sent an unreadable body on {path}: {e}")
            raise VideoProvisioningError("Video provider returned an invalid response")

    async def provision_room(self, seed: str) -> str:
        """Create a room named after seed and return its guest join code."""
        if not self.enabled:
            logger.error("Video provisioning requested but the provider is not configured")
            raise VideoProvisioningError("Video provider is not configured")

        room = await self._post("/v2/rooms", {
            "name": seed,
            "description": f"Consultation room {seed}",
            "template_id": self.template_id,
        })
        room_id = room.get("id") if isinstance(room, dict) else None
        if not room_id:
            logger.error(f"Video provider created no room id for {seed}: {room}")
            raise VideoProvisioningError("Video provider did not return a room id")

        codes = await self._post(f"/v2/room-codes/room/{room_id}", {"role": GUEST_ROLE, "enabled": True})
        entries = codes.get("data") if isinstance(codes, dict) else None
        guest_code = next(
            (entry.get("code") for entry in entries or [] if isinstance(entry, dict) and entry.get("role") == GUEST_ROLE),
            None,
        )
        if not guest_code:
            logger.error(f"No guest room code returned for room {room_id}")
            raise VideoProvisioningError("Video provider did not return a guest join code")

        logger.info(f"Provisioned video room {room_id} for {seed}")
        return guest_code

    async def aclose(self) -> None:
        await self.client.aclose()


def build_video_provisioner(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> VideoRoomProvisioner:
    provisioner = VideoRoomProvisioner(settings, transport=transport)
    if not provisioner.enabled:
        logger.warning("100ms credentials or template id missing; virtual bookings will fail until configured")
    return provisioner
