"""
CareCompanion API client
Used on the device to pull stored notifications and acknowledge delivery
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from config import settings
from client.local_scheduler import LocalNotificationScheduler


logger = logging.getLogger(__name__)


class CareCompanionAPIError(Exception):
    """Non-success response from the API"""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}")


class CareCompanionClient:
    """
    Async HTTP client for the /notifications endpoints

    Usage:
        async with CareCompanionClient(user_id=7) as api:
            today = await api.get_today_notifications()
    """

    def __init__(
        self,
        user_id: int,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.user_id = user_id
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.API_BASE_URL).rstrip("/") + settings.API_PREFIX,
            headers={"X-User-Id": str(user_id)},
            timeout=timeout,
            transport=transport
        )

    async def __aenter__(self) -> "CareCompanionClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            logger.warning(f"API timeout for {method} {path}")
            raise

        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise CareCompanionAPIError(response.status_code, message)

        return response.json()

    async def get_today_notifications(self, patient_id: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"patientId": patient_id} if patient_id is not None else None
        data = await self._request("GET", "/notifications/today", params=params)
        return data["notifications"]

    async def get_upcoming_notifications(self, patient_id: int) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET",
            f"/notifications/patient/{patient_id}",
            params={"upcoming": "true", "isActive": "true"}
        )
        return data["notifications"]

    async def mark_delivered(self, notification_id: int) -> Dict[str, Any]:
        return await self._request("PUT", f"/notifications/{notification_id}/delivered")

    async def sync_to_device(
        self,
        scheduler: LocalNotificationScheduler,
        patient_id: int,
        replace: bool = True
    ) -> List[str]:
        """
        Mirror the patient's upcoming notifications onto the device

        Args:
            scheduler: Local scheduler bound to the device
            patient_id: Patient whose reminders to pull
            replace: Cancel everything already scheduled first

        Returns:
            Handles of the scheduled device entries
        """
        notifications = await self.get_upcoming_notifications(patient_id)
        if replace:
            scheduler.cancel_all()

        handles = scheduler.schedule_stored_notifications(notifications)
        logger.info(f"Synced {len(handles)} of {len(notifications)} notifications for patient {patient_id}")
        return handles
