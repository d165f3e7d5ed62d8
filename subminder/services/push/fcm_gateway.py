import json
import os
from typing import Optional, Sequence

from firebase_admin import messaging, credentials, initialize_app, _apps  # type: ignore
from firebase_admin.exceptions import FirebaseError

from subminder.config.settings import settings
from subminder.schemas.reminder_schemas import PushBatchResult, TokenDeliveryResult
from subminder.services.push.base import PushGateway
from subminder.utils.errors import PushGatewayError
from subminder.utils.logging import get_logger

logger = get_logger()

# FCM rejects multicast batches above this size
MAX_MULTICAST_TOKENS = 500


def _ensure_firebase_initialized(
    project_id: Optional[str] = None, credentials_json: Optional[str] = None
) -> bool:
    """
    Initialize the default Firebase app once per process.

    Credentials are taken from inline JSON, a file path, or (when neither is
    set) the environment's application default credentials.
    """
    if _apps:
        return True

    creds_json = (
        credentials_json
        or os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
        or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    )
    options = {"projectId": project_id} if project_id else None

    try:
        if creds_json and creds_json.strip().startswith("{"):
            initialize_app(credentials.Certificate(json.loads(creds_json)), options=options)
            logger.info("Firebase app initialized from inline credentials", project_id=project_id)
        elif creds_json and os.path.exists(creds_json):
            initialize_app(credentials.Certificate(creds_json), options=options)
            logger.info("Firebase app initialized from credentials file", project_id=project_id)
        elif project_id:
            initialize_app(options=options)
            logger.info("Firebase app initialized from project id", project_id=project_id)
        elif os.getenv("GOOGLE_CLOUD_PROJECT"):
            initialize_app()
            logger.info("Firebase app initialized with default credentials")
        else:
            logger.warning("No Firebase credentials configured, push delivery disabled")
            return False
    except (ValueError, IOError) as e:
        logger.error("Failed to initialize Firebase app", error=str(e))
        return False

    return True


class FcmPushGateway(PushGateway):
    """Push gateway backed by Firebase Cloud Messaging multicast."""

    def __init__(
        self,
        project_id: Optional[str] = None,
        credentials_json: Optional[str] = None,
        dry_run: bool = False,
    ):
        self.project_id = project_id
        self.credentials_json = credentials_json
        self.dry_run = dry_run

    def _build_message(
        self, tokens: Sequence[str], title: str, body: str, icon: Optional[str]
    ) -> messaging.MulticastMessage:
        webpush = (
            messaging.WebpushConfig(notification=messaging.WebpushNotification(icon=icon))
            if icon
            else None
        )
        return messaging.MulticastMessage(
            tokens=list(tokens),
            notification=messaging.Notification(title=title, body=body),
            webpush=webpush,
        )

    async def send_multicast(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        icon: Optional[str] = None,
    ) -> PushBatchResult:
        if not tokens:
            return PushBatchResult()

        if not _ensure_firebase_initialized(self.project_id, self.credentials_json):
            raise PushGatewayError("Firebase app is not initialized")

        result = PushBatchResult()
        for i in range(0, len(tokens), MAX_MULTICAST_TOKENS):
            chunk = list(tokens[i : i + MAX_MULTICAST_TOKENS])
            try:
                batch = messaging.send_each_for_multicast(
                    self._build_message(chunk, title, body, icon), dry_run=self.dry_run
                )
            except FirebaseError as e:
                raise PushGatewayError(f"FCM multicast failed: {e}") from e

            for token, response in zip(chunk, batch.responses):
                result.responses.append(
                    TokenDeliveryResult(
                        token=token,
                        success=response.success,
                        message_id=response.message_id,
                        error=str(response.exception) if response.exception else None,
                    )
                )

        return result


def create_push_gateway() -> FcmPushGateway:
    return FcmPushGateway(
        project_id=settings.FCM_PROJECT_ID,
        credentials_json=settings.FCM_CREDENTIALS_JSON,
        dry_run=settings.FCM_DRY_RUN,
    )
