"""Remote letter classifier client.

Sends a hand pose to the prediction service and maps every outcome,
including transport failures, to a ClassificationResult. The client
never raises for service problems.

Example:
    >>> client = RetryingClassificationClient(ClassificationClient())
    >>> result = await client.classify(pose)
    >>> if result.is_actionable:
    ...     buffer.append(result.letter)
    >>> client.close()
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import requests

from signspell.config import ClassifierConfig
from signspell.errors import MalformedPoseError
from signspell.landmarks import landmarks_to_api_format
from signspell.types import ClassificationErrorKind, ClassificationResult, HandPose

logger = logging.getLogger(__name__)

NO_RESPONSE_MESSAGE = "No response from server. Check your internet connection."


class ClassificationClient:
    """Single-attempt classifier client over a requests.Session.

    Args:
        config: Endpoint settings.
        session: HTTP session (default: a new requests.Session owned by
            the client).
    """

    def __init__(
        self,
        config: Optional[ClassifierConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or ClassifierConfig()
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    @property
    def predict_url(self) -> str:
        return self.config.base_url.rstrip("/") + self.config.predict_path

    @property
    def health_url(self) -> str:
        return self.config.base_url.rstrip("/") + self.config.health_path

    def predict(self, pose: HandPose) -> ClassificationResult:
        """Classify one pose (blocking)."""
        try:
            payload = {"landmarks": landmarks_to_api_format(pose)}
        except MalformedPoseError as e:
            logger.warning(f"Refusing to classify invalid pose: {e}")
            return ClassificationResult.failure(
                f"Invalid pose: {e}", ClassificationErrorKind.INVALID_POSE
            )

        try:
            response = self._session.post(
                self.predict_url, json=payload, timeout=self.config.timeout_sec
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Prediction request failed: {e}")
            return ClassificationResult.failure(
                NO_RESPONSE_MESSAGE, ClassificationErrorKind.TRANSPORT
            )

        if response.status_code >= 400:
            message = f"Server error: {response.status_code} - {response.reason}"
            logger.warning(message)
            return ClassificationResult.failure(message, ClassificationErrorKind.REJECTED)

        try:
            body = response.json()
        except ValueError:
            logger.warning("Prediction response is not valid JSON")
            return ClassificationResult.failure(
                "Malformed response from server", ClassificationErrorKind.MALFORMED_RESPONSE
            )

        return self.parse_response(body)

    @staticmethod
    def parse_response(body: object) -> ClassificationResult:
        """Map a decoded 2xx response body to a result."""
        if not isinstance(body, dict):
            return ClassificationResult.failure(
                "Malformed response from server", ClassificationErrorKind.MALFORMED_RESPONSE
            )

        if body.get("error"):
            return ClassificationResult.failure(
                str(body["error"]), ClassificationErrorKind.REJECTED
            )

        letter = body.get("letter")
        if not isinstance(letter, str):
            return ClassificationResult.failure(
                "Response is missing a letter", ClassificationErrorKind.MALFORMED_RESPONSE
            )

        confidence = body.get("confidence", 0.0)
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = 0.0

        logger.debug(f"Prediction: {letter!r} ({confidence})")
        return ClassificationResult(letter=letter, confidence=float(confidence))

    async def classify(self, pose: HandPose) -> ClassificationResult:
        """Classify one pose without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.predict, pose)

    def health(self) -> bool:
        """GET the health endpoint (blocking). True on HTTP 200."""
        try:
            response = self._session.get(
                self.health_url, timeout=self.config.health_timeout_sec
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Health check failed: {e}")
            return False
        return response.status_code == 200

    async def check_health(self) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.health)

    def close(self) -> None:
        if self._owns_session:
            self._session.close()


class RetryingClassificationClient:
    """Retries transport failures with exponential backoff.

    Attempt n (1-based) that fails with a transport error waits
    ``delay_sec * 2 ** (n - 1)`` before the next attempt. Rejections,
    malformed responses and invalid poses return immediately.

    Args:
        client: Single-attempt client.
        attempts: Total attempts (default: client.config.retry_attempts).
        delay_sec: Backoff base (default: client.config.retry_delay_sec).
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        client: ClassificationClient,
        attempts: Optional[int] = None,
        delay_sec: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.attempts = attempts if attempts is not None else client.config.retry_attempts
        self.delay_sec = delay_sec if delay_sec is not None else client.config.retry_delay_sec
        self._sleep = sleep

    async def classify(self, pose: HandPose) -> ClassificationResult:
        result = ClassificationResult.failure(
            "Max retry attempts reached", ClassificationErrorKind.TRANSPORT
        )
        for attempt in range(1, self.attempts + 1):
            result = await self.client.classify(pose)
            if result.ok or not result.is_retryable:
                return result

            if attempt < self.attempts:
                delay = self.delay_sec * (2 ** (attempt - 1))
                logger.info(
                    f"Retrying in {delay:.1f}s... (Attempt {attempt}/{self.attempts})"
                )
                await self._sleep(delay)

        return result

    async def check_health(self) -> bool:
        return await self.client.check_health()

    def close(self) -> None:
        self.client.close()


def create_classifier(config: Optional[ClassifierConfig] = None) -> RetryingClassificationClient:
    """Build the default retrying client."""
    return RetryingClassificationClient(ClassificationClient(config))


__all__ = [
    "NO_RESPONSE_MESSAGE",
    "ClassificationClient",
    "RetryingClassificationClient",
    "create_classifier",
]
