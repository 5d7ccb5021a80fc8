"""ShipHero GraphQL client for writing box assignments back to orders."""
import time
from typing import Optional, Dict, Any, Callable, Sequence
import requests

from boxsync import settings
from boxsync.errors import WriteBackError
from boxsync.logging_conf import logger


ASSIGN_BOX_MUTATION = """
mutation AssignBox($orderId: String!, $boxName: String!, $fulfillmentStatus: String!) {
  order_update(
    data: {
      order_id: $orderId
      box_name: $boxName
      fulfillment_status: $fulfillmentStatus
    }
  ) {
    request_id
    complexity
    order {
      id
      order_number
      fulfillment_status
    }
  }
}
"""


class ShipHeroClient:
    """Sends box assignments to ShipHero with classified retries."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_token: Optional[str] = None,
        retry_delays: Optional[Sequence[float]] = None,
        initial_delay: Optional[float] = None,
        non_retryable_codes=None,
        timeout: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url or settings.SHIPHERO_API_URL
        self.retry_delays = tuple(settings.WRITEBACK_RETRY_DELAYS if retry_delays is None else retry_delays)
        self.initial_delay = settings.WRITEBACK_INITIAL_DELAY if initial_delay is None else initial_delay
        self.non_retryable_codes = frozenset(
            settings.NON_RETRYABLE_ERROR_CODES if non_retryable_codes is None else non_retryable_codes
        )
        self.timeout = timeout or settings.WRITEBACK_TIMEOUT
        self.sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_token or settings.SHIPHERO_API_TOKEN}",
            "Content-Type": "application/json",
            "Accept": "application/json"
        })

    def assign_box(self, order_id: str, box_name: str, fulfillment_status: str) -> Dict[str, Any]:
        """
        Write the box name and fulfillment status onto an order.

        Args:
            order_id: ShipHero order ID
            box_name: Box label to assign
            fulfillment_status: Fulfillment status string

        Returns:
            The mutation's response data

        Raises:
            WriteBackError: on a non-retryable error, or once retries run out
        """
        variables = {
            "orderId": order_id,
            "boxName": box_name,
            "fulfillmentStatus": fulfillment_status,
        }
        return self._execute(ASSIGN_BOX_MUTATION, variables)

    def _execute(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Run a GraphQL operation, retrying on the fixed delay table."""
        max_attempts = len(self.retry_delays) + 1
        last_error = None

        for attempt in range(1, max_attempts + 1):
            if attempt == 1:
                if self.initial_delay:
                    self.sleep(self.initial_delay)
            else:
                wait_time = self.retry_delays[attempt - 2]
                logger.warning(f"Write-back attempt {attempt - 1} failed ({last_error}). Retrying in {wait_time}s...")
                self.sleep(wait_time)

            try:
                return self._request(query, variables)
            except WriteBackError as e:
                if not e.retryable:
                    logger.error(f"Write-back rejected, not retrying: {e}")
                    raise
                last_error = e

        logger.error(f"Write-back failed after {max_attempts} attempts: {last_error}")
        raise last_error

    def _request(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Make one API request and classify any failure."""
        try:
            response = self.session.post(
                self.api_url,
                json={"query": query, "variables": variables},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise WriteBackError(f"Network error: {e}") from e

        if response.status_code >= 400:
            raise WriteBackError(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError as e:
            raise WriteBackError(f"Invalid JSON response: {e}") from e

        if not isinstance(body, dict):
            raise WriteBackError(f"Unexpected response body: {type(body).__name__}")

        errors = body.get("errors") or []
        if not isinstance(errors, list):
            raise WriteBackError(f"Unexpected errors field: {type(errors).__name__}")
        if errors:
            first = errors[0] if isinstance(errors[0], dict) else {"message": str(errors[0])}
            code = self._error_code(first)
            raise WriteBackError(
                first.get("message", "Unknown GraphQL error"),
                code=code,
                retryable=code not in self.non_retryable_codes,
            )

        return body.get("data") or {}

    @staticmethod
    def _error_code(error: Dict[str, Any]) -> Optional[str]:
        """Pull the error code from a GraphQL error entry."""
        code = error.get("code")
        if code is None:
            extensions = error.get("extensions") or {}
            code = extensions.get("code")
        return None if code is None else str(code)
