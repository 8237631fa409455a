from typing import Optional
import httpx
from phonegate.common.logging_setup import get_logger
from phonegate.common.phone import mask_phone

logger = get_logger("phonegate.sms")


def mask_account_sid(account_sid: Optional[str]) -> str:
    if account_sid is None or len(account_sid) < 8:
        return "***"
    return account_sid[:4] + "****" + account_sid[-4:]


class TwilioSmsProvider:
    """Sends through the Twilio Messages REST endpoint."""

    provider_name = "TwilioSmsProvider"

    def __init__(self, account_sid: str, auth_token: str, from_number: str,
                 api_base: str = "https://api.twilio.com/2010-04-01", timeout: float = 10.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.account_sid = account_sid
        self.from_number = from_number
        self._url = f"{api_base.rstrip('/')}/Accounts/{account_sid}/Messages.json"
        self._client = client or httpx.AsyncClient(auth=(account_sid, auth_token), timeout=timeout)
        logger.info("sms.twilio.initialized", extra={"account": mask_account_sid(account_sid)})

    async def send_sms(self, phone_number: str, message: str) -> bool:
        data = {"To": phone_number, "From": self.from_number, "Body": message}
        try:
            resp = await self._client.post(self._url, data=data)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("sms.twilio.rejected", extra={"phone": mask_phone(phone_number), "status": e.response.status_code})
            return False
        except httpx.HTTPError as e:
            logger.error("sms.twilio.transport_error", extra={"phone": mask_phone(phone_number), "error": type(e).__name__})
            return False

        logger.info("sms.twilio.sent", extra={"phone": mask_phone(phone_number)})
        return True

    async def aclose(self) -> None:
        await self._client.aclose()
