# Twilio Verify client for phone number OTP delivery and checks.
import base64
import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from typing import Dict, Optional

from quizhub.config import get_twilio_settings
from quizhub.errors import InvalidInputError, UpstreamError

VERIFY_BASE_URL = "https://verify.twilio.com/v2/Services"
E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")
REQUEST_TIMEOUT = 10

logger = logging.getLogger("quizhub.otp")


# Reject phone numbers that are not normalized E.164 strings.
def ensure_e164(phone_number: str) -> str:
    cleaned = phone_number.strip()
    if not E164_PATTERN.fullmatch(cleaned):
        raise InvalidInputError("phone_number must be in E.164 format")
    return cleaned


class TwilioVerifyClient:
    def __init__(self, account_sid: str, auth_token: str, service_sid: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.service_sid = service_sid

    @classmethod
    def from_env(cls) -> "TwilioVerifyClient":
        settings = get_twilio_settings()
        return cls(settings["account_sid"], settings["auth_token"], settings["service_sid"])

    def _post(self, path: str, fields: Dict[str, str], missing_ok: bool = False) -> Dict:
        url = f"{VERIFY_BASE_URL}/{self.service_sid}/{path}"
        credentials = f"{self.account_sid}:{self.auth_token}".encode("utf-8")
        request = urllib.request.Request(
            url,
            data=urllib.parse.urlencode(fields).encode("utf-8"),
            headers={
                "Authorization": "Basic " + base64.b64encode(credentials).decode("ascii"),
                "Content-Type": "application/x-www-form-urlencoded",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=REQUEST_TIMEOUT) as response:
                body = response.read()
        except urllib.error.HTTPError as exc:
            if missing_ok and exc.code == 404:
                logger.info("Twilio %s found no pending verification", path)
                return {}
            logger.exception("Twilio %s returned HTTP %s", path, exc.code)
            raise UpstreamError(f"Twilio {path} error {exc.code}: {exc.reason}") from exc
        except urllib.error.URLError as exc:
            logger.exception("Twilio %s request failed", path)
            raise UpstreamError(f"Twilio {path} request failed: {exc.reason}") from exc
        try:
            return json.loads(body or b"{}")
        except json.JSONDecodeError as exc:
            raise UpstreamError(f"Twilio {path} returned invalid JSON") from exc

    # Send an SMS verification code to the phone number.
    def send_verification(self, phone_e164: str) -> None:
        self._post("Verifications", {"To": phone_e164, "Channel": "sms"})
        logger.info("Verification sent to %s", phone_e164)

    # Check a code; approved status or a valid flag both count as success.
    # An expired or unknown verification comes back as 404 and counts as a failed check.
    def check_verification(self, phone_e164: str, code: str) -> bool:
        payload = self._post(
            "VerificationCheck", {"To": phone_e164, "Code": code}, missing_ok=True
        )
        if payload.get("status") == "approved":
            return True
        return payload.get("valid") is True


_client: Optional[TwilioVerifyClient] = None


# FastAPI dependency returning a lazily configured Twilio client.
def get_otp_client() -> TwilioVerifyClient:
    global _client
    if _client is None:
        try:
            _client = TwilioVerifyClient.from_env()
        except RuntimeError as exc:
            raise UpstreamError(str(exc)) from exc
    return _client
