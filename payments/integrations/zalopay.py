"""ZaloPay v2 client: configuration, request signing and callback verification.

Outbound calls are form-encoded POSTs to ``/v2/create`` and ``/v2/query``.
Every failure talking to the provider is raised as :class:`ProviderUnavailable`
before any local state is touched, so callers can always retry.
"""
import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from urllib.parse import urljoin

import requests
from requests import RequestException
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured, ValidationError
from django.urls import reverse
from django.utils import timezone

logger = logging.getLogger(__name__)

CREATE_PATH = "/v2/create"
QUERY_PATH = "/v2/query"
TRANS_ID_SUFFIX_LEN = 6


class PaymentError(Exception): pass


class ConfigurationError(ImproperlyConfigured): pass


class ProviderUnavailable(PaymentError): pass


class SignatureInvalid(PaymentError): pass


@dataclass(frozen=True)
class PaymentConfig:
    app_id: str
    mac_key: str
    callback_key: str
    provider_base_url: str
    app_base_url: str


_REQUIRED_SETTINGS = (
    ("PAY_APP_ID", "app_id"),
    ("PAY_MAC_KEY", "mac_key"),
    ("PAY_CALLBACK_KEY", "callback_key"),
    ("PAY_PROVIDER_BASE_URL", "provider_base_url"),
    ("APP_BASE_URL", "app_base_url"),
)


def get_payment_config() -> PaymentConfig:
    """Read the provider settings; raises ConfigurationError when incomplete.

    Evaluated per call, never at import or startup.
    """
    values = {attr: str(getattr(settings, name, "") or "").strip() for name, attr in _REQUIRED_SETTINGS}
    missing = [name for name, attr in _REQUIRED_SETTINGS if not values[attr]]
    if missing:
        raise ConfigurationError(f"Missing required setting: {', '.join(missing)}")
    if not values["app_id"].isdigit():
        raise ConfigurationError("PAY_APP_ID must be numeric")
    if not values["provider_base_url"].startswith("https://"):
        raise ConfigurationError("PAY_PROVIDER_BASE_URL must be an https:// URL")
    return PaymentConfig(**values)


def to_provider_amount(value) -> int:
    """Whole currency units, rounded half-up."""
    try:
        return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except ArithmeticError:
        raise ValidationError(f"Invalid amount value: {value!r}")


def generate_app_trans_id(order_code: str, now=None) -> str:
    """``YYMMDD_xxxxxx``; the provider requires it to be unique per day.

    The suffix is the tail of the order code, left-padded with random hex
    when the code is shorter than six characters.
    """
    day = timezone.localtime(now or timezone.now()).strftime("%y%m%d")
    suffix = (secrets.token_hex(TRANS_ID_SUFFIX_LEN) + (order_code or ""))[-TRANS_ID_SUFFIX_LEN:]
    return f"{day}_{suffix}"


def _hmac_hex(key: str, message: str) -> str:
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def build_create_mac(*, app_id, app_trans_id, app_user, amount, app_time, embed_data, item, key) -> str:
    data = "|".join(str(v) for v in (app_id, app_trans_id, app_user, amount, app_time, embed_data, item))
    return _hmac_hex(key, data)


def build_query_mac(app_id, app_trans_id, key) -> str:
    return _hmac_hex(key, f"{app_id}|{app_trans_id}|{key}")


def _compact_json(value) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def sign_create_request(*, order_code, amount, app_user, description="", items=None,
                        embed_data=None, config=None, now=None) -> dict:
    """Build the signed ``/v2/create`` form for one order."""
    cfg = config or get_payment_config()
    now = now or timezone.now()
    payload = {
        "app_id": int(cfg.app_id),
        "app_trans_id": generate_app_trans_id(order_code, now),
        "app_user": app_user,
        "app_time": int(now.timestamp() * 1000),
        "amount": int(amount),
        "embed_data": _compact_json(embed_data or {}),
        "item": _compact_json(items or []),
        "description": description or f"Thanh toan don hang {order_code}",
        "callback_url": urljoin(cfg.app_base_url, reverse("payments:callback")),
    }
    payload["mac"] = build_create_mac(
        app_id=payload["app_id"],
        app_trans_id=payload["app_trans_id"],
        app_user=payload["app_user"],
        amount=payload["amount"],
        app_time=payload["app_time"],
        embed_data=payload["embed_data"],
        item=payload["item"],
        key=cfg.mac_key,
    )
    return payload


def _post(cfg: PaymentConfig, path: str, form: dict, action: str) -> dict:
    url = urljoin(cfg.provider_base_url, path)
    try:
        resp = requests.post(url, data=form, timeout=settings.PAYMENTS_HTTP_TIMEOUT)
    except RequestException as e:
        logger.warning("ZaloPay %s request failed: %s", action, e)
        raise ProviderUnavailable(f"ZaloPay {action} request failed: {e}")
    if not 200 <= resp.status_code < 300:
        logger.warning("ZaloPay %s returned HTTP %s", action, resp.status_code)
        raise ProviderUnavailable(f"ZaloPay {action} failed: {resp.status_code}")
    try:
        data = resp.json()
    except ValueError:
        raise ProviderUnavailable(f"ZaloPay {action} returned a non-JSON response")
    if not isinstance(data, dict):
        raise ProviderUnavailable(f"ZaloPay {action} returned an unexpected response")
    return data


def create_order(signed: dict, config=None) -> dict:
    return _post(config or get_payment_config(), CREATE_PATH, signed, "create")


def query_order(app_trans_id: str, config=None) -> dict:
    cfg = config or get_payment_config()
    app_id = int(cfg.app_id)
    form = {
        "app_id": app_id,
        "app_trans_id": app_trans_id,
        "mac": build_query_mac(app_id, app_trans_id, cfg.mac_key),
    }
    return _post(cfg, QUERY_PATH, form, "query")


def verify_callback(data: str, mac: str, config=None) -> dict:
    """Check the callback MAC and return the decoded ``data`` object.

    Raises SignatureInvalid on any mismatch and ValidationError when the
    signed data is not a JSON object.
    """
    cfg = config or get_payment_config()
    expected = _hmac_hex(cfg.callback_key, data or "")
    if not hmac.compare_digest(expected.encode("utf-8"), (mac or "").encode("utf-8")):
        raise SignatureInvalid("Callback MAC mismatch")
    try:
        parsed = json.loads(data)
    except ValueError:
        raise ValidationError("Callback data is not valid JSON")
    if not isinstance(parsed, dict):
        raise ValidationError("Callback data must be a JSON object")
    return parsed
