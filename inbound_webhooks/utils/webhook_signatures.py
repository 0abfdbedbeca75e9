"""
Webhook signature verification - prove a delivery came from its claimed sender.

Every strategy has the same shape:

    strategy(body: bytes, headers: Mapping, secret: str, tolerance_seconds: int)
        -> VerificationResult

Supported strategies:
- stripe: Stripe-Signature header (t=<ts>,v1=<hex>), checked with the Stripe SDK
- hmac_sha256: X-Webhook-Signature (sha256=<hex>) over "<ts>.<body>" with
  X-Webhook-Timestamp for replay protection
- accept_all: development only, never allowed in production
- reject_all: explicit shutoff, and the default for unconfigured providers

Strategies never raise. Anything unexpected (malformed header, bad encoding,
SDK error) is a rejection, so attacker-controlled input can't turn into a 500.
"""
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
SIGNATURE_PREFIX = "sha256="
STRIPE_SIGNATURE_HEADER = "Stripe-Signature"


@dataclass(frozen=True)
class VerificationResult:
    accepted: bool
    reason: Optional[str] = None

    @classmethod
    def accept(cls) -> "VerificationResult":
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: str) -> "VerificationResult":
        return cls(accepted=False, reason=reason)


Strategy = Callable[[bytes, Mapping, str, int], VerificationResult]


def _get_header(headers: Mapping, name: str) -> str:
    """Case-insensitive header lookup that works for plain dicts too."""
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, val in headers.items():
            if key.lower() == lowered:
                return val or ""
        return ""
    return value


def compute_hmac_sha256(secret: str, timestamp: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of "<timestamp>." + body, as senders sign it."""
    signed_payload = f"{timestamp}.".encode("utf-8") + body
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def verify_hmac_sha256(
    body: bytes,
    headers: Mapping,
    secret: str,
    tolerance_seconds: int,
) -> VerificationResult:
    """
    Verify the generic signed-webhook scheme.
    tolerance_seconds=0 disables the age check; the timestamp is still signed.
    """
    if not secret:
        return VerificationResult.reject("missing secret")

    signature = _get_header(headers, SIGNATURE_HEADER)
    timestamp = _get_header(headers, TIMESTAMP_HEADER)
    if not signature:
        return VerificationResult.reject("missing signature header")
    if not timestamp:
        return VerificationResult.reject("missing timestamp header")

    try:
        sent_at = int(timestamp)
    except ValueError:
        return VerificationResult.reject("malformed timestamp")

    if tolerance_seconds > 0 and abs(time.time() - sent_at) > tolerance_seconds:
        return VerificationResult.reject("timestamp outside tolerance")

    sig = signature
    if sig.startswith(SIGNATURE_PREFIX):
        sig = sig[len(SIGNATURE_PREFIX):]

    try:
        expected = compute_hmac_sha256(secret, timestamp, body)
        if hmac.compare_digest(expected, sig):
            return VerificationResult.accept()
    except Exception as e:
        logger.error("HMAC-SHA256 validation error: %s", str(e))
        return VerificationResult.reject("verification error")
    return VerificationResult.reject("signature mismatch")


def verify_stripe_signature(
    body: bytes,
    headers: Mapping,
    secret: str,
    tolerance_seconds: int,
) -> VerificationResult:
    """Verify a Stripe-Signature header with the Stripe SDK."""
    if not secret:
        return VerificationResult.reject("missing secret")

    signature = _get_header(headers, STRIPE_SIGNATURE_HEADER)
    if not signature:
        return VerificationResult.reject("missing signature header")

    import stripe

    try:
        stripe.WebhookSignature.verify_header(
            body.decode("utf-8"), signature, secret, tolerance=tolerance_seconds,
        )
    except stripe.SignatureVerificationError as e:
        return VerificationResult.reject(str(e))
    except Exception as e:
        logger.error("Stripe signature validation error: %s", str(e))
        return VerificationResult.reject("verification error")
    return VerificationResult.accept()


def accept_all(
    body: bytes,
    headers: Mapping,
    secret: str,
    tolerance_seconds: int,
) -> VerificationResult:
    """Development stub - accepts every delivery without checking anything."""
    logger.warning("Accepting webhook WITHOUT signature verification (accept_all strategy)")
    return VerificationResult.accept()


def reject_all(
    body: bytes,
    headers: Mapping,
    secret: str,
    tolerance_seconds: int,
) -> VerificationResult:
    """Explicit shutoff - rejects every delivery."""
    return VerificationResult.reject("verification disabled for provider")


STRATEGIES: dict[str, Strategy] = {
    "stripe": verify_stripe_signature,
    "hmac": verify_hmac_sha256,
    "accept_all": accept_all,
    "reject_all": reject_all,
}


@dataclass(frozen=True)
class Verifier:
    """A strategy bound to one provider's secret and replay window."""
    strategy: Strategy
    secret: str = ""
    tolerance_seconds: int = 0

    def verify(self, body: bytes, headers: Mapping) -> VerificationResult:
        try:
            return self.strategy(body, headers, self.secret, self.tolerance_seconds)
        except Exception as e:
            logger.error("Webhook verification raised, rejecting: %s", str(e), exc_info=True)
            return VerificationResult.reject("verification error")
