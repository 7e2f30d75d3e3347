import base64, hashlib, hmac


def compute_webhook_hmac(secret: str, raw: bytes) -> str:
    digest = hmac.new((secret or "").encode(), raw or b"", hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_webhook_hmac(secret: str, raw: bytes, their_hmac: str) -> bool:
    if not secret or not their_hmac:
        return False
    return hmac.compare_digest(compute_webhook_hmac(secret, raw), their_hmac)
