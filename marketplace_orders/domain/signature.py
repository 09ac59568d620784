import hashlib
import hmac


class PaymentSignatureVerifier:
    """Проверка подписи подтверждения оплаты от платёжного шлюза.

    Подпись: HMAC-SHA256 от строки "intent_id|confirmation_id" на общем секрете,
    в виде hex-строки.
    """

    def __init__(self, secret: str):
        self._secret = secret.encode()

    def expected_signature(self, intent_id: str, confirmation_id: str) -> str:
        payload = f"{intent_id}|{confirmation_id}".encode()
        return hmac.new(self._secret, payload, hashlib.sha256).hexdigest()

    def verify(self, intent_id: str, confirmation_id: str, signature: str) -> bool:
        expected = self.expected_signature(intent_id, confirmation_id)
        return hmac.compare_digest(expected.encode(), signature.encode())
