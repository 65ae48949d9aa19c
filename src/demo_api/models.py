from pydantic import BaseModel

from .crypto import ALGORITHM


class EncryptRequest(BaseModel):
    plaintext_b64: str


class EncryptResponse(BaseModel):
    alg: str = ALGORITHM
    ciphertext_b64: str
    ciphertext_hex: str
