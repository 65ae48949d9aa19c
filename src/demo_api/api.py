import binascii

from fastapi import FastAPI, APIRouter, HTTPException, Query
import structlog

from pad_prober.utils import b64_encode, b64_decode

from . import crypto, models

log = structlog.get_logger(
    processors=[
        structlog.processors.JSONRenderer(),
    ],
)

# Letters and spaces only, so the default text candidates can recover them.
DEMO_MESSAGES = {
    "hello": "Hello world",
    "alphabet": (
        "aaaaaaaaaaaaaaaa"
        "bbbbbbbbbbbbbbbb"
        "cccccccccccccccc"
        "dddddddddddddddd"
        "eeeeeeeeeeeeeeee"
    ),
    "ossifrage": "The Magic Words are Squeamish Ossifrage",
}

app = FastAPI(title="Padding Oracle Demo API")

router = APIRouter()


def build_encrypted_response(plaintext: bytes) -> models.EncryptResponse:
    """ Build a response with the encrypted ciphertext of the given plaintext. """
    ciphertext = crypto.encrypt(crypto.get_key(), plaintext)
    log.info(
        "encrypted",
        plaintext_len=len(plaintext),
        ciphertext_hex=ciphertext.hex(" "),
        ciphertext_len=len(ciphertext),
    )
    return models.EncryptResponse(
        ciphertext_b64=b64_encode(ciphertext),
        ciphertext_hex=ciphertext.hex(),
    )


@router.get("/demo/{name}", response_model=models.EncryptResponse)
def demo(name: str):
    """ A canned message encrypted under a fresh random IV. """
    plaintext = DEMO_MESSAGES.get(name)
    if plaintext is None:
        raise HTTPException(status_code=404, detail=f"Unknown demo: {name}")
    return build_encrypted_response(plaintext.encode("utf-8"))


@router.post("/encrypt", response_model=models.EncryptResponse)
def encrypt(req: models.EncryptRequest):
    """ Encrypt the given base64 plaintext and return the ciphertext. """
    try:
        plaintext = b64_decode(req.plaintext_b64)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid base64 plaintext: {e}")
    return build_encrypted_response(plaintext)


@app.get("/po")
def padding_oracle(er: str = Query(..., description="Hex encoded IV || ciphertext")):
    """ Decrypt the given ciphertext and report only whether the padding was valid.
    This is the endpoint that is vulnerable to the padding oracle attack:
    403 means bad padding, 404 means good padding but no such message.
    """
    try:
        ciphertext = bytes.fromhex(er)
        crypto.decrypt(crypto.get_key(), ciphertext)
    except crypto.InvalidPadding:
        log.debug("invalid padding", ciphertext_hex=er[-64:])
        raise HTTPException(status_code=403, detail="Invalid padding")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    raise HTTPException(status_code=404, detail="Message not found")


# Include the router in the app (after all routes are defined)
app.include_router(router, prefix="/api")
