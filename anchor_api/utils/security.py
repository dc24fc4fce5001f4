import secrets

API_KEY_PREFIX = "anc_"


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_urlsafe(32)
