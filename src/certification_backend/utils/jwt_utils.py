import typing

import jwt

from certification_backend.dynamodb.secrets_table import SecretsTable

JWT_ALGORITHM = "HS256"


class JwtWrapper:
    """Verifies access tokens minted by the auth service. Token issuance lives outside this backend."""

    def verify_token(self, token: str, secrets_table: SecretsTable) -> typing.Optional[dict]:
        try:
            jwt_secret = secrets_table.get_jwt_secret_key()
            payload = jwt.decode(token, jwt_secret, algorithms=[JWT_ALGORITHM])
            return payload
        except jwt.PyJWTError:
            return None
        except KeyError:
            return None
