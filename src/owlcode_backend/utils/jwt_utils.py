import typing
from datetime import datetime, timedelta, timezone

import jwt

from owlcode_backend.dynamodb.secrets_table import SecretsTable
from owlcode_backend.utils.base_types import AccessTokenId, Role, UserId

ACCESS_TOKEN_EXPIRE_HOURS = 12


class JwtWrapper:
    def __init__(self) -> None:
        pass

    def create_access_token(self, user_id: UserId, role: Role, secrets_table: SecretsTable) -> AccessTokenId:
        expire = datetime.now(timezone.utc) + timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
        to_encode = {"exp": expire, "sub": user_id, "role": role}
        jwt_secret = secrets_table.get_jwt_secret_key()
        return AccessTokenId(jwt.encode(to_encode, jwt_secret, algorithm="HS256"))

    def verify_token(self, token: str, secrets_table: SecretsTable) -> typing.Optional[dict]:
        try:
            jwt_secret = secrets_table.get_jwt_secret_key()
            payload = jwt.decode(token, jwt_secret, algorithms=["HS256"])
            return payload
        except jwt.PyJWTError:
            return None
        except KeyError:
            return None
