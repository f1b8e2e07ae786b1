import logging
import os
import jwt

from common.models.users import UserRole

logger = logging.getLogger()
logger.setLevel(logging.INFO)

JWT_SECRET = os.environ.get("JWT_SECRET")
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.environ.get("JWT_AUDIENCE")

if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is not set")


def _generate_policy(principal_id, effect, resource, context=None):
    auth_response = {
        "principalId": principal_id,
        "policyDocument": {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Action": "execute-api:Invoke",
                    "Effect": effect,
                    "Resource": resource,
                }
            ],
        },
    }

    if context:
        auth_response["context"] = {
            k: str(v) for k, v in context.items()
        }

    return auth_response


def _get_stage_arn(method_arn: str) -> str:
    parts = method_arn.split("/")
    return "/".join(parts[:2]) + "/*/*"


def _extract_token(event) -> str:
    headers = event.get("headers") or {}
    token = (
        event.get("authorizationToken")
        or headers.get("Authorization")
        or headers.get("authorization")
    )
    if not token:
        raise jwt.InvalidTokenError("Missing Authorization header")
    if token.startswith("Bearer "):
        token = token[len("Bearer "):]
    return token


def _resolve_role(claims: dict) -> UserRole:
    # the auth provider keeps app roles in app_metadata; "authenticated" is not one
    app_metadata = claims.get("app_metadata") or {}
    raw = app_metadata.get("role") or claims.get("user_role") or ""
    try:
        return UserRole(raw.upper())
    except ValueError:
        return UserRole.USER


def lambda_handler(event, context):
    try:
        token = _extract_token(event)

        if JWT_AUDIENCE:
            decoded = jwt.decode(
                token,
                JWT_SECRET,
                algorithms=[JWT_ALGORITHM],
                audience=JWT_AUDIENCE,
                options={"require": ["exp"]},
            )
        else:
            decoded = jwt.decode(
                token,
                JWT_SECRET,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["exp"], "verify_aud": False},
            )

        user_id = decoded.get("sub") or decoded.get("user_id")
        if not user_id:
            raise jwt.InvalidTokenError("Missing subject in token")

        resource = _get_stage_arn(event["methodArn"])

        return _generate_policy(
            principal_id=user_id,
            effect="Allow",
            resource=resource,
            context={
                "user_id": user_id,
                "email": decoded.get("email", ""),
                "full_name": (decoded.get("user_metadata") or {}).get("full_name", ""),
                "role": _resolve_role(decoded).value,
            },
        )

    except jwt.ExpiredSignatureError:
        logger.warning("Authorization failed: Token expired")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Authorization failed: Invalid token {e}")
    except Exception:
        logger.exception("Authorization failed")

    return _generate_policy(
        principal_id="unauthorized",
        effect="Deny",
        resource=_get_stage_arn(event["methodArn"]),
    )
