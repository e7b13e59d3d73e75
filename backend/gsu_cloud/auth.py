from fastapi import Header, HTTPException, Request, status


def check_token(expected: str | None, authorization: str) -> bool:
    if not expected:
        return True
    if not authorization.lower().startswith("bearer "):
        return False
    return authorization.split(" ", 1)[1] == expected


async def require_operator_token(request: Request, authorization: str = Header(default="")):
    """Bearer token guard for operator writes. Set API_TOKEN env var to enable."""
    expected = request.app.state.cloud.settings.api_token
    if not expected:
        return
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing bearer token")
    if not check_token(expected, authorization):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")
