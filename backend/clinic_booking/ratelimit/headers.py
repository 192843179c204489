from typing import Optional

from fastapi import Response


def set_rate_headers(
    res: Response, remaining: int, limit: int, reset_epoch_s: float, retry_after_s: Optional[int]
) -> None:
    res.headers["X-RateLimit-Remaining"] = str(max(remaining, 0))
    res.headers["X-RateLimit-Limit"] = str(limit)
    res.headers["X-RateLimit-Reset"] = str(int(reset_epoch_s))
    if retry_after_s and retry_after_s > 0:
        res.headers["Retry-After"] = str(int(retry_after_s))


def rate_headers(remaining: int, limit: int, reset_epoch_s: float, retry_after_s: Optional[int]) -> dict:
    """Same headers as a dict, for attaching to a 429 HTTPException."""
    headers = {
        "X-RateLimit-Remaining": str(max(remaining, 0)),
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Reset": str(int(reset_epoch_s)),
    }
    if retry_after_s and retry_after_s > 0:
        headers["Retry-After"] = str(int(retry_after_s))
    return headers
