"""Pydantic request/response models."""
from pydantic import BaseModel, Field, field_validator


class ErrorResponse(BaseModel):
    code: str
    message: str
    status: int


class RateBucket(BaseModel):
    """Counter state for one identity in the current window."""
    limit: int
    remaining: int
    reset: int  # Unix seconds


class AdminLoginRequest(BaseModel):
    username: str
    password: str


class TokenListUpdate(BaseModel):
    tokens: list[str] = Field(default_factory=list, max_length=1000)

    @field_validator("tokens")
    @classmethod
    def _normalize(cls, tokens: list[str]) -> list[str]:
        cleaned = []
        for token in tokens:
            token = token.strip()
            if not token:
                continue
            # Stored tokens must survive the env-string splitting rules unchanged
            if any(ch.isspace() or ch == "," for ch in token):
                raise ValueError(f"Token contains whitespace or comma: {token[:8]}...")
            cleaned.append(token)
        return list(dict.fromkeys(cleaned))


class TokenListsResponse(BaseModel):
    active: list[str]
    disabled: list[str]
